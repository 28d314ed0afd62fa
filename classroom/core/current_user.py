from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from classroom.core.deps import get_db
from classroom.core.errors import InvalidIdentifier
from classroom.core.identifiers import normalize_id
from classroom.core.security import decode_access_token
from classroom.models.user import User

# tokens are issued elsewhere; tokenUrl only documents where
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def user_from_token(db: Session, token: str | None) -> User | None:
    payload = decode_access_token(token) if token else None
    if not payload:
        return None
    try:
        user_id = normalize_id(payload.get("sub"))
    except InvalidIdentifier:
        return None
    return db.query(User).filter(User.id == user_id).first()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = user_from_token(db, token)
    if user is None:
        raise credentials_exception
    return user
