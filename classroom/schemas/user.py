from pydantic import BaseModel, EmailStr


class UserSummary(BaseModel):
    id: str
    email: EmailStr
    full_name: str | None = None
    role: str

    class Config:
        from_attributes = True
