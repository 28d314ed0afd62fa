from fastapi import Depends

from classroom.core.config import BLOB_BASE_URL, BLOB_STORAGE_DIR
from classroom.db.session import SessionLocal
from classroom.services.blob_store import BlobStore, LocalBlobStore
from classroom.services.live_push import LivePush, NotificationHub
from classroom.services.notifications import NotificationDispatcher

# one hub per process; WebSocket sessions subscribe to it
notification_hub = NotificationHub()


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_blob_store() -> BlobStore:
    return LocalBlobStore(BLOB_STORAGE_DIR, BLOB_BASE_URL)


def get_live_push() -> LivePush:
    return notification_hub


def get_dispatcher(live_push: LivePush = Depends(get_live_push)) -> NotificationDispatcher:
    return NotificationDispatcher(live_push=live_push)
