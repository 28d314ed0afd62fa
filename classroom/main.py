import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from classroom.core.errors import DomainError
from classroom.core.logging_middleware import LoggingMiddleware
from classroom.db.init_db import init_db
from classroom.routers.admin import router as admin_router
from classroom.routers.notifications import router as notifications_router
from classroom.routers.submissions import router as submissions_router
from classroom.routers.tasks import router as tasks_router

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

app = FastAPI(title="Classroom Submissions")

# Middleware
app.add_middleware(LoggingMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()


# Include routers
app.include_router(tasks_router, tags=["tasks"])
app.include_router(submissions_router, tags=["submissions"])
app.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
