# juku_admin/main.py
import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from juku_admin.config import settings
from juku_admin.database import Base, engine
from juku_admin.logging_config import setup_logging
from juku_admin.models import (  # noqa: F401  (テーブル登録)
    booth, branch, class_session, class_type, course, evaluation, grade,
    line_channel, notification, student, subject, teacher, time_slot, user,
)
from juku_admin.routers import (
    auth, class_sessions, dashboard, imports, line_channels, master_data,
    notifications, staffs, students, teachers,
)
from juku_admin.utils.errors import AppError
from juku_admin.utils.rate_limit import FixedWindowRateLimiter

setup_logging()
logger = logging.getLogger("juku_admin")


# テーブル作成（存在しなければ）
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Juku Admin Backend", version="1.0.0")

api_limiter = FixedWindowRateLimiter(limit=settings.API_RATE_LIMIT_PER_MINUTE, window_seconds=60)


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    client = request.client.host if request.client else "unknown"
    decision = api_limiter.hit(client)
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }
    if not decision.allowed:
        logger.warning("rate limit exceeded for %s on %s", client, request.url.path)
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests. Please try again later."},
            headers=headers,
        )

    response = await call_next(request)
    for k, v in headers.items():
        response.headers[k] = v
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
        ms = int((time.time() - start) * 1000)
        logger.info("%s %s -> %s (%dms)", request.method, request.url.path, response.status_code, ms)
        return response
    except Exception:
        ms = int((time.time() - start) * 1000)
        logger.exception("Unhandled error %s %s (%dms)", request.method, request.url.path, ms)
        raise


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- error envelopes ----------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid input data", "details": details})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Routers
app.include_router(auth.router)
for r in master_data.routers:
    app.include_router(r)
app.include_router(teachers.router)
app.include_router(students.router)
app.include_router(staffs.router)
app.include_router(class_sessions.router)
app.include_router(line_channels.router)
app.include_router(notifications.router)
app.include_router(imports.router)
app.include_router(imports.export_router)
app.include_router(dashboard.router)


@app.get("/")
def root():
    return {"message": "Juku admin backend is running!"}
