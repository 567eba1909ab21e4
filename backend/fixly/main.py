import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fixly.config import settings
from fixly.routers import applications, auth, completion, conversation, disputes, jobs, performance, users
from fixly.services.job_lifecycle import JobValidationError
from fixly.services.job_repository import ConcurrentUpdateError
from fixly.utils.cache import browse_cache
from fixly.utils.performance import performance_monitor

logger = logging.getLogger("fixly")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create schema, migrate and integrity-check the database
    try:
        from fixly.database import init_db
        init_db(settings.db_path)
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except sqlite3.Error as exc:
        logger.error("Could not run startup migration/integrity check: %s", exc)
    yield
    # Shutdown: drop cached listings
    browse_cache.clear()


app = FastAPI(
    title="Fixly",
    description="Local service marketplace connecting hirers with fixers",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def time_requests(request: Request, call_next):
    timer = performance_monitor.start_timer(f"{request.method} {request.url.path}")
    try:
        response = await call_next(request)
    except Exception:
        performance_monitor.end_timer(timer, success=False)
        raise
    duration_ms = performance_monitor.end_timer(timer, success=response.status_code < 500)
    response.headers["X-Response-Time"] = f"{duration_ms:.0f}ms"
    return response


@app.exception_handler(JobValidationError)
async def job_validation_error(request: Request, exc: JobValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConcurrentUpdateError)
async def concurrent_update_error(request: Request, exc: ConcurrentUpdateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(users.router, prefix=settings.api_prefix)
app.include_router(jobs.router, prefix=settings.api_prefix)
app.include_router(applications.router, prefix=settings.api_prefix)
app.include_router(completion.router, prefix=settings.api_prefix)
app.include_router(disputes.router, prefix=settings.api_prefix)
app.include_router(conversation.router, prefix=settings.api_prefix)
app.include_router(performance.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
