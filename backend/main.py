"""Entry point for the Commit Catalog FastAPI application."""

import logging
import os
import shutil
import time
from contextlib import asynccontextmanager

from config import configure_logging, get_settings

# Configure GitPython to find the git executable before it is imported.
git_path = os.getenv("GIT_PYTHON_GIT_EXECUTABLE") or shutil.which("git")
if not git_path:
    raise RuntimeError(
        "Git executable not found. Install Git from https://git-scm.com/downloads "
        "or set GIT_PYTHON_GIT_EXECUTABLE to the path of the git binary"
    )
os.environ["GIT_PYTHON_GIT_EXECUTABLE"] = git_path
import git  # noqa: E402

git.refresh(path=git_path)

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from api.dependencies import get_database  # noqa: E402
from api.routes import router as api_router  # noqa: E402
from services.errors import AppError, ErrorKind  # noqa: E402

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = app.dependency_overrides.get(get_database, get_database)
    database = provider()
    database.create_schema()
    logger.info("Commit catalog started; workspace root %s", settings.workspace_root)
    yield
    database.dispose()


app = FastAPI(title="Commit Catalog Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render every catalog error as ``{"detail": message}``."""
    if exc.kind is ErrorKind.DB:
        logger.error("%s %s %d: %s", request.method, request.url.path, exc.status_code, exc)
    else:
        logger.info("%s %s %d: %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(api_router)


@app.get("/")
async def root() -> dict:
    """
    Simple heartbeat endpoint to confirm the API is online.

    Returns:
        dict: App metadata payload.
    """
    return {"status": "ok", "app": "Commit Catalog Backend"}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=False,
    )
