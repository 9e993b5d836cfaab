import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from thinktest.core.config import get_settings
from thinktest.core.logging_config import setup_logging
from thinktest.dependencies import close_github_client
from thinktest.exception_handlers import (
    app_exception_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from thinktest.exceptions import AppException

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    gaps = get_settings().configuration_gaps()
    if gaps:
        logger.warning(f"Missing configuration: {', '.join(gaps)}")

    yield

    logger.info("Closing GitHub client...")
    await close_github_client()


app = FastAPI(
    title="ThinkTest Backend API",
    description="GitHub plugin ingestion, analysis and test generation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Adjust this for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

from thinktest.api.routers import github  # noqa: E402
app.include_router(github.router, prefix="/thinktest")
app.include_router(github.generation_router, prefix="/thinktest")
app.include_router(github.admin_router, prefix="/thinktest")


@app.get("/health")
async def health_check():
    """Root health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("thinktest.main:app", host="0.0.0.0", port=8000, reload=True)
