from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from calmspace.core.config import settings
from calmspace.core.database import Base, engine
from calmspace.core.logging_setup import configure_logging

# Import models so SQLAlchemy registers tables for create_all().
import calmspace.models  # noqa: F401

from calmspace.api.dependencies import get_model_pool
from calmspace.api.routes import ai_chat

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up: initializing database...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized successfully.")

    # Fails fast when no Gemini key is configured.
    get_model_pool()

    yield
    logger.info("Shutting down...")


def _error_body(request: Request, status_code: int, message: Any) -> dict:
    return {
        "statusCode": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "message": message,
    }


def _register_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for issue in exc.errors():
            loc = ".".join(str(part) for part in issue.get("loc", []))
            msg = issue.get("msg", "Invalid request.")
            messages.append(f"{loc}: {msg}" if loc else msg)
        return JSONResponse(status_code=422, content=_error_body(request, 422, messages))

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(request, 500, "Internal server error"))


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_handlers(app)

    app.include_router(ai_chat.router, prefix=f"{settings.API_PREFIX}/ai-chat", tags=["AI Chat"])

    @app.get("/")
    def read_root():
        return {"status": "success", "message": f"Welcome to {settings.PROJECT_NAME} API"}

    return app


app = create_app()
