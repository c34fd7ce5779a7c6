"""FastAPI application factory and configuration"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .logging import setup_logging
from .exception import InternalError, NomacodeException
from .schema.response import ErrorResponse
from .api import session_router, system_router, tool_router, websocket_router
from .terminal.backend import ProcessBackend, create_backend, detect_backend
from .terminal.buffer import DEFAULT_BUFFER_SIZE
from .terminal.registry import DEFAULT_SHUTDOWN_GRACE, SessionRegistry
from .tool.detector import ToolDetector

logger = logging.getLogger(__name__)


def create_app(
    instance_path: Path,
    config: dict,
    process_backend: Optional[ProcessBackend] = None,
    tool_detector: Optional[ToolDetector] = None,
) -> FastAPI:
    """Create and configure FastAPI application instance

    This is the application factory function that initializes logging,
    selects the process backend, creates the session registry, configures
    middleware, registers exception handlers, and includes routers.

    Args:
        instance_path: Path to the Nomacode instance directory
        config: Configuration dictionary loaded from config.toml
        process_backend: Backend to use instead of probing the host
        tool_detector: Tool detector to use instead of a default one

    Returns:
        Configured FastAPI application instance

    Raises:
        InternalError: If the log directory cannot be created
        BackendUnavailableError: If the configured terminal backend cannot run
    """
    # Initialize logging first
    try:
        setup_logging(instance_path, config.get('logging'))
    except OSError as e:
        raise InternalError(f"Failed to set up logging under {instance_path}: {e}") from e

    terminal_config = config.get('terminal', {})
    shutdown_grace = float(terminal_config.get('shutdown_grace', DEFAULT_SHUTDOWN_GRACE))

    # ==================== Terminal Backend ====================

    # Probed once; every session of this process runs on the same backend
    if process_backend is None:
        kind = detect_backend(terminal_config.get('backend', 'auto'))
        process_backend = create_backend(kind)

    session_registry = SessionRegistry(
        process_backend,
        buffer_size=int(terminal_config.get('buffer_size', DEFAULT_BUFFER_SIZE)),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle management"""
        logger.info(f"Nomacode started: backend={process_backend.kind.value}")

        yield

        # Shutdown: terminate every session process, force-kill after grace
        logger.info("Shutting down terminal sessions...")
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, session_registry.kill_all, shutdown_grace)
        except Exception as e:
            logger.error(f"Terminal session cleanup failed: {e}", exc_info=True)

        logger.info("Application shutting down")

    # Create FastAPI application
    app = FastAPI(
        title="Nomacode API",
        description="Terminal session multiplexer for coding from anywhere",
        version=__version__,
        lifespan=lifespan,
    )

    # Store in app state for dependency injection
    app.state.config = config
    app.state.instance_path = instance_path
    app.state.session_registry = session_registry
    app.state.tool_detector = tool_detector or ToolDetector()
    app.state.default_cwd = terminal_config.get('default_cwd') or str(Path.home())

    # ==================== CORS Configuration ====================

    cors_config = config.get('cors', {})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get('allow_origins', []),
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allow_methods', ["*"]),
        allow_headers=cors_config.get('allow_headers', ["*"]),
    )

    # ==================== Exception Handlers ====================

    @app.exception_handler(NomacodeException)
    async def nomacode_exception_handler(request: Request, exc: NomacodeException) -> JSONResponse:
        """Handle all Nomacode business exceptions

        All custom exceptions (ValidationError, SpawnError, etc.) inherit from
        NomacodeException. This handler returns a unified ErrorResponse.
        """
        logger.warning(f"Request failed: {request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=200,  # Business errors return 200 with success=false
            content=ErrorResponse(
                message=exc.message,
                error={"code": exc.code}
            ).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors (HTTP 200, success=false)"""
        return JSONResponse(
            status_code=200,
            content=ErrorResponse(
                message="Invalid input format",
                error={
                    "code": "VALIDATION_ERROR",
                    "details": [
                        {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
                        for err in exc.errors()
                    ]
                }
            ).model_dump()
        )

    # ==================== Router Registration ====================

    app.include_router(system_router, prefix="/api")
    app.include_router(session_router, prefix="/api")
    app.include_router(tool_router, prefix="/api")
    app.include_router(websocket_router)

    return app
