"""Global error handlers: ledger errors and everything else as JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from equipgg.errors import LedgerError, NotFoundError, TransientStoreError, ValidationError

logger = structlog.get_logger()

LEDGER_STATUS: list[tuple[type[LedgerError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (TransientStoreError, 503),
]


def status_for(exc: LedgerError) -> int:
    for exc_type, status in LEDGER_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status = status_for(exc)
        log = logger.error if status >= 500 else logger.info
        log(
            "ledger_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=exc.message,
            **{k: str(v) for k, v in exc.context.items()},
        )
        return JSONResponse(
            status_code=status,
            content={"detail": exc.message, "context": jsonable_context(exc.context)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_context(context: dict[str, object]) -> dict[str, object]:
    return {k: v if isinstance(v, (str, int, float, bool, list, type(None))) else str(v) for k, v in context.items()}
