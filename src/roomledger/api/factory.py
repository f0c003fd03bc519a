"""FastAPI application factory with error envelope handlers."""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from roomledger.api.schemas import ErrorResponse
from roomledger.domain.errors import BookingError
from roomledger.infra.db import TransactionTimeout
from roomledger.observability.correlation import (
    CORRELATION_ID_HEADER,
    correlation_scope,
    resolve_correlation_id,
)
from roomledger.observability.logging import get_logger

from .routers import public

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = 2


def _error(status_code: int, code: str, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error_code=code, message=message).model_dump(by_alias=True),
        headers=headers,
    )


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    msg = first.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


def install_error_handlers(app: FastAPI) -> None:
    """Render every failure as {"errorCode", "message"}."""

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        return _error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(TransactionTimeout)
    async def timeout_handler(request: Request, exc: TransactionTimeout) -> JSONResponse:
        logger.warning(
            "transaction timeout",
            extra={
                "extra_fields": {
                    "path": request.url.path,
                    "budget_ms": exc.budget_ms,
                }
            },
        )
        return _error(
            503,
            "TRANSACTION_TIMEOUT",
            "The server is busy, please retry",
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error(400, "VALIDATION_ERROR", _first_validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        # details stay in the server log only
        logger.exception(
            "unhandled error",
            extra={
                "extra_fields": {
                    "path": request.url.path,
                    "error_type": type(exc).__name__,
                }
            },
        )
        return _error(500, "INTERNAL_ERROR", "Internal server error")


def create_app() -> FastAPI:
    """Create the FastAPI app.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="roomledger",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        with correlation_scope(cid):
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response

    install_error_handlers(app)
    app.include_router(public.router)

    return app
