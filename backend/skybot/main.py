from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .db.dynamodb.errors import (
    DdbConflict,
    DdbError,
    DdbNotFound,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)
from .middleware import RequestContextMiddleware
from .observability.logging import configure_logging, get_logger
from .problem_details import problem_response
from .routers.health import router as health_router
from .routers.integrations_slack import router as slack_router
from .services.bot_runtime import get_runtime
from .settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = get_runtime()
    runtime.start()
    yield
    runtime.shutdown()


def create_app() -> FastAPI:
    # Logging must be configured before the app starts handling requests.
    configure_logging(level=str(settings.log_level or "INFO").upper())
    log = get_logger("startup")

    app = FastAPI(
        title="Skybot",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        redirect_slashes=False,
        lifespan=lifespan,
    )

    log.info("app_starting", settings=settings.to_log_safe_dict())

    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DdbError, _ddb_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    app.include_router(health_router)
    app.include_router(slack_router, prefix="/api/integrations")

    return app


def _ddb_error_handler(request: Request, exc: DdbError) -> Response:
    status_code = 500
    title = "Storage Error"
    if isinstance(exc, DdbValidation):
        status_code, title = 400, "Bad Request"
    elif isinstance(exc, DdbNotFound):
        status_code, title = 404, "Not Found"
    elif isinstance(exc, DdbConflict):
        status_code, title = 409, "Conflict"
    elif isinstance(exc, (DdbThrottled, DdbUnavailable)):
        status_code, title = 503, "Service Unavailable"

    extensions = {
        "operation": exc.operation,
        "table": exc.table_name,
        "retryable": bool(getattr(exc, "retryable", False)),
    }
    return problem_response(
        request=request,
        status_code=status_code,
        title=title,
        detail=exc.message,
        extensions={k: v for k, v in extensions.items() if v is not None},
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    status_code = int(getattr(exc, "status_code", 500) or 500)
    detail = getattr(exc, "detail", None)
    if status_code == 404 and not detail:
        detail = "Route not found"
    return problem_response(
        request=request,
        status_code=status_code,
        detail=str(detail) if detail is not None else None,
    )


def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    errors = [
        {
            "path": ".".join(str(x) for x in (e.get("loc") or ()) if x != "body"),
            "message": e.get("msg", "Invalid value"),
        }
        for e in exc.errors()
    ]
    return problem_response(
        request=request,
        status_code=422,
        title="Validation Failed",
        detail="Request validation failed",
        extensions={"errors": errors},
    )


def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    # The response stays generic in production; operators need the traceback.
    get_logger("unhandled").exception(
        "unhandled_exception",
        http_method=str(getattr(request, "method", "") or "").upper() or None,
        path=str(getattr(getattr(request, "url", None), "path", "") or ""),
    )
    return problem_response(
        request=request,
        status_code=500,
        title="Internal Server Error",
        detail=str(exc) if exc else None,
    )


app = create_app()
