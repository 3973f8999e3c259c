"""Custom middleware and exception handlers for RFC 9457 problem responses."""

from typing import Callable, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..utils.logging_config import get_logger, log_exception

logger = get_logger("api")


class ProblemDetailsException(HTTPException):
    """Enhanced HTTPException that includes RFC 9457 Problem Details."""

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        **extra_fields,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.title = title
        self.type_uri = type_uri or f"https://httpstatuses.com/{status_code}"
        self.instance = instance
        self.extra_fields = extra_fields


_DEFAULT_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def default_title(status_code: int) -> str:
    """Get default title for HTTP status codes."""
    return _DEFAULT_TITLES.get(status_code, "HTTP Error")


def problem_response(
    status_code: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: Optional[str] = None,
    instance: Optional[str] = None,
    **extra_fields,
) -> JSONResponse:
    """Create a JSON response in RFC 9457 Problem Details format."""
    problem = {
        "type": type_uri or f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
    }

    if detail:
        problem["detail"] = detail
    if instance:
        problem["instance"] = instance

    problem.update(extra_fields)

    return JSONResponse(
        status_code=status_code,
        content=problem,
        media_type="application/problem+json",
    )


class ProblemDetailsMiddleware(BaseHTTPMiddleware):
    """Converts exceptions escaping the routers into problem responses."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except ProblemDetailsException as exc:
            return problem_response(
                status_code=exc.status_code,
                title=exc.title,
                detail=exc.detail,
                type_uri=exc.type_uri,
                instance=exc.instance or request.url.path,
                **exc.extra_fields,
            )
        except HTTPException as exc:
            return problem_response(
                status_code=exc.status_code,
                title=default_title(exc.status_code),
                detail=exc.detail,
                instance=request.url.path,
            )
        except Exception as exc:
            log_exception("api", exc, {"path": request.url.path, "method": request.method})
            return problem_response(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                title="Internal Server Error",
                detail="An unexpected error occurred",
                instance=request.url.path,
            )


def register_problem_handlers(app: FastAPI) -> None:
    """Route FastAPI's own exception handling through problem responses.

    ``HTTPException`` and validation errors are caught by FastAPI before they
    reach any middleware, so they are converted here.
    """

    @app.exception_handler(ProblemDetailsException)
    async def _problem_details(request: Request, exc: ProblemDetailsException):
        return problem_response(
            status_code=exc.status_code,
            title=exc.title,
            detail=exc.detail,
            type_uri=exc.type_uri,
            instance=exc.instance or request.url.path,
            **exc.extra_fields,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException):
        return problem_response(
            status_code=exc.status_code,
            title=default_title(exc.status_code),
            detail=str(exc.detail) if exc.detail is not None else None,
            instance=request.url.path,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected request to {request.url.path}: validation failed")
        return problem_response(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Validation Error",
            detail="Request validation failed",
            instance=request.url.path,
            errors=[
                {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
                for error in exc.errors()
            ],
        )
