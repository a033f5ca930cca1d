import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class BodyshopError(Exception):
    """Base error rendered as ``{"error": ..., "details": ...}``."""

    status_code = 500

    def __init__(self, error: str, details: Any = None, status_code: Optional[int] = None, **extra):
        super().__init__(error)
        self.error = error
        self.details = details
        self.extra = extra
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        body.update(self.extra)
        return body


class ValidationFailed(BodyshopError):
    """Missing or malformed input. Raised before anything is written."""

    status_code = 400

    def __init__(self, error: str, fields: Optional[List[str]] = None, **kwargs):
        if fields:
            kwargs["fields"] = fields
        super().__init__(error, **kwargs)


class NotFound(BodyshopError):
    status_code = 404


class Conflict(BodyshopError):
    status_code = 400


class UpstreamError(BodyshopError):
    """A datastore or gateway call failed. ``details`` carries the raw message."""

    status_code = 500


class ROAllocationError(UpstreamError):
    pass


@dataclass
class SideEffectReport:
    """Outcome of best-effort work done after the primary write succeeded."""

    attempted: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def run(self, name: str, fn: Callable[[], Any], on_error: Optional[Callable[[], Any]] = None) -> Any:
        self.attempted += 1
        try:
            return fn()
        except Exception as e:
            if on_error is not None:
                on_error()
            self.fail(name, e)
            return None

    def fail(self, name: str, error: Any) -> None:
        self.failed += 1
        self.errors.append(f"{name}: {error}")
        logger.warning("Side effect '%s' failed: %s", name, error)

    def to_dict(self) -> Dict[str, Any]:
        return {"attempted": self.attempted, "failed": self.failed, "errors": list(self.errors)}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BodyshopError)
    async def bodyshop_error_handler(request: Request, exc: BodyshopError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.error, exc.details)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field_name = "request"
        if errors:
            loc = [str(part) for part in errors[0].get("loc", ()) if part not in ("body", "query", "path", "form")]
            if loc:
                field_name = ".".join(loc)
        return JSONResponse(
            status_code=400,
            content={
                "error": f"Invalid value for field: {field_name}",
                "details": jsonable_encoder(errors, custom_encoder={Exception: str}),
            },
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )
