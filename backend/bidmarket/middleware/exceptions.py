"""Error taxonomy and exception handlers for consistent error responses.

The wizard and watchlist raise the typed errors below; the handlers render
them in the same envelope the marketplace API uses, so a browser client
parses one error shape regardless of which tier rejected the request.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BidMarketException(Exception):
    """Base exception for bidmarket errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)

    def details(self) -> Union[dict, None]:
        return None


class ListingValidationError(BidMarketException):
    """Client-side, field-scoped validation failure that blocks a step advance.

    ``errors`` maps a field path (``"basic_details.title"``) to a message.
    Never sent to the marketplace.
    """

    def __init__(self, errors: dict[str, str], message: str = "Please fix the highlighted fields"):
        self.errors = dict(errors)
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
        )

    def details(self) -> dict:
        return {"errors": [{"field": f, "message": m} for f, m in self.errors.items()]}


class SubmissionError(BidMarketException):
    """The marketplace rejected the final create/update/publish."""

    def __init__(
        self,
        message: str,
        field_errors: Union[dict[str, str], None] = None,
        status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
    ):
        self.field_errors = dict(field_errors or {})
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="SUBMISSION_FAILED",
        )

    def details(self) -> Union[dict, None]:
        if not self.field_errors:
            return None
        return {"errors": [{"field": f, "message": m} for f, m in self.field_errors.items()]}


class UploadError(BidMarketException):
    """A single image failed to upload or process. Other images are unaffected."""

    def __init__(self, message: str, filename: str = ""):
        self.filename = filename
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="UPLOAD_FAILED",
        )


class ToggleError(BidMarketException):
    """A watchlist add/remove failed; the caller has already rolled back."""

    def __init__(self, message: str, item_id: str = ""):
        self.item_id = item_id
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="WATCHLIST_TOGGLE_FAILED",
        )


class MarketplaceAPIError(BidMarketException):
    """The remote marketplace returned an error envelope or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        error_code: str = "MARKETPLACE_ERROR",
        field_errors: Union[dict[str, str], None] = None,
    ):
        self.field_errors = dict(field_errors or {})
        super().__init__(message=message, status_code=status_code, error_code=error_code)


class ResourceNotFoundError(BidMarketException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class InvalidTransitionError(BidMarketException):
    """The wizard was asked to do something its current state does not allow."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def bidmarket_exception_handler(
    request: Request,
    exc: BidMarketException,
) -> JSONResponse:
    """Handle custom bidmarket exceptions."""
    logger.warning(
        f"bidmarket exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details(),
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(BidMarketException, bidmarket_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
