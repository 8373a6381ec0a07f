"""
Domain errors and their HTTP translation.

Stores raise these; only the handlers registered by
`register_exception_handlers` turn them into status codes.
Response body: {"error": <code>, "detail": <message>}.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from logger import logger


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
        self.message = message


class BadRequest(AppError):
    status_code = 400
    code = "BAD_REQUEST"


class EmptyCart(BadRequest):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InvalidQuantity(BadRequest):
    code = "INVALID_QUANTITY"

    def __init__(self, message: str = "Quantity must be a positive integer"):
        super().__init__(message)


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"


class StorageError(AppError):
    status_code = 500
    code = "STORAGE_ERROR"


class CheckoutIncomplete(StorageError):
    """Purchase was recorded but the cart could not be cleared."""

    code = "CHECKOUT_INCOMPLETE"

    def __init__(self, purchase_id: str):
        super().__init__(
            f"Purchase {purchase_id} was recorded but the cart was not cleared"
        )
        self.purchase_id = purchase_id


def error_body(code: str, detail: str, **extra) -> dict:
    body = {"error": code, "detail": detail}
    body.update(extra)
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            extra={"error_code": exc.code, "error_message": exc.message, "path": request.url.path},
        )
    extra = {}
    if isinstance(exc, CheckoutIncomplete):
        extra["purchaseId"] = exc.purchase_id
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, **extra),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body(
            "VALIDATION_ERROR",
            "Invalid request",
            errors=jsonable_encoder(exc.errors()),
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
