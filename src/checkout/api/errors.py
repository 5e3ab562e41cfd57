"""Exception handlers for checkout errors.

Protean's own exceptions (ValidationError, ObjectNotFoundError) are mapped
by ``protean.integrations.fastapi.register_exception_handlers``; these
handlers cover the checkout and backend errors on top of it.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from checkout.backend.port import BackendError
from checkout.errors import CheckoutError

logger = structlog.get_logger(__name__)


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    logger.info("Checkout request failed", path=request.url.path, error=type(exc).__name__, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    logger.warning("Storefront backend error", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=502,
        content={"message": "The store is temporarily unavailable. Please try again.", "status": "error"},
    )


def register_checkout_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CheckoutError, checkout_error_handler)
    app.add_exception_handler(BackendError, backend_error_handler)
