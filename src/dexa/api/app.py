"""FastAPI application factory for the analytics HTTP API."""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dexa.api import routes
from dexa.exceptions import InvalidRequestError
from dexa.logging import get_logger

logger = get_logger(__name__)


async def _invalid_request_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info("invalid_request", path=request.url.path, error=str(exc))
    return JSONResponse(content={"error": str(exc)}, status_code=400)


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to start and stop the fetch jobs.

    Route handlers read the services from app.state: balance_service,
    price_service and market_service.
    """
    app = FastAPI(title="DEX Analytics", lifespan=lifespan)
    app.add_exception_handler(InvalidRequestError, _invalid_request_handler)
    app.include_router(routes.router)
    return app
