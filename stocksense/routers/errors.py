import logging
from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from stocksense.core.exceptions import InventoryError

logger = logging.getLogger(__name__)


@contextmanager
def service_errors():
    """Map service exceptions onto HTTP responses."""
    try:
        yield
    except InventoryError as exc:
        headers = {"Retry-After": "1"} if exc.retryable else None
        raise HTTPException(status_code=exc.status_code, detail=str(exc), headers=headers) from exc
    except SQLAlchemyError as exc:
        logger.exception("Database error while handling request")
        raise HTTPException(
            status_code=503,
            detail="Database unavailable, retry the request",
            headers={"Retry-After": "1"},
        ) from exc
