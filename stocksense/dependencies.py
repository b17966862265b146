from typing import Optional

from fastapi import Depends, Header, Request

from stocksense.config import get_settings
from stocksense.core.security import authenticate_request, company_id_from_auth
from stocksense.services.container import InventoryServices


def get_services(request: Request) -> InventoryServices:
    return request.app.state.services


def get_db(request: Request):
    db = request.app.state.services.session_factory()
    try:
        yield db
    finally:
        db.close()


def require_auth(request: Request, authorization: Optional[str] = Header(None)):
    """Devices (API key) or operators (bearer JWT)."""
    header = get_settings().API_KEY_HEADER
    api_key = request.headers.get(header) or request.headers.get("api-key")
    return authenticate_request(
        api_key=api_key,
        authorization=authorization,
    )


def require_operator(authorization: Optional[str] = Header(None)):
    return authenticate_request(
        api_key=None,
        authorization=authorization,
        allow_api_key=False,
    )


def require_company(auth: dict = Depends(require_operator)) -> int:
    return company_id_from_auth(auth)


__all__ = [
    "get_db",
    "get_services",
    "require_auth",
    "require_company",
    "require_operator",
]
