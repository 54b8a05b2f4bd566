from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.config import get_gateway_config, settings
from wedfund.database import get_db
from wedfund.errors import WeddingFundError
from wedfund.redis import TokenCache
from wedfund.services.gateway_client import PesapalClient
from wedfund.services.payment_service import PaymentService


def get_gateway_client() -> PesapalClient:
    """Pesapal client built from the process-wide immutable config."""
    return PesapalClient(get_gateway_config(), token_cache=TokenCache())


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: PesapalClient = Depends(get_gateway_client),
) -> PaymentService:
    return PaymentService(db, gateway)


async def get_admin_user(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
) -> str:
    """
    Validate the Admin Key header.
    Returns the key if valid, raises 401 otherwise.
    """
    if not x_admin_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Admin Key",
        )

    valid_key = settings.admin_api_key
    if not valid_key or x_admin_key != valid_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Admin Key",
        )

    return x_admin_key


def error_response(exc: WeddingFundError) -> JSONResponse:
    """Structured {error} body with the error's status code."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
