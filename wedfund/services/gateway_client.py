"""
Pesapal Client - authentication, order submission and status queries
against the Pesapal v3 REST API.

Only ever runs server-side: the consumer secret must never reach a browser.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

import httpx

from wedfund.config import GatewayConfig
from wedfund.errors import AuthError, ConfigurationError, OrderSubmissionError, GatewayQueryError
from wedfund.redis import TokenCache

logger = logging.getLogger(__name__)

# Refresh a cached token this many seconds before Pesapal expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 30

# Pesapal tokens are valid for five minutes
DEFAULT_TOKEN_TTL_SECONDS = 240


@dataclass
class GatewayToken:
    token: str
    expiry_date: str


@dataclass
class OrderRequest:
    """Everything Pesapal needs to create a hosted checkout."""

    reference: str
    amount: Decimal
    currency: str
    description: str
    first_name: str
    last_name: str
    email: str
    phone: str


@dataclass
class SubmittedOrder:
    order_tracking_id: str
    redirect_url: str


@dataclass
class GatewayPaymentDetails:
    """
    Reduced view of GetTransactionStatus.

    `status` uses the IPN vocabulary (COMPLETED, FAILED, INVALID, ...).
    """

    status: str
    method: str
    date: str
    merchant_reference: str = ""
    confirmation_code: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def parse_expiry(expiry_date: str) -> Optional[datetime]:
    """
    Parse Pesapal's expiryDate ("2024-05-01T10:15:30.5177702Z").

    Fractional seconds are truncated to microseconds.
    """
    if not expiry_date:
        return None
    value = expiry_date.strip().replace("Z", "+00:00")
    value = re.sub(r"\.(\d{6})\d+", r".\1", value)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def token_cache_ttl(token: GatewayToken) -> int:
    """Seconds a token may be cached; zero or less means don't cache it."""
    expires_at = parse_expiry(token.expiry_date)
    if not expires_at:
        return DEFAULT_TOKEN_TTL_SECONDS
    remaining = (expires_at - datetime.now(timezone.utc)).total_seconds()
    return int(remaining) - TOKEN_EXPIRY_MARGIN_SECONDS


class PesapalClient:
    """Client for the Pesapal v3 API."""

    def __init__(
        self,
        config: GatewayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self.config = config
        self._transport = transport
        self.token_cache = token_cache

    def _endpoint(self, path: str) -> str:
        """Build {base}/api/{path}, tolerating a base URL that already ends in /api."""
        base = self.config.api_url.rstrip("/")
        if base.endswith("/api"):
            base = base[: -len("/api")]
        return f"{base}/api/{path}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )

    async def authenticate(self, use_cache: bool = True) -> GatewayToken:
        """
        Exchange consumer key/secret for a bearer token.

        Raises AuthError on missing configuration, transport failure,
        non-2xx responses or a response without a token.
        """
        try:
            self.config.require_auth()
        except ConfigurationError as e:
            raise AuthError(e.message) from e

        if use_cache and self.token_cache:
            cached = await self.token_cache.get()
            if cached and cached.get("token"):
                return GatewayToken(token=cached["token"], expiry_date=cached.get("expiry_date", ""))

        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint("Auth/RequestToken"),
                    json={
                        "consumer_key": self.config.consumer_key,
                        "consumer_secret": self.config.consumer_secret,
                    },
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Pesapal auth request failed: {e}")
            raise AuthError(f"Pesapal auth request failed: {e}") from e

        logger.info(f"Pesapal auth response status: {response.status_code}")

        if not response.is_success:
            logger.error(f"Pesapal auth failed: {response.status_code} {response.text}")
            raise AuthError(f"Pesapal auth failed: {response.status_code} - {response.text}")

        data = response.json()
        if not data.get("token"):
            logger.error(f"Pesapal auth returned no token: {data.get('error')}")
            raise AuthError(f"Pesapal auth failed: {data.get('error') or 'no token in response'}")

        token = GatewayToken(token=data["token"], expiry_date=data.get("expiryDate", ""))

        if self.token_cache:
            await self.token_cache.set(
                {"token": token.token, "expiry_date": token.expiry_date},
                ttl=token_cache_ttl(token),
            )

        return token

    def build_order_payload(self, order: OrderRequest) -> Dict[str, Any]:
        """SubmitOrderRequest body. Billing address uses configured placeholders."""
        return {
            "id": order.reference,
            "currency": order.currency,
            "amount": float(order.amount),
            "description": order.description,
            "callback_url": self.config.callback_url,
            "cancel_url": self.config.cancel_url,
            "notification_id": self.config.ipn_id,
            "billing_address": {
                "email_address": order.email,
                "phone_number": order.phone,
                "country_code": self.config.country_code,
                "first_name": order.first_name,
                "last_name": order.last_name,
                "line_1": self.config.billing_line_1,
                "city": self.config.billing_city,
                "postal_code": self.config.billing_postal_code,
            },
        }

    async def submit_order(self, order: OrderRequest, token: Optional[GatewayToken] = None) -> SubmittedOrder:
        """
        Submit an order and return the hosted checkout redirect.

        The merchant reference is passed through verbatim.
        Raises ConfigurationError when callback/cancel URLs or the IPN id
        are missing, OrderSubmissionError(status, body) on gateway failure.
        """
        self.config.require_order()

        if token is None:
            try:
                token = await self.authenticate()
            except AuthError as e:
                raise OrderSubmissionError(
                    f"Failed to authenticate with Pesapal: {e.message}",
                    status=502,
                    body=e.message,
                ) from e

        payload = self.build_order_payload(order)

        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint("Transactions/SubmitOrderRequest"),
                    json=payload,
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {token.token}",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Pesapal order submission request failed: {e}")
            raise OrderSubmissionError(f"Pesapal order submission request failed: {e}") from e

        logger.info(f"Pesapal order submission response status: {response.status_code}")

        if not response.is_success:
            logger.error(f"Pesapal order submission failed: {response.status_code} {response.text}")
            raise OrderSubmissionError(
                f"Pesapal order submission failed: {response.status_code} - {response.text}",
                status=response.status_code,
                body=response.text,
            )

        data = response.json()
        if not data.get("order_tracking_id") or not data.get("redirect_url"):
            logger.error(f"Pesapal order submission rejected: {data}")
            raise OrderSubmissionError(
                f"Pesapal order submission rejected: {data.get('error') or data}",
                status=int(data.get("status") or 500),
                body=response.text,
            )

        logger.info(f"Pesapal order {order.reference} accepted: {data['order_tracking_id']}")
        return SubmittedOrder(
            order_tracking_id=data["order_tracking_id"],
            redirect_url=data["redirect_url"],
        )

    async def query_status(self, tracking_id: str) -> GatewayPaymentDetails:
        """Live GetTransactionStatus lookup. Raises GatewayQueryError."""
        try:
            token = await self.authenticate()
        except AuthError as e:
            raise GatewayQueryError(f"Failed to authenticate with Pesapal: {e.message}") from e

        try:
            async with self._client() as client:
                response = await client.get(
                    self._endpoint("Transactions/GetTransactionStatus"),
                    params={"orderTrackingId": tracking_id},
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {token.token}",
                    },
                )
        except httpx.HTTPError as e:
            raise GatewayQueryError(f"Pesapal status query failed: {e}") from e

        if not response.is_success:
            raise GatewayQueryError(f"Pesapal status query failed: {response.status_code} - {response.text}")

        data = response.json()
        description = data.get("payment_status_description") or ""
        amount = data.get("amount")

        return GatewayPaymentDetails(
            status=description.upper(),
            method=data.get("payment_method") or "Unknown",
            date=data.get("created_date") or datetime.now(timezone.utc).isoformat(),
            merchant_reference=data.get("merchant_reference") or "",
            confirmation_code=data.get("confirmation_code"),
            description=data.get("description"),
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=data.get("currency"),
            raw=data,
        )

    async def cancel_order(self, tracking_id: str) -> Dict[str, Any]:
        """Ask Pesapal to cancel an order that is still pending."""
        try:
            token = await self.authenticate()
        except AuthError as e:
            raise GatewayQueryError(f"Failed to authenticate with Pesapal: {e.message}") from e

        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint("Transactions/CancelOrder"),
                    json={"order_tracking_id": tracking_id},
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {token.token}",
                    },
                )
        except httpx.HTTPError as e:
            raise GatewayQueryError(f"Pesapal cancel request failed: {e}") from e

        if not response.is_success:
            raise GatewayQueryError(f"Pesapal cancel failed: {response.status_code} - {response.text}")

        # Pesapal answers 200 even when it refuses; the verdict is in the body
        data = response.json()
        if str(data.get("status")) != "200":
            logger.warning(f"Pesapal refused to cancel {tracking_id}: {data}")
            raise GatewayQueryError(
                f"Pesapal cancel rejected: {data.get('message') or data.get('error') or data}"
            )

        return data

    async def register_ipn(self, url: str, notification_type: str = "POST") -> str:
        """Register an IPN URL and return its notification id."""
        try:
            token = await self.authenticate(use_cache=False)
        except AuthError as e:
            raise GatewayQueryError(f"Failed to authenticate with Pesapal: {e.message}") from e

        try:
            async with self._client() as client:
                response = await client.post(
                    self._endpoint("URLSetup/RegisterIPN"),
                    json={"url": url, "ipn_notification_type": notification_type},
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {token.token}",
                    },
                )
        except httpx.HTTPError as e:
            raise GatewayQueryError(f"Pesapal IPN registration request failed: {e}") from e

        if not response.is_success:
            raise GatewayQueryError(f"Pesapal IPN registration failed: {response.status_code} - {response.text}")

        data = response.json()
        ipn_id = data.get("ipn_id")
        if not ipn_id:
            raise GatewayQueryError(f"Pesapal IPN registration returned no id: {data}")
        return ipn_id
