"""
Tests for PesapalClient against a mocked Pesapal API.
"""

import json
from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from wedfund.errors import AuthError, ConfigurationError, GatewayQueryError, OrderSubmissionError
from wedfund.services.gateway_client import (
    OrderRequest,
    PesapalClient,
    parse_expiry,
)
from wedfund.config import GatewayConfig

BASE = "https://pay.example.test/pesapalv3/api"

TEST_GATEWAY_CONFIG = GatewayConfig(
    api_url="https://pay.example.test/pesapalv3",
    consumer_key="key",
    consumer_secret="secret",
    callback_url="https://site.example.test/payments/callback",
    cancel_url="https://site.example.test/payments/cancel",
    ipn_id="ipn-123",
)


def make_order(**overrides) -> OrderRequest:
    data = dict(
        reference="WED-1700000000000-abcdef12-xyz",
        amount=Decimal("50000.00"),
        currency="UGX",
        description="Wedding Contribution",
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
        phone="256700000000",
    )
    data.update(overrides)
    return OrderRequest(**data)


def make_client(handler, config=TEST_GATEWAY_CONFIG, token_cache=None) -> PesapalClient:
    return PesapalClient(config, transport=httpx.MockTransport(handler), token_cache=token_cache)


def token_response():
    return httpx.Response(200, json={"token": "tok-1", "expiryDate": "2030-01-01T00:00:00.1234567Z"})


def test_endpoint_tolerates_api_suffix():
    with_suffix = PesapalClient(replace(TEST_GATEWAY_CONFIG, api_url="https://x.test/v3/api/"))
    without = PesapalClient(replace(TEST_GATEWAY_CONFIG, api_url="https://x.test/v3"))

    assert with_suffix._endpoint("Auth/RequestToken") == "https://x.test/v3/api/Auth/RequestToken"
    assert without._endpoint("Auth/RequestToken") == "https://x.test/v3/api/Auth/RequestToken"


def test_parse_expiry_truncates_fraction():
    parsed = parse_expiry("2030-01-01T00:00:00.1234567Z")
    assert parsed.year == 2030
    assert parsed.microsecond == 123456
    assert parsed.tzinfo is not None
    assert parse_expiry("not a date") is None


@pytest.mark.asyncio
async def test_authenticate_sends_credentials():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return token_response()

    token = await make_client(handler).authenticate()

    assert token.token == "tok-1"
    assert token.expiry_date == "2030-01-01T00:00:00.1234567Z"
    assert seen["url"] == f"{BASE}/Auth/RequestToken"
    assert seen["body"] == {"consumer_key": "key", "consumer_secret": "secret"}


@pytest.mark.asyncio
async def test_authenticate_missing_config():
    client = make_client(lambda r: token_response(), config=replace(TEST_GATEWAY_CONFIG, consumer_secret=""))

    with pytest.raises(AuthError) as exc:
        await client.authenticate()
    assert "PESAPAL_CONSUMER_SECRET" in exc.value.message


def test_require_order_names_missing_variables():
    config = replace(TEST_GATEWAY_CONFIG, callback_url="", ipn_id="")
    with pytest.raises(ConfigurationError) as exc:
        config.require_order()
    assert "PESAPAL_CALLBACK_URL" in exc.value.message
    assert "PESAPAL_IPN_ID" in exc.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(401, text="bad credentials"),
    httpx.Response(200, json={"error": {"code": "invalid_consumer_key"}}),
])
async def test_authenticate_failures(response):
    with pytest.raises(AuthError):
        await make_client(lambda r: response).authenticate()


@pytest.mark.asyncio
async def test_authenticate_uses_token_cache():
    cache = AsyncMock()
    cache.get.return_value = {"token": "cached", "expiry_date": "2030-01-01T00:00:00Z"}

    def handler(request):
        raise AssertionError("should not call Pesapal")

    token = await make_client(handler, token_cache=cache).authenticate()

    assert token.token == "cached"
    cache.set.assert_not_called()


@pytest.mark.asyncio
async def test_submit_order_payload_and_result():
    seen = {}

    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "order_tracking_id": "track-9",
            "merchant_reference": "WED-1700000000000-abcdef12-xyz",
            "redirect_url": "https://pay.example.test/checkout/track-9",
            "status": "200",
        })

    submitted = await make_client(handler).submit_order(make_order())

    assert submitted.order_tracking_id == "track-9"
    assert submitted.redirect_url == "https://pay.example.test/checkout/track-9"
    assert seen["auth"] == "Bearer tok-1"

    body = seen["body"]
    assert body["id"] == "WED-1700000000000-abcdef12-xyz"
    assert body["amount"] == 50000.0
    assert body["currency"] == "UGX"
    assert body["callback_url"] == TEST_GATEWAY_CONFIG.callback_url
    assert body["cancel_url"] == TEST_GATEWAY_CONFIG.cancel_url
    assert body["notification_id"] == "ipn-123"
    assert body["billing_address"] == {
        "email_address": "jane@example.com",
        "phone_number": "256700000000",
        "country_code": "UG",
        "first_name": "Jane",
        "last_name": "Doe",
        "line_1": "N/A",
        "city": "Kampala",
        "postal_code": "00000",
    }


@pytest.mark.asyncio
async def test_submit_order_http_error_carries_status():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        return httpx.Response(404, text="Not Found")

    with pytest.raises(OrderSubmissionError) as exc:
        await make_client(handler).submit_order(make_order())

    assert exc.value.status == 404
    assert exc.value.body == "Not Found"
    assert exc.value.is_service_unavailable


@pytest.mark.asyncio
async def test_submit_order_network_error_is_service_unavailable():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        raise httpx.ConnectError("connection refused")

    with pytest.raises(OrderSubmissionError) as exc:
        await make_client(handler).submit_order(make_order())

    assert exc.value.status is None
    assert exc.value.is_service_unavailable


@pytest.mark.asyncio
async def test_submit_order_auth_failure_is_502():
    with pytest.raises(OrderSubmissionError) as exc:
        await make_client(lambda r: httpx.Response(500, text="boom")).submit_order(make_order())

    assert exc.value.status == 502
    assert not exc.value.is_service_unavailable


@pytest.mark.asyncio
async def test_query_status_uppercases_description():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        assert request.url.params["orderTrackingId"] == "track-9"
        return httpx.Response(200, json={
            "payment_method": "MpesaKE",
            "amount": 50000,
            "created_date": "2026-10-17T10:00:00",
            "confirmation_code": "ABC123",
            "payment_status_description": "Completed",
            "merchant_reference": "WED-1",
            "currency": "UGX",
        })

    details = await make_client(handler).query_status("track-9")

    assert details.status == "COMPLETED"
    assert details.method == "MpesaKE"
    assert details.confirmation_code == "ABC123"
    assert details.amount == Decimal("50000")


@pytest.mark.asyncio
async def test_query_status_failure():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        return httpx.Response(500, text="error")

    with pytest.raises(GatewayQueryError):
        await make_client(handler).query_status("track-9")


@pytest.mark.asyncio
async def test_register_ipn():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        assert request.url.path.endswith("/URLSetup/RegisterIPN")
        assert json.loads(request.content) == {
            "url": "https://site.example.test/api/payments/ipn",
            "ipn_notification_type": "POST",
        }
        return httpx.Response(200, json={"ipn_id": "ipn-new", "url": "https://site.example.test/api/payments/ipn"})

    ipn_id = await make_client(handler).register_ipn("https://site.example.test/api/payments/ipn")
    assert ipn_id == "ipn-new"


@pytest.mark.asyncio
async def test_authenticate_caches_fresh_token_until_margin():
    cache = AsyncMock()
    cache.get.return_value = None

    token = await make_client(lambda r: token_response(), token_cache=cache).authenticate()

    assert token.token == "tok-1"
    payload = cache.set.await_args.args[0]
    assert payload == {"token": "tok-1", "expiry_date": "2030-01-01T00:00:00.1234567Z"}
    assert cache.set.await_args.kwargs["ttl"] > 0


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["callback_url", "cancel_url", "ipn_id"])
async def test_submit_order_requires_routing_config(missing):
    def handler(request):
        raise AssertionError("no order may be sent")

    client = make_client(handler, config=replace(TEST_GATEWAY_CONFIG, **{missing: ""}))

    with pytest.raises(ConfigurationError):
        await client.submit_order(make_order())


@pytest.mark.asyncio
async def test_cancel_order_success():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        assert request.url.path.endswith("/Transactions/CancelOrder")
        assert json.loads(request.content) == {"order_tracking_id": "track-9"}
        return httpx.Response(200, json={"status": "200", "message": "Request processed successfully"})

    data = await make_client(handler).cancel_order("track-9")
    assert data["status"] == "200"


@pytest.mark.asyncio
async def test_cancel_order_refusal_in_body_is_error():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        return httpx.Response(200, json={"status": "500", "message": "Order cannot be cancelled"})

    with pytest.raises(GatewayQueryError, match="Order cannot be cancelled"):
        await make_client(handler).cancel_order("track-9")


@pytest.mark.asyncio
async def test_register_ipn_network_error():
    def handler(request):
        if request.url.path.endswith("RequestToken"):
            return token_response()
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayQueryError):
        await make_client(handler).register_ipn("https://site.example.test/api/payments/ipn")


@pytest.mark.asyncio
async def test_register_ipn_auth_failure():
    with pytest.raises(GatewayQueryError):
        await make_client(lambda r: httpx.Response(401, text="bad credentials")).register_ipn(
            "https://site.example.test/api/payments/ipn"
        )
