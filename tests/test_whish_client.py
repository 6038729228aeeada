"""Tests for the Whish gateway client (httpx.MockTransport, no network)."""

import json

import httpx
import pytest

from marketplace.services.whish import WhishClient, PaymentGatewayError

BASE = "https://api.sandbox.whish.test/itel-service/api/"


def _client(handler, **overrides) -> WhishClient:
    kwargs = {
        "base_url": BASE,
        "channel": "10001",
        "secret": "s3cret",
        "website_url": "marketplace.test",
        "transport": httpx.MockTransport(handler),
    }
    kwargs.update(overrides)
    return WhishClient(**kwargs)


def _ok(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"status": True, "code": None, "dialog": None, "data": data})


@pytest.mark.asyncio
async def test_create_payment_sends_headers_and_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["method"] = request.method
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return _ok({"collectUrl": "https://whish.test/pay/abc"})

    url = await _client(handler).create_payment(
        amount=100.0,
        currency="USD",
        invoice="Company Branch Sponsorship - Acme - Downtown - Sponsorship: Gold",
        external_id=1700000000123,
        success_callback_url="https://api.test/cb/success",
        failure_callback_url="https://api.test/cb/failure",
        success_redirect_url="app://payment-success?requestId=1",
        failure_redirect_url="app://payment-failed?requestId=1",
    )

    assert url == "https://whish.test/pay/abc"
    assert seen["method"] == "POST"
    assert seen["url"] == BASE + "payment/whish"
    assert seen["headers"]["channel"] == "10001"
    assert seen["headers"]["secret"] == "s3cret"
    assert seen["headers"]["websiteurl"] == "marketplace.test"
    assert seen["body"]["externalId"] == 1700000000123
    assert seen["body"]["amount"] == 100.0
    assert seen["body"]["successCallbackUrl"] == "https://api.test/cb/success"


@pytest.mark.asyncio
async def test_payment_status():
    def handler(request):
        assert request.url.path.endswith("payment/collect/status")
        assert json.loads(request.content) == {"currency": "USD", "externalId": 42}
        return _ok({"collectStatus": "success", "payerPhoneNumber": "96170123456"})

    status, phone = await _client(handler).get_payment_status("USD", 42)
    assert status == "success"
    assert phone == "96170123456"


@pytest.mark.asyncio
async def test_balance_and_rate():
    def handler(request):
        if request.url.path.endswith("payment/account/balance"):
            assert request.method == "GET"
            return _ok({"balanceDetails": {"balance": 321.5}})
        return _ok({"rate": 1.25})

    client = _client(handler)
    assert await client.get_balance() == 321.5
    assert await client.get_rate(100.0, "USD") == 1.25


@pytest.mark.asyncio
async def test_error_response_raises_with_dialog_message():
    def handler(request):
        return httpx.Response(200, json={
            "status": False,
            "code": "INVALID_AMOUNT",
            "dialog": {"title": "Error", "message": "Amount too low"},
            "data": None,
        })

    with pytest.raises(PaymentGatewayError) as exc:
        await _client(handler).create_payment(
            amount=0.1, currency="USD", invoice="x", external_id=1,
            success_callback_url="a", failure_callback_url="b",
            success_redirect_url="c", failure_redirect_url="d",
        )
    assert exc.value.code == "INVALID_AMOUNT"
    assert "Amount too low" in str(exc.value)


@pytest.mark.asyncio
async def test_malformed_payloads_raise():
    def handler(request):
        if request.url.path.endswith("balance"):
            return _ok({"balanceDetails": {"balance": "lots"}})
        if request.url.path.endswith("rate"):
            return httpx.Response(502, text="<html>Bad gateway</html>")
        return _ok({})

    client = _client(handler)
    with pytest.raises(PaymentGatewayError):
        await client.get_balance()
    with pytest.raises(PaymentGatewayError):
        await client.get_rate(10.0, "USD")
    with pytest.raises(PaymentGatewayError):
        await client.create_payment(
            amount=1.0, currency="USD", invoice="x", external_id=1,
            success_callback_url="a", failure_callback_url="b",
            success_redirect_url="c", failure_redirect_url="d",
        )


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError):
        await _client(handler).get_payment_status("USD", 1)


@pytest.mark.asyncio
async def test_missing_credentials():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(PaymentGatewayError) as exc:
        await _client(handler, secret="").get_balance()
    assert "credentials" in str(exc.value)
