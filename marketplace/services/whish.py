"""
Whish payment gateway client.

Every call carries the merchant headers (channel, secret, websiteurl) and
every response has the shape {status, code, dialog, data}; ``status: false``
is a gateway-side error described by ``dialog.message``.

Endpoints used:
  POST payment/whish           → data.collectUrl
  POST payment/collect/status  → data.collectStatus, data.payerPhoneNumber
  GET  payment/account/balance → data.balanceDetails.balance
  POST payment/whish/rate      → data.rate
"""

import logging

import httpx

from marketplace.config import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Raised when the gateway is unreachable or answers with an error."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class WhishClient:
    def __init__(
        self,
        base_url: str | None = None,
        channel: str | None = None,
        secret: str | None = None,
        website_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.whish_base_url
        self.channel = channel if channel is not None else settings.whish_channel
        self.secret = secret if secret is not None else settings.whish_secret
        self.website_url = website_url if website_url is not None else settings.whish_website_url
        self.timeout = timeout or settings.whish_timeout
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "channel": self.channel or "",
            "secret": self.secret or "",
            "websiteurl": self.website_url or "",
        }

    async def _request(self, method: str, endpoint: str, payload: dict | None = None) -> dict:
        if not (self.channel and self.secret and self.website_url):
            raise PaymentGatewayError(
                "Missing Whish credentials. Set WHISH_CHANNEL, WHISH_SECRET and WHISH_WEBSITE_URL."
            )

        if settings.whish_debug:
            logger.info("Whish request: %s %s%s channel=%s", method, self.base_url, endpoint, self.channel)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, endpoint, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Failed to reach Whish: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise PaymentGatewayError(f"Failed to parse Whish response (HTTP {resp.status_code})") from e

        if settings.whish_debug:
            logger.info("Whish response: %s", body)

        if not isinstance(body, dict) or not body.get("status"):
            code = body.get("code") if isinstance(body, dict) else None
            code = str(code) if code is not None else "unknown"
            dialog = body.get("dialog") if isinstance(body, dict) else None
            message = dialog.get("message") if isinstance(dialog, dict) else None
            logger.warning("Whish API error: code=%s dialog=%s", code, dialog)
            raise PaymentGatewayError(
                f"whish API error: {code} - {message}" if message else f"whish API error: {code}",
                code=code,
            )

        return body.get("data") or {}

    async def create_payment(
        self,
        *,
        amount: float,
        currency: str,
        invoice: str,
        external_id: int,
        success_callback_url: str,
        failure_callback_url: str,
        success_redirect_url: str,
        failure_redirect_url: str,
    ) -> str:
        """Create a hosted payment and return its collect URL."""
        data = await self._request("POST", "payment/whish", {
            "amount": amount,
            "currency": currency,
            "invoice": invoice,
            "externalId": external_id,
            "successCallbackUrl": success_callback_url,
            "failureCallbackUrl": failure_callback_url,
            "successRedirectUrl": success_redirect_url,
            "failureRedirectUrl": failure_redirect_url,
        })
        collect_url = data.get("collectUrl")
        if not isinstance(collect_url, str) or not collect_url:
            raise PaymentGatewayError("Failed to parse collect URL from response")
        return collect_url

    async def get_payment_status(self, currency: str, external_id: int) -> tuple[str, str]:
        """Return (collectStatus, payerPhoneNumber) for a payment."""
        data = await self._request("POST", "payment/collect/status", {
            "currency": currency,
            "externalId": external_id,
        })
        status = data.get("collectStatus")
        phone = data.get("payerPhoneNumber")
        return (
            status if isinstance(status, str) else "",
            phone if isinstance(phone, str) else "",
        )

    async def get_balance(self) -> float:
        data = await self._request("GET", "payment/account/balance")
        details = data.get("balanceDetails")
        balance = details.get("balance") if isinstance(details, dict) else None
        if isinstance(balance, bool) or not isinstance(balance, (int, float)):
            raise PaymentGatewayError("Failed to parse balance from response")
        return float(balance)

    async def get_rate(self, amount: float, currency: str) -> float:
        """Fee rate the gateway will deduct from an invoice of ``amount``."""
        data = await self._request("POST", "payment/whish/rate", {
            "amount": amount,
            "currency": currency,
        })
        rate = data.get("rate")
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            raise PaymentGatewayError("Failed to parse rate from response")
        return float(rate)


def get_payment_gateway() -> WhishClient:
    """FastAPI dependency; overridden in tests."""
    return WhishClient()
