"""Payment gateway client (Razorpay Orders API).

Creates orders over HTTPS with Basic auth built from the key id / key secret
pair. Only connection-establishment failures are retried: when the TCP
connection never opened, the gateway cannot have created an order, so a
retry cannot produce a duplicate. Anything after the request was sent is
reported to the caller as a GatewayError.
"""

from __future__ import annotations

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from token_bazaar.domain.exceptions import GatewayAuthError, GatewayError
from token_bazaar.domain.models import GatewayOrder
from token_bazaar.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.razorpay.com/v1"


class RazorpayGatewayClient:
    """PaymentGatewayClient for the Razorpay REST API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # Keys pasted from dashboards often carry stray whitespace
        self.key_id = key_id.strip()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(self.key_id, key_secret.strip()),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        """Create a gateway order for ``amount`` minor units of ``currency``."""
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }

        try:
            response = await self._post_order(payload)
        except httpx.TimeoutException as exc:
            logger.error("gateway.timeout", receipt=receipt)
            raise GatewayError("Payment gateway timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("gateway.transport_error", receipt=receipt, error=str(exc))
            raise GatewayError("Payment gateway unreachable") from exc

        if response.status_code == 401:
            logger.error("gateway.auth_failed", key_id_prefix=self.key_id[:8])
            raise GatewayAuthError()
        if response.is_error:
            logger.error(
                "gateway.order_failed",
                status=response.status_code,
                body=response.text[:500],
            )
            raise GatewayError(
                "Failed to create payment order. Please try again.",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayError("Payment gateway returned a malformed response") from exc

        order_id = data.get("id") if isinstance(data, dict) else None
        if not order_id:
            raise GatewayError("Payment gateway response did not include an order id")

        logger.info("gateway.order_created", order_id=order_id, amount=amount, currency=currency)
        return GatewayOrder(
            id=order_id,
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )

    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        reraise=True,
    )
    async def _post_order(self, payload: dict) -> httpx.Response:
        return await self._client.post("/orders", json=payload)

    async def aclose(self) -> None:
        await self._client.aclose()
