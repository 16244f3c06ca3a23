"""Client for the payments platform's refund endpoint."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)

REFUND_PATH = "/api/payments/refund"
DEFAULT_ERROR = "Refund API failed"


@dataclass(frozen=True)
class RefundOutcome:
    """Result of one refund request."""

    ok: bool
    error: Optional[str] = None


class RefundService(Protocol):
    """Anything that can ask the payments platform to refund a booking."""

    async def request_refund(
        self,
        booking_id: UUID,
        vendor_cancellation: bool,
        vendor_id: str,
    ) -> RefundOutcome:
        ...


class HttpRefundClient:
    """
    Refund service over HTTP.

    Sends ``POST {base_url}/api/payments/refund`` with the booking id and the
    cancelling vendor. A 2xx response is success; any other status, or a
    transport error, is reported as a failed outcome rather than raised.
    Requests are never retried; the payments platform owns refund idempotency.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def request_refund(
        self,
        booking_id: UUID,
        vendor_cancellation: bool,
        vendor_id: str,
    ) -> RefundOutcome:
        payload = {
            "bookingId": str(booking_id),
            "vendorCancellation": vendor_cancellation,
            "vendorId": vendor_id,
        }

        try:
            response = await self._client.post(REFUND_PATH, json=payload)
        except httpx.HTTPError as e:
            logger.warning(
                "Refund request failed in transport",
                extra={"booking_id": str(booking_id), "error": str(e) or type(e).__name__}
            )
            return RefundOutcome(ok=False, error=str(e) or type(e).__name__)

        if response.is_success:
            return RefundOutcome(ok=True)

        error = self._error_message(response)
        logger.warning(
            "Refund request rejected",
            extra={
                "booking_id": str(booking_id),
                "status_code": response.status_code,
                "error": error,
            }
        )
        return RefundOutcome(ok=False, error=error)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return DEFAULT_ERROR
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return DEFAULT_ERROR

    async def aclose(self) -> None:
        await self._client.aclose()
