"""
Mail transport client for the hosted email API.
Sends compose and follow-up emails and fetches a conversation with one recipient.
Low-level HTTP client; no retries, every resend is user-triggered.
"""

from dataclasses import dataclass
from typing import Any

import httpx

from hirebuddy.config import settings
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SEND_EMAIL_PATH = "/send_email"
SEND_FOLLOW_UP_PATH = "/send_followup"
CONVERSATION_PATH = "/get_email_and_replies"


class MailTransportClientError(Exception):
    """Custom exception for email API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: Any = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data


@dataclass(frozen=True, slots=True)
class SendReceipt:
    message_id: str | None
    thread_id: str | None


@dataclass(frozen=True, slots=True)
class FollowUpReceipt:
    message: str
    message_id: str | None = None
    thread_id: str | None = None


class MailTransportClient:
    """
    Client for the email API.

    Wraps the three endpoints the outreach flow needs and maps every failure
    to MailTransportClientError with a user-facing message.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.EMAIL_API_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.EMAIL_API_TIMEOUT_SECONDS
        self._client = self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for the email API."""
        timeout = httpx.Timeout(self._timeout)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(
            timeout=timeout,
            limits=limits,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any], operation: str) -> Any:
        try:
            response = await self._client.post(f"{self.base_url}{path}", json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Email API {operation} timed out", error=str(e))
            raise MailTransportClientError(
                "The email service did not respond in time. Please try again.",
                error_code="timeout",
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Email API {operation} request failed", error=str(e))
            raise MailTransportClientError(
                f"Could not reach the email service: {e}", error_code="network_error"
            ) from e

        return self._handle_api_response(response, operation)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        """
        Handle and validate an email API response.

        Args:
            response: HTTP response from the email API
            operation: Operation name for logging

        Returns:
            Parsed JSON body

        Raises:
            MailTransportClientError: If the response is an error
        """
        logger.debug(
            f"Email API {operation} response",
            status_code=response.status_code,
            response_size=len(response.text) if response.text else 0,
        )

        try:
            data = response.json() if response.text else {}
        except ValueError:
            data = None

        if response.is_success:
            if data is None:
                raise MailTransportClientError(
                    "Invalid response format from email service",
                    error_code="invalid_response",
                    status_code=response.status_code,
                )
            # The API reports plan and quota problems as a bare string body.
            if isinstance(data, str):
                logger.error(f"Email API {operation} returned an error message", message=data)
                raise MailTransportClientError(
                    data, error_code="api_message", status_code=response.status_code
                )
            return data

        message = self._extract_error_message(data) if data is not None else None
        logger.error(
            f"Email API {operation} failed",
            status_code=response.status_code,
            error_message=message,
            response_text=response.text[:200] if response.text else "",
        )
        raise MailTransportClientError(
            self._map_status_error(response.status_code, message),
            error_code=str(response.status_code),
            status_code=response.status_code,
            response_data=data,
        )

    @staticmethod
    def _extract_error_message(data: Any) -> str | None:
        if isinstance(data, str):
            return data
        if isinstance(data, dict):
            for key in ("error", "message", "detail"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
                if isinstance(value, dict) and value.get("message"):
                    return str(value["message"])
        return None

    @staticmethod
    def _map_status_error(status_code: int, message: str | None) -> str:
        """Map email API status codes to user-friendly messages."""
        error_mappings = {
            400: "The email request was rejected as invalid.",
            401: "Email sending is not authorized. Please reconnect your account.",
            403: "Email sending is not allowed for this account.",
            429: "Too many emails sent. Please try again later.",
            500: "Email service temporarily unavailable.",
            502: "Email service temporarily unavailable.",
            503: "Email service temporarily unavailable.",
        }
        base = error_mappings.get(status_code, f"Email service error (HTTP {status_code})")
        return f"{base} {message}" if message else base

    async def send(
        self, sender: str, to: str, subject: str, body: str, is_html: bool
    ) -> SendReceipt:
        """
        Send a compose email.

        Returns:
            SendReceipt with provider ids when the API returns them

        Raises:
            MailTransportClientError: If the send fails
        """
        logger.info("Sending email", to=to, is_html=is_html)
        data = await self._post(
            SEND_EMAIL_PATH,
            {"sender": sender, "to": to, "subject": subject, "body": body, "isHtml": is_html},
            "send_email",
        )
        receipt = SendReceipt(
            message_id=_pick(data, "messageId", "message_id", "id"),
            thread_id=_pick(data, "threadId", "thread_id"),
        )
        logger.info("Email sent successfully", to=to, message_id=receipt.message_id)
        return receipt

    async def send_follow_up(self, sender: str, to: str, body: str, is_html: bool) -> FollowUpReceipt:
        """Send a follow-up; the API derives the subject from the original thread."""
        logger.info("Sending follow-up email", to=to, is_html=is_html)
        data = await self._post(
            SEND_FOLLOW_UP_PATH,
            {"sender": sender, "to": to, "body": body, "isHtml": is_html},
            "send_followup",
        )
        receipt = FollowUpReceipt(
            message=_pick(data, "message") or "Follow-up sent",
            message_id=_pick(data, "messageId", "message_id", "id"),
            thread_id=_pick(data, "threadId", "thread_id"),
        )
        logger.info("Follow-up sent successfully", to=to, message_id=receipt.message_id)
        return receipt

    async def get_conversation(self, sender: str, recipient: str) -> Any:
        """Fetch the raw, unreconciled conversation between sender and recipient."""
        return await self._post(
            CONVERSATION_PATH, {"sender": sender, "recipient": recipient}, "get_email_and_replies"
        )

    async def health_check(self) -> dict[str, Any]:
        """
        Probe the email API.

        An empty request is expected to be rejected with 400 or 422; any
        answer below 500 means the API is reachable.
        """
        try:
            response = await self._client.post(f"{self.base_url}{SEND_EMAIL_PATH}", json={})
            healthy = response.status_code < 500
            return {
                "healthy": healthy,
                "service": "mail_transport",
                "status_code": response.status_code,
            }
        except httpx.RequestError as e:
            logger.error("Email API health check failed", error=str(e))
            return {"healthy": False, "service": "mail_transport", "error": str(e)}


def _pick(data: Any, *keys: str) -> str | None:
    if not isinstance(data, dict):
        return None
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return None


mail_transport_client = MailTransportClient()
