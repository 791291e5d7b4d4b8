"""SMS delivery of one-time passwords through an HTTP SMS gateway."""

import httpx

from bazaar.errors import OtpDeliveryError
from bazaar.logging_config import get_logger
from bazaar.settings import settings

logger = get_logger(__name__)


class SmsService:
    """OTP sender for the bulk SMS gateway.

    Without credentials the service is disabled: the OTP is only logged so
    local signups can still be completed.
    """

    def __init__(
        self,
        api_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        sender_id: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize SMS service.

        Args:
            api_url: Gateway endpoint (defaults to settings)
            username: Gateway username (defaults to settings)
            password: Gateway password (defaults to settings)
            sender_id: Sender name shown to the recipient
            transport: Optional httpx transport (used by tests)
        """
        self.api_url = api_url or settings.sms_api_url
        self.username = username or settings.sms_username
        self.password = password or settings.sms_password
        self.sender_id = sender_id or settings.sms_sender_id
        self.transport = transport
        self.enabled = bool(self.username and self.password)

        if not self.enabled:
            logger.warning("sms_service_disabled", reason="SMS credentials not set")

    def send_otp(self, phone: str, otp: str) -> None:
        """Send an OTP to a phone number.

        Args:
            phone: E.164 phone number
            otp: One-time password

        Raises:
            OtpDeliveryError: If the gateway rejects the message or is unreachable
        """
        if not self.enabled:
            logger.info("otp_not_sent", reason="service_disabled", phone=phone, otp=otp)
            return

        params = {
            "username": self.username,
            "password": self.password,
            "senderid": self.sender_id,
            "destination": phone,
            "message": otp,
            "route": "wp",
            "template": "otp",
            "variables": otp,
        }

        try:
            with httpx.Client(
                timeout=settings.request_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = client.post(self.api_url, params=params)
        except httpx.RequestError as e:
            logger.error("sms_send_error", phone=phone, error=str(e))
            raise OtpDeliveryError("Failed to send OTP") from e

        if response.status_code != 200:
            logger.error(
                "sms_send_failed",
                phone=phone,
                status=response.status_code,
                body=response.text[:200],
            )
            raise OtpDeliveryError(f"SMS gateway returned status {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            # Gateway sometimes answers with plain text on success
            logger.info("otp_sent", phone=phone, response=response.text[:100])
            return

        status = str(body.get("status", "")).lower()
        if status not in ("success", "sent"):
            logger.error("sms_send_failed", phone=phone, message=body.get("message"))
            raise OtpDeliveryError(f"SMS sending failed: {body.get('message')}")

        logger.info("otp_sent", phone=phone, message_id=body.get("data", {}).get("message_id"))
