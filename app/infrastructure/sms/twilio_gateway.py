import logging
from typing import Optional
from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient
from twilio.base.exceptions import TwilioException, TwilioRestException

from ...config import settings
from ...application.ports.sms_gateway import SMSGateway, SMSDeliveryError
from ...utils import mask_phone

logger = logging.getLogger(__name__)


class TwilioSMSGateway(SMSGateway):
    """Sends plain SMS through the Twilio Messages API."""

    def __init__(self, client: Optional[Client] = None, from_number: Optional[str] = None):
        self._client = client
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER

    @property
    def client(self) -> Client:
        # Built on first use so a missing configuration surfaces as a delivery failure
        if self._client is None:
            http_client = TwilioHttpClient(timeout=settings.TWILIO_TIMEOUT_SECONDS, max_retries=settings.TWILIO_MAX_RETRIES)
            self._client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, http_client=http_client)
            logger.info("Twilio client initialized")
        return self._client

    def send(self, to: str, body: str) -> str:
        if not self.from_number:
            raise SMSDeliveryError("Twilio sender phone number not configured")
        try:
            message = self.client.messages.create(from_=self.from_number, to=to, body=body)
        except TwilioRestException as e:
            logger.error(f"Twilio REST error for {mask_phone(to)}: {e.code} - {e.msg}")
            raise SMSDeliveryError(f"Twilio rejected the message ({e.code})") from e
        except TwilioException as e:
            logger.error(f"Twilio error for {mask_phone(to)}: {e}")
            raise SMSDeliveryError("SMS service temporarily unavailable") from e
        logger.info(f"SMS queued for {mask_phone(to)}, SID: {message.sid}")
        return message.sid
