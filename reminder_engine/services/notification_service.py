"""
Channel senders for SMS, WhatsApp (Twilio) and email (SMTP).

Each sender owns its address formatting and reports success or failure as a
SendResult; provider errors and timeouts never escape `send`.
"""
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Dict, Optional
import logging

from pydantic import BaseModel
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ..notifications import log_notification, preview
from ..utils.config import config
from ..utils.validation import WHATSAPP_PREFIX, normalize_phone, validate_email, validate_phone

logger = logging.getLogger(__name__)


class SendResult(BaseModel):
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    simulated: bool = False


class ChannelSender(ABC):
    channel: str = ""

    def __init__(self, simulate: bool = False):
        self.simulate = simulate

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def _deliver(self, address: str, body: str, subject: Optional[str]) -> SendResult:
        ...

    def send(self, address: str, body: str, subject: Optional[str] = None) -> SendResult:
        """Send `body` to the raw stored contact `address`"""
        if not address:
            return SendResult(success=False, error="no destination address")

        if self.simulate:
            log_notification(f"{self.channel.upper()} SIMULATION: To: {address}, Message: {preview(body)}", "SIMULATION")
            return SendResult(success=True, simulated=True)

        if not self.is_configured():
            log_notification(f"{self.channel.upper()} not configured; dropping message to {address}", "WARNING")
            return SendResult(success=False, error=f"{self.channel} sender not configured")

        try:
            result = self._deliver(address, body, subject)
        except Exception as e:
            log_notification(f"Failed to send {self.channel} to {address}: {e}", "ERROR")
            return SendResult(success=False, error=str(e))

        if result.success:
            log_notification(f"{self.channel.upper()} sent to {address}: {preview(body)}")
        else:
            log_notification(f"{self.channel.upper()} to {address} rejected: {result.error}", "WARNING")
        return result


class _TwilioSender(ChannelSender):
    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], from_number: Optional[str],
                 timeout: int = 15, client: Optional[Client] = None, simulate: bool = False,
                 country_code: Optional[str] = None):
        super().__init__(simulate=simulate)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self.country_code = country_code
        self._client = client

    def is_configured(self) -> bool:
        if self._client is not None:
            return bool(self.from_number)
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(
                self.account_sid,
                self.auth_token,
                http_client=TwilioHttpClient(timeout=self.timeout)
            )
        return self._client

    def _format(self, number: str) -> str:
        return normalize_phone(number, self.country_code)

    def _deliver(self, address: str, body: str, subject: Optional[str]) -> SendResult:
        if not validate_phone(address, self.country_code):
            return SendResult(success=False, error=f"invalid phone number: {address}")

        message = self.client.messages.create(
            body=body,
            from_=self._format(self.from_number),
            to=self._format(address)
        )
        return SendResult(success=True, provider_message_id=message.sid)


class SMSSender(_TwilioSender):
    channel = "sms"


class WhatsAppSender(_TwilioSender):
    channel = "whatsapp"

    def _format(self, number: str) -> str:
        return f"{WHATSAPP_PREFIX}{normalize_phone(number, self.country_code)}"


class EmailSender(ChannelSender):
    channel = "email"

    def __init__(self, host: str, port: int, user: Optional[str], password: Optional[str],
                 from_email: Optional[str] = None, timeout: int = 15, simulate: bool = False):
        super().__init__(simulate=simulate)
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    def _deliver(self, address: str, body: str, subject: Optional[str]) -> SendResult:
        if not validate_email(address):
            return SendResult(success=False, error=f"invalid email address: {address}")

        msg = EmailMessage()
        msg['From'] = self.from_email
        msg['To'] = address.strip()
        msg['Subject'] = subject or f"{config.CLINIC_NAME} notification"
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.send_message(msg)

        return SendResult(success=True, provider_message_id=msg.get('Message-ID'))


def build_senders(cfg=config) -> Dict[str, ChannelSender]:
    """Construct the senders for every enabled channel"""
    senders: Dict[str, ChannelSender] = {}
    if "sms" in cfg.ENABLED_CHANNELS:
        senders["sms"] = SMSSender(
            cfg.TWILIO_ACCOUNT_SID, cfg.TWILIO_AUTH_TOKEN, cfg.TWILIO_PHONE_NUMBER,
            timeout=cfg.SEND_TIMEOUT_SECONDS, simulate=cfg.NOTIFICATIONS_SIMULATE,
            country_code=cfg.DEFAULT_COUNTRY_CODE
        )
    if "whatsapp" in cfg.ENABLED_CHANNELS:
        senders["whatsapp"] = WhatsAppSender(
            cfg.TWILIO_ACCOUNT_SID, cfg.TWILIO_AUTH_TOKEN, cfg.TWILIO_WHATSAPP_NUMBER,
            timeout=cfg.SEND_TIMEOUT_SECONDS, simulate=cfg.NOTIFICATIONS_SIMULATE,
            country_code=cfg.DEFAULT_COUNTRY_CODE
        )
    if "email" in cfg.ENABLED_CHANNELS:
        senders["email"] = EmailSender(
            cfg.SMTP_HOST, cfg.SMTP_PORT, cfg.EMAIL_USER, cfg.EMAIL_PASSWORD,
            from_email=cfg.EMAIL_FROM, timeout=cfg.SEND_TIMEOUT_SECONDS,
            simulate=cfg.NOTIFICATIONS_SIMULATE
        )
    logger.info(f"Channel senders enabled: {', '.join(senders) or 'none'}")
    return senders
