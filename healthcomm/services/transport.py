# healthcomm/services/transport.py
"""
Outbound telephony transports.

A transport never raises to its caller: every outcome, including network
timeouts and provider rejections, comes back as a ``DeliveryResult``.
"""
import random
import string
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from ..exceptions import TransportError
from ..models import CommunicationType

logger = structlog.get_logger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


@dataclass
class DeliveryResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> dict:
        return {"success": self.success, "messageId": self.message_id, "error": self.error}


@dataclass(frozen=True)
class MessagingConfig:
    """Everything a dispatcher needs to pick and drive a transport. Built per request from settings."""
    mode: str = "demo"
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    from_number: Optional[str] = None
    timeout_seconds: float = 10.0
    demo_success_rate: float = 0.9
    status_callback_url: Optional[str] = None

    @property
    def credentials_present(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def effective_mode(self) -> str:
        # Live without credentials would fail every send, so it simulates instead
        return "live" if self.mode == "live" and self.credentials_present else "demo"


class DemoTransport:
    """Simulated provider: succeeds with a fixed probability and mints synthetic ids."""

    def __init__(self, success_rate: float = 0.9, rng: Optional[Callable[[], float]] = None):
        self.success_rate = success_rate
        self._rng = rng or random.random
        self._id_rng = random.Random()

    def _synthetic_id(self, comm_type: CommunicationType) -> str:
        suffix = "".join(self._id_rng.choice(_ID_ALPHABET) for _ in range(9))
        return f"demo-{comm_type.value.lower()}-{suffix}"

    def send(self, comm_type: CommunicationType, to: str, content: str) -> DeliveryResult:
        message_id = self._synthetic_id(comm_type)
        logger.info("demo_send", type=comm_type.value, to=to, preview=content[:100])
        if self._rng() < self.success_rate:
            return DeliveryResult(success=True, message_id=message_id)
        error = "Simulated delivery failure" if comm_type == CommunicationType.SMS else "Simulated call failure"
        return DeliveryResult(success=False, message_id=message_id, error=error)


class TwilioTransport:
    """Live provider backed by the Twilio REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 timeout_seconds: float = 10.0, status_callback_url: Optional[str] = None,
                 client: Optional[Client] = None):
        self.from_number = from_number
        self.status_callback_url = status_callback_url
        self.client = client or Client(
            account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout_seconds)
        )

    @staticmethod
    def build_twiml(content: str) -> str:
        response = VoiceResponse()
        response.say(content, voice="alice")
        return str(response)

    def _create(self, comm_type: CommunicationType, to: str, content: str) -> str:
        extra = {"status_callback": self.status_callback_url} if self.status_callback_url else {}
        try:
            if comm_type == CommunicationType.SMS:
                message = self.client.messages.create(body=content, from_=self.from_number, to=to, **extra)
                return message.sid
            call = self.client.calls.create(twiml=self.build_twiml(content), from_=self.from_number, to=to, **extra)
            return call.sid
        except TwilioRestException as e:
            raise TransportError(e.msg or str(e))
        except TwilioException as e:
            raise TransportError(str(e))
        except Exception as e:
            # Connection errors and read timeouts surface from the HTTP layer
            raise TransportError(f"{type(e).__name__}: {e}")

    def send(self, comm_type: CommunicationType, to: str, content: str) -> DeliveryResult:
        try:
            sid = self._create(comm_type, to, content)
        except TransportError as e:
            logger.error("twilio_send_failed", type=comm_type.value, to=to, error=e.message)
            return DeliveryResult(success=False, error=e.message)
        logger.info("twilio_send_accepted", type=comm_type.value, to=to, sid=sid)
        return DeliveryResult(success=True, message_id=sid)


def build_transport(config: MessagingConfig):
    if config.effective_mode == "live":
        return TwilioTransport(
            account_sid=config.account_sid,
            auth_token=config.auth_token,
            from_number=config.from_number,
            timeout_seconds=config.timeout_seconds,
            status_callback_url=config.status_callback_url,
        )
    return DemoTransport(success_rate=config.demo_success_rate)
