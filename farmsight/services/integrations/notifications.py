import base64
import hashlib
import secrets
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import requests

from farmsight.core.errors import ExternalServiceError
from farmsight.core.logging import get_logger
from farmsight.core.timeutils import utcnow

logger = get_logger(__name__)


@dataclass
class DeliveryReceipt:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationChannel(Protocol):
    name: str

    def send(self, phone_number: str, message: str, urgency: str) -> DeliveryReceipt:
        ...


def _wsse_headers(app_key: str, app_secret: str) -> dict:
    created = utcnow().strftime("%Y-%m-%dT%H:%M:%SZ")
    nonce = secrets.token_hex(16)
    digest = hashlib.sha256((nonce + created + app_secret).encode("utf-8")).digest()

    return {
        "Authorization": 'WSSE realm="SDP",profile="UsernameToken",type="Appkey"',
        "X-WSSE": (
            f'UsernameToken Username="{app_key}",'
            f'PasswordDigest="{base64.b64encode(digest).decode()}",'
            f'Nonce="{nonce}",Created="{created}"'
        ),
    }


class SmsChannel:
    """SMS gateway speaking the WSSE-signed JSON API."""

    name = "sms"

    def __init__(
        self,
        endpoint: str,
        app_key: str,
        app_secret: str,
        sender: str = "FarmSight",
        timeout: float = 30.0,
    ):
        self.endpoint = endpoint
        self.app_key = app_key
        self.app_secret = app_secret
        self.sender = sender
        self.timeout = timeout

    def send(self, phone_number: str, message: str, urgency: str) -> DeliveryReceipt:
        body = {
            "from": self.sender,
            "to": phone_number,
            "body": message,
            "urgency": urgency,
        }

        try:
            response = requests.post(
                self.endpoint,
                json=body,
                headers=_wsse_headers(self.app_key, self.app_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ExternalServiceError("sms", str(exc)) from exc

        return DeliveryReceipt(success=True, message_id=_message_id(data))


def _message_id(data) -> Optional[str]:
    """
    Pull the message id out of a gateway reply.

    ``result`` is either a single receipt or a list with one entry per
    recipient. Any other shape is an ``ExternalServiceError``.
    """
    if not isinstance(data, dict):
        raise ExternalServiceError("sms", f"unexpected response {data!r}")

    result = data.get("result")
    if isinstance(result, list):
        result = result[0] if result else None
    if result is None:
        return None
    if not isinstance(result, dict):
        raise ExternalServiceError("sms", f"unexpected result {result!r}")

    message_id = result.get("sid") or result.get("smsMsgId")
    return str(message_id) if message_id is not None else None


@dataclass
class LoggingChannel:
    """Records messages in memory and logs them instead of sending."""

    name: str = "log"
    sent: List[dict] = field(default_factory=list)

    def send(self, phone_number: str, message: str, urgency: str) -> DeliveryReceipt:
        message_id = f"log_{uuid.uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "phone_number": phone_number,
                "message": message,
                "urgency": urgency,
            }
        )
        logger.info("Notification %s to %s [%s]", message_id, phone_number, urgency)
        return DeliveryReceipt(success=True, message_id=message_id)
