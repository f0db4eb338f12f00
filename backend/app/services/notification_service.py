"""
Notification Service.

Fire-and-forget email/SMS fan-out for booking, payment and dispute events.

Every (recipient, channel) pair becomes its own asyncio task with its own
timeout and error boundary: a failing SMS provider never stops the email
from going out, and nothing here can fail the request that triggered it.
"""

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.utils import parseaddr
from typing import Dict, Iterable, List, Optional, Set

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import NotificationError
from backend.app.core.redis_client import claim_once

logger = logging.getLogger("rentivo.notifications")


class Channel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True)
class OutboundNotification:
    """One message for one recipient on one channel."""
    event_key: str
    channel: Channel
    recipient: str
    subject: str
    body: str

    @property
    def dedupe_key(self) -> str:
        return f"notif:{self.event_key}:{self.channel.value}:{self.recipient}"


class NotificationChannel(ABC):
    """Delivery mechanism for one channel. Raises NotificationError on failure."""

    channel: Channel
    provider_name: str = "base"

    @abstractmethod
    async def send(self, recipient: str, subject: str, body: str) -> None:
        raise NotImplementedError


class ConsoleEmailChannel(NotificationChannel):
    """Logs emails instead of sending them (development)."""

    channel = Channel.EMAIL
    provider_name = "console"

    async def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info("CONSOLE EMAIL (not actually sent) to=%s subject=%s body=%s", recipient, subject, body)


class ConsoleSmsChannel(NotificationChannel):
    """Logs SMS instead of sending them (development)."""

    channel = Channel.SMS
    provider_name = "console_sms"

    async def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info("CONSOLE SMS (not actually sent) to=%s body=%s", recipient, body)


class SendGridEmailChannel(NotificationChannel):
    """Email through the SendGrid v3 mail API."""

    channel = Channel.EMAIL
    provider_name = "sendgrid"
    endpoint = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str, from_address: str, timeout: float):
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout

    async def send(self, recipient: str, subject: str, body: str) -> None:
        from_name, from_email = parseaddr(self.from_address)
        sender = {"email": from_email, "name": from_name} if from_name else {"email": from_email}
        payload = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": sender,
            "subject": subject,
            "content": [{"type": "text/html", "value": body}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"SendGrid delivery failed: {exc}") from exc


class TwilioSmsChannel(NotificationChannel):
    """SMS through the Twilio Messages REST API."""

    channel = Channel.SMS
    provider_name = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout: float):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    async def send(self, recipient: str, subject: str, body: str) -> None:
        url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    data={"From": self.from_number, "To": recipient, "Body": body},
                    auth=(self.account_sid, self.auth_token),
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Twilio delivery failed: {exc}") from exc


class NotificationDispatcher:

    def __init__(
        self,
        channels: Dict[Channel, NotificationChannel],
        timeout: float = 5.0,
        dedupe_ttl: Optional[int] = None,
    ):
        self.channels = channels
        self.timeout = timeout
        self.dedupe_ttl = dedupe_ttl
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, notifications: Iterable[OutboundNotification]) -> List[asyncio.Task]:
        """Schedule each notification independently and return immediately."""
        tasks = []
        for notification in notifications:
            task = asyncio.create_task(self._deliver(notification))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, notification: OutboundNotification) -> bool:
        channel = self.channels.get(notification.channel)
        if channel is None:
            logger.warning("No %s channel configured; dropping %s", notification.channel.value, notification.event_key)
            return False

        if not await self._claim(notification):
            logger.info("Skipping duplicate %s", notification.dedupe_key)
            return False

        try:
            await asyncio.wait_for(
                channel.send(notification.recipient, notification.subject, notification.body),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "%s via %s to %s timed out after %ss",
                notification.event_key, channel.provider_name, notification.recipient, self.timeout,
            )
            return False
        except Exception:
            logger.exception(
                "%s via %s to %s failed",
                notification.event_key, channel.provider_name, notification.recipient,
            )
            return False

        logger.info("Sent %s via %s to %s", notification.event_key, channel.provider_name, notification.recipient)
        return True

    async def _claim(self, notification: OutboundNotification) -> bool:
        if not self.dedupe_ttl:
            return True
        try:
            return await claim_once(notification.dedupe_key, self.dedupe_ttl)
        except Exception:
            # Dedupe store down; send anyway
            logger.warning("Dedupe store unavailable for %s", notification.dedupe_key, exc_info=True)
            return True


def notifications_for(user, event_key: str, subject: str, email_body: str, sms_body: str) -> List[OutboundNotification]:
    """Build the email and SMS messages for one user, skipping missing addresses."""
    if user is None:
        return []
    messages = []
    if user.email:
        messages.append(OutboundNotification(event_key, Channel.EMAIL, user.email, subject, email_body))
    if user.phone:
        messages.append(OutboundNotification(event_key, Channel.SMS, user.phone, subject, sms_body))
    return messages


def build_dispatcher_from_settings() -> NotificationDispatcher:
    if settings.email_provider == "sendgrid":
        email_channel = SendGridEmailChannel(
            settings.sendgrid_api_key, settings.email_from, settings.notification_timeout_seconds
        )
    else:
        email_channel = ConsoleEmailChannel()

    if settings.sms_provider == "twilio":
        sms_channel = TwilioSmsChannel(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_from_number,
            settings.notification_timeout_seconds,
        )
    else:
        sms_channel = ConsoleSmsChannel()

    return NotificationDispatcher(
        channels={Channel.EMAIL: email_channel, Channel.SMS: sms_channel},
        timeout=settings.notification_timeout_seconds,
        dedupe_ttl=settings.notification_dedupe_ttl_seconds,
    )


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher_from_settings()
    return _dispatcher
