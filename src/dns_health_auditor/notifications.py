"""
Alert notification channels for the DNS health auditor.

Provides an SMTP email channel, a generic JSON webhook channel, and a router
that delivers one notification to every registered channel with retry and
exponential backoff. Delivery is best-effort: the router logs failures and
never raises.
"""

import asyncio
import smtplib
import ssl
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

import httpx

from .config import AuditConfig, EmailSettings, WebhookSettings
from .enums import LogLevel
from .exceptions import NotificationError

if TYPE_CHECKING:
    from .run_logger import RunLogger


@dataclass
class AlertNotification:
    """One notification carrying every alert message of a run."""

    subject: str
    status: str
    timestamp: str
    messages: list[str] = field(default_factory=list)

    def body(self) -> str:
        lines = [
            f"DNS Health Alert - {self.timestamp}",
            f"Overall status: {self.status.upper()}",
            "",
            f"{len(self.messages)} alert(s):",
        ]
        lines.extend(f"- {message}" for message in self.messages)
        return "\n".join(lines) + "\n"


@dataclass
class NotificationResult:
    """Result of a notification delivery attempt."""

    channel: str
    success: bool
    error: Optional[str] = None
    attempts: int = 1


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, notification: AlertNotification) -> bool:
        """
        Send a notification.

        Returns:
            True if delivery was successful, False otherwise
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


class EmailChannel:
    """Email notification channel using SMTP."""

    def __init__(self, settings: EmailSettings, simulation_mode: bool = False) -> None:
        """
        Initialize Email channel.

        Args:
            settings: SMTP server, sender, recipients and credentials
            simulation_mode: If True, no real network requests are made
        """
        self._settings = settings
        self._simulation_mode = simulation_mode

    async def send(self, notification: AlertNotification) -> bool:
        """Send notification via Email."""
        if self._simulation_mode:
            return True

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send_sync, notification)

    def _send_sync(self, notification: AlertNotification) -> bool:
        """
        Synchronous email sending.

        Raises:
            NotificationError: If the SMTP exchange fails
        """
        settings = self._settings
        msg = self.format_email(notification)
        try:
            with smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=30) as server:
                if settings.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if settings.username and settings.password:
                    server.login(settings.username, settings.password)
                server.sendmail(
                    settings.from_address,
                    list(settings.to_addresses),
                    msg.as_string(),
                )
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(
                code="smtp_error",
                message=f"Failed to send email via {settings.smtp_server}: {e}",
                details={"smtp_server": settings.smtp_server, "smtp_port": settings.smtp_port},
            )
        return True

    def get_name(self) -> str:
        return "email"

    def format_email(self, notification: AlertNotification) -> MIMEMultipart:
        """Format the notification as an email message."""
        msg = MIMEMultipart()
        msg["From"] = self._settings.from_address
        msg["To"] = ", ".join(self._settings.to_addresses)
        msg["Subject"] = notification.subject
        msg.attach(MIMEText(notification.body(), "plain", "utf-8"))
        return msg


class WebhookChannel:
    """Generic webhook notification channel using HTTP POST."""

    def __init__(self, settings: WebhookSettings, simulation_mode: bool = False) -> None:
        """
        Initialize Webhook channel.

        Args:
            settings: Webhook URL and optional extra headers
            simulation_mode: If True, no real network requests are made
        """
        self._url = settings.url
        self._headers = dict(settings.headers)
        self._simulation_mode = simulation_mode

    async def send(self, notification: AlertNotification) -> bool:
        """Send notification via HTTP POST webhook."""
        if self._simulation_mode:
            return True

        data = {
            "subject": notification.subject,
            "status": notification.status,
            "timestamp": notification.timestamp,
            "alerts": notification.messages,
        }
        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self._url, json=data, headers=headers, timeout=30.0)
            except httpx.HTTPError as e:
                raise NotificationError(
                    code="webhook_error",
                    message=f"Webhook request failed: {e}",
                    details={"url": self._url},
                )
        return 200 <= response.status_code < 300

    def get_name(self) -> str:
        return "webhook"


@dataclass
class RetryAttempt:
    """Record of a single delivery attempt."""

    attempt_number: int
    error: str
    timestamp: str


class NotificationRouter:
    """
    Delivers notifications to registered channels with retry logic.

    A failed channel is retried with exponential backoff; when every attempt
    fails the failure is logged with the full attempt history.
    """

    def __init__(
        self,
        max_retries: int = 1,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 10.0,
        logger: Optional["RunLogger"] = None,
    ) -> None:
        """
        Initialize the notification router.

        Args:
            max_retries: Retries after the first failed attempt
            base_delay_seconds: Delay before the first retry
            max_delay_seconds: Upper bound for any retry delay
            logger: Optional run logger for failure logging
        """
        self._channels: list[NotificationChannel] = []
        self._max_retries = max_retries
        self._base_delay = base_delay_seconds
        self._max_delay = max_delay_seconds
        self._logger = logger

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    @property
    def channels(self) -> list[NotificationChannel]:
        """Get list of registered channels."""
        return self._channels.copy()

    async def notify(self, notification: AlertNotification) -> list[NotificationResult]:
        """
        Send a notification to all registered channels.

        Returns:
            List of NotificationResult for each channel
        """
        results = []
        for channel in self._channels:
            results.append(await self._send_with_retry(channel, notification))
        return results

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        notification: AlertNotification,
    ) -> NotificationResult:
        channel_name = channel.get_name()
        max_attempts = self._max_retries + 1
        attempts = 0
        retry_attempts: list[RetryAttempt] = []
        last_error: Optional[str] = None

        while attempts < max_attempts:
            attempts += 1
            try:
                if await channel.send(notification):
                    return NotificationResult(channel=channel_name, success=True, attempts=attempts)
                last_error = "Channel returned failure"
            except Exception as e:
                last_error = str(e)
            retry_attempts.append(
                RetryAttempt(
                    attempt_number=attempts,
                    error=last_error,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
            )

            if attempts < max_attempts:
                await asyncio.sleep(self.calculate_delay(attempts - 1))

        self._log_all_retries_failed(channel_name, notification, retry_attempts)
        return NotificationResult(
            channel=channel_name,
            success=False,
            error=last_error,
            attempts=attempts,
        )

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay with exponential backoff.

        Args:
            attempt: The attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        return min(self._base_delay * (2 ** attempt), self._max_delay)

    def _log_all_retries_failed(
        self,
        channel_name: str,
        notification: AlertNotification,
        retry_attempts: list[RetryAttempt],
    ) -> None:
        if self._logger is None:
            return

        self._logger.log(
            level=LogLevel.ERROR,
            component="NotificationRouter",
            message=f"All notification attempts failed for channel '{channel_name}'",
            data={
                "channel": channel_name,
                "subject": notification.subject,
                "alert_count": len(notification.messages),
                "total_attempts": len(retry_attempts),
                "attempts": [
                    {
                        "attempt": attempt.attempt_number,
                        "error": attempt.error,
                        "timestamp": attempt.timestamp,
                    }
                    for attempt in retry_attempts
                ],
            },
        )


def build_router(
    config: AuditConfig,
    logger: Optional["RunLogger"] = None,
    simulation_mode: bool = False,
) -> NotificationRouter:
    """
    Create a router with a channel for every configured destination.

    Email is registered when at least one recipient is configured, the
    webhook when a URL is configured.
    """
    router = NotificationRouter(logger=logger)
    if config.email_settings.to_addresses:
        router.register_channel(EmailChannel(config.email_settings, simulation_mode))
    if config.webhook_settings.url:
        router.register_channel(WebhookChannel(config.webhook_settings, simulation_mode))
    return router
