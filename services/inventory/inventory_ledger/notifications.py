"""
Low stock notifications for the Inventory service.

The reconciliation engine hands a committed item snapshot to a notifier
whenever a quantity change lands at or below the item's minimum. Delivery
is fire-and-forget: it runs on a background thread pool, is attempted once,
and failures are logged, never raised back to the caller.

Channels:
- Webhooks: POST {"event": "inventory.low_stock", ...} to every configured URL
- E-mail: an HTML alert to the configured recipients over SMTP
"""
import logging
import smtplib
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx

from . import config, schemas

logger = logging.getLogger(__name__)

LOW_STOCK_EVENT = "inventory.low_stock"

_executor: Optional[ThreadPoolExecutor] = None


def get_executor() -> ThreadPoolExecutor:
    """Shared pool for notification delivery, created on first use."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=config.NOTIFIER_MAX_WORKERS,
            thread_name_prefix="low-stock-notifier",
        )
    return _executor


def shutdown_executor(wait: bool = True) -> None:
    """Let queued deliveries finish and release the pool."""
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=wait)
        _executor = None


class ThresholdNotifier(Protocol):
    """Receives items whose quantity just landed at or below their minimum."""

    def notify(self, item: schemas.Item) -> None:
        ...


class NullNotifier:
    """Notifier used when no channel is configured."""

    def notify(self, item: schemas.Item) -> None:
        logger.debug(f"No low stock channel configured, dropping alert for item {item.id}")


class CompositeNotifier:
    """Fans an alert out to several notifiers; one failing does not stop the others."""

    def __init__(self, notifiers: List[ThresholdNotifier]):
        self.notifiers = notifiers

    def notify(self, item: schemas.Item) -> None:
        for notifier in self.notifiers:
            try:
                notifier.notify(item)
            except Exception as e:
                logger.error(f"{type(notifier).__name__} failed for item {item.id}: {e}")


def build_payload(item: schemas.Item) -> Dict[str, Any]:
    """
    Build the webhook body for a low stock event.

    Args:
        item: Committed item snapshot

    Returns:
        JSON-serialisable payload
    """
    return {
        "event": LOW_STOCK_EVENT,
        "data": item.model_dump(mode="json", by_alias=True),
        "timestamp": datetime.utcnow().isoformat(),
    }


class WebhookNotifier:
    """
    Send low stock events to webhook URLs.

    Args:
        urls: Webhook URLs
        timeout: Per-request timeout in seconds
        executor: Where deliveries run; defaults to the shared pool
        transport: Optional httpx transport (e.g. for tests)
    """

    def __init__(
        self,
        urls: List[str],
        timeout: float = config.WEBHOOK_TIMEOUT,
        executor: Optional[Executor] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.urls = urls
        self.timeout = timeout
        self.executor = executor
        self.transport = transport

    def notify(self, item: schemas.Item) -> None:
        if not self.urls:
            return
        executor = self.executor or get_executor()
        executor.submit(self.send_webhook, build_payload(item))

    def send_webhook(self, payload: Dict[str, Any]) -> None:
        """
        Send a payload to all registered URLs.

        Args:
            payload: Event payload
        """
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            for url in self.urls:
                self.send_single_webhook(client, url, payload)

    def send_single_webhook(self, client: httpx.Client, url: str, payload: Dict[str, Any]) -> None:
        """
        Send a webhook to a single URL.

        Args:
            client: HTTP client
            url: Webhook URL
            payload: Event payload
        """
        try:
            response = client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"}
            )

            if response.status_code >= 400:
                logger.warning(f"Webhook failed for {url}: HTTP {response.status_code}")
            else:
                logger.info(f"Low stock webhook delivered to {url}")
        except Exception as e:
            logger.error(f"Webhook error for {url}: {str(e)}")


def render_low_stock_email(item: schemas.Item) -> str:
    """Render the HTML body of a low stock alert."""
    return f"""
<h1>Low Stock Alert</h1>
<p>The item below reached or dropped below its minimum stock level.</p>
<table border="1" cellpadding="10" cellspacing="0" style="border-collapse: collapse;">
  <tr><td style="background-color: #f2f2f2;"><strong>SKU</strong></td><td>{item.sku}</td></tr>
  <tr><td style="background-color: #f2f2f2;"><strong>Name</strong></td><td>{item.name}</td></tr>
  <tr>
    <td style="background-color: #f2f2f2;"><strong>Current stock</strong></td>
    <td style="color: red; font-weight: bold;">{item.quantity} {item.unit}</td>
  </tr>
  <tr>
    <td style="background-color: #f2f2f2;"><strong>Minimum stock</strong></td>
    <td>{item.min_quantity} {item.unit}</td>
  </tr>
</table>
<p>Please restock this item as soon as possible.</p>
"""


class EmailNotifier:
    """
    E-mail low stock alerts over SMTP.

    Args:
        host: SMTP server
        port: SMTP port
        sender: Account used to log in and as the From address
        password: SMTP password; no login when empty
        recipients: Destination addresses
        use_tls: Upgrade the connection with STARTTLS
        executor: Where deliveries run; defaults to the shared pool
        smtp_factory: Builds the SMTP connection, smtplib.SMTP by default
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        password: str,
        recipients: List[str],
        use_tls: bool = True,
        executor: Optional[Executor] = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.password = password
        self.recipients = recipients
        self.use_tls = use_tls
        self.executor = executor
        self.smtp_factory = smtp_factory

    def build_message(self, item: schemas.Item) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = f"Low stock alert: {item.name}"
        message["From"] = f'"Inventory System" <{self.sender}>'
        message["To"] = ", ".join(self.recipients)
        message.set_content(
            f"{item.name} ({item.sku}) is at {item.quantity} {item.unit}, "
            f"minimum {item.min_quantity} {item.unit}."
        )
        message.add_alternative(render_low_stock_email(item), subtype="html")
        return message

    def notify(self, item: schemas.Item) -> None:
        if not self.recipients or not self.host:
            return
        executor = self.executor or get_executor()
        executor.submit(self.send_email, item)

    def send_email(self, item: schemas.Item) -> None:
        """Deliver one alert; errors are logged."""
        logger.info(f"Sending low stock e-mail for item {item.name}")
        try:
            with self.smtp_factory(self.host, self.port, timeout=config.WEBHOOK_TIMEOUT) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.password:
                    smtp.login(self.sender, self.password)
                smtp.send_message(self.build_message(item))
            logger.info(f"Low stock e-mail sent for item {item.name}")
        except Exception as e:
            logger.error(f"Error sending low stock e-mail for item {item.name}: {e}")


def build_notifier() -> ThresholdNotifier:
    """
    Build the notifier described by the configuration.

    Returns:
        A notifier delivering to every configured channel, or a NullNotifier
    """
    notifiers: List[ThresholdNotifier] = []
    if config.LOW_STOCK_WEBHOOK_URLS:
        notifiers.append(WebhookNotifier(config.LOW_STOCK_WEBHOOK_URLS))
    if config.EMAIL_HOST and config.EMAIL_RECIPIENTS:
        notifiers.append(EmailNotifier(
            host=config.EMAIL_HOST,
            port=config.EMAIL_PORT,
            sender=config.EMAIL_USER,
            password=config.EMAIL_PASS,
            recipients=config.EMAIL_RECIPIENTS,
            use_tls=config.EMAIL_USE_TLS,
        ))

    if not notifiers:
        return NullNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)
