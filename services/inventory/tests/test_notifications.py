"""
Tests for low stock notification channels.
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import httpx
import pytest

from inventory_ledger import config, notifications, schemas
from inventory_ledger.notifications import (
    CompositeNotifier,
    EmailNotifier,
    NullNotifier,
    WebhookNotifier,
    build_notifier,
    build_payload,
)


@pytest.fixture
def low_item():
    return schemas.Item(
        id="5b0f6a3e-0000-4000-8000-000000000001",
        sku="PROD-AB12CD",
        name="Printer paper",
        unit="box",
        quantity=2,
        min_quantity=5,
        created_at=datetime(2024, 1, 1, 12, 0, 0),
    )


class TestWebhookNotifier:

    def test_payload_uses_external_field_names(self, low_item):
        payload = build_payload(low_item)

        assert payload["event"] == "inventory.low_stock"
        assert payload["data"]["minQuantity"] == 5
        assert payload["data"]["quantity"] == 2
        assert payload["data"]["sku"] == "PROD-AB12CD"
        assert "timestamp" in payload

    def test_posts_to_every_url(self, low_item):
        received = []

        def handler(request):
            received.append((str(request.url), json.loads(request.content)))
            return httpx.Response(204)

        executor = ThreadPoolExecutor(max_workers=1)
        notifier = WebhookNotifier(
            ["http://hooks.test/a", "http://hooks.test/b"],
            executor=executor,
            transport=httpx.MockTransport(handler),
        )

        notifier.notify(low_item)
        executor.shutdown(wait=True)

        assert [url for url, _ in received] == ["http://hooks.test/a", "http://hooks.test/b"]
        assert all(body["data"]["id"] == low_item.id for _, body in received)

    def test_http_error_is_logged_not_raised(self, low_item, caplog):
        notifier = WebhookNotifier(
            ["http://hooks.test/a"],
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with caplog.at_level(logging.WARNING, logger="inventory_ledger.notifications"):
            notifier.send_webhook(build_payload(low_item))

        assert "HTTP 500" in caplog.text

    def test_unreachable_url_does_not_stop_the_others(self, low_item, caplog):
        delivered = []

        def handler(request):
            if request.url.host == "down.test":
                raise httpx.ConnectError("connection refused", request=request)
            delivered.append(request.url.host)
            return httpx.Response(200)

        notifier = WebhookNotifier(
            ["http://down.test/hook", "http://up.test/hook"],
            transport=httpx.MockTransport(handler),
        )

        with caplog.at_level(logging.ERROR, logger="inventory_ledger.notifications"):
            notifier.send_webhook(build_payload(low_item))

        assert delivered == ["up.test"]
        assert "Webhook error for http://down.test/hook" in caplog.text

    def test_without_urls_nothing_is_scheduled(self, low_item):
        class ExplodingExecutor:
            def submit(self, *args, **kwargs):
                raise AssertionError("nothing should be scheduled")

        WebhookNotifier([], executor=ExplodingExecutor()).notify(low_item)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message):
        self.sent.append(message)


class TestEmailNotifier:

    def setup_method(self):
        FakeSMTP.instances = []

    def make_notifier(self, **overrides):
        options = dict(
            host="smtp.test",
            port=587,
            sender="stock@example.com",
            password="secret",
            recipients=["buyer@example.com", "owner@example.com"],
            smtp_factory=FakeSMTP,
        )
        options.update(overrides)
        return EmailNotifier(**options)

    def test_message_describes_the_item(self, low_item):
        message = self.make_notifier().build_message(low_item)

        assert message["Subject"] == "Low stock alert: Printer paper"
        assert message["To"] == "buyer@example.com, owner@example.com"
        html = message.get_body(preferencelist=("html",)).get_content()
        assert "PROD-AB12CD" in html
        assert "2 box" in html
        assert "5 box" in html

    def test_sends_over_smtp(self, low_item):
        self.make_notifier().send_email(low_item)

        (smtp,) = FakeSMTP.instances
        assert (smtp.host, smtp.port) == ("smtp.test", 587)
        assert smtp.started_tls
        assert smtp.logged_in == ("stock@example.com", "secret")
        assert len(smtp.sent) == 1

    def test_notify_runs_on_executor(self, low_item):
        executor = ThreadPoolExecutor(max_workers=1)

        self.make_notifier(executor=executor).notify(low_item)
        executor.shutdown(wait=True)

        assert len(FakeSMTP.instances) == 1

    def test_smtp_failure_is_logged(self, low_item, caplog):
        class RefusingSMTP(FakeSMTP):
            def send_message(self, message):
                raise OSError("relay denied")

        with caplog.at_level(logging.ERROR, logger="inventory_ledger.notifications"):
            self.make_notifier(smtp_factory=RefusingSMTP).send_email(low_item)

        assert "relay denied" in caplog.text

    def test_skipped_without_recipients(self, low_item):
        self.make_notifier(recipients=[]).notify(low_item)

        assert FakeSMTP.instances == []


class TestComposition:

    def test_composite_keeps_going_after_a_failure(self, low_item):
        seen = []

        class Broken:
            def notify(self, item):
                raise RuntimeError("boom")

        class Recording:
            def notify(self, item):
                seen.append(item.id)

        CompositeNotifier([Broken(), Recording()]).notify(low_item)

        assert seen == [low_item.id]

    def test_null_notifier_accepts_anything(self, low_item):
        NullNotifier().notify(low_item)

    def test_build_without_configuration(self, monkeypatch):
        monkeypatch.setattr(config, "LOW_STOCK_WEBHOOK_URLS", [])
        monkeypatch.setattr(config, "EMAIL_HOST", "")

        assert isinstance(build_notifier(), NullNotifier)

    def test_build_with_webhooks_only(self, monkeypatch):
        monkeypatch.setattr(config, "LOW_STOCK_WEBHOOK_URLS", ["http://hooks.test/a"])
        monkeypatch.setattr(config, "EMAIL_HOST", "")

        notifier = build_notifier()

        assert isinstance(notifier, WebhookNotifier)
        assert notifier.urls == ["http://hooks.test/a"]

    def test_build_with_both_channels(self, monkeypatch):
        monkeypatch.setattr(config, "LOW_STOCK_WEBHOOK_URLS", ["http://hooks.test/a"])
        monkeypatch.setattr(config, "EMAIL_HOST", "smtp.test")
        monkeypatch.setattr(config, "EMAIL_RECIPIENTS", ["buyer@example.com"])

        notifier = build_notifier()

        assert isinstance(notifier, CompositeNotifier)
        assert [type(n) for n in notifier.notifiers] == [WebhookNotifier, EmailNotifier]


def test_shared_executor_is_recreated_after_shutdown():
    first = notifications.get_executor()
    notifications.shutdown_executor()
    second = notifications.get_executor()

    assert first is not second
    notifications.shutdown_executor()
