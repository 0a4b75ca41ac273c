import json

import httpx

from slotbook.config import settings
from slotbook.services import backup_sync, email_notify

SUMMARY = {
    "booking_code": "GN-20240601001",
    "status": "pending",
    "service_type": "mani_pedi",
    "service_location": "homebased_studio",
    "slots": [{"id": 1, "date": "2024-06-01", "time": "09:00"}, {"id": 2, "date": "2024-06-01", "time": "09:30"}],
    "total": 1500.0,
    "deposit_required": 500.0,
}
CUSTOMER = {"name": "Carla", "email": "carla@example.com", "phone": None}

REAL_CLIENT = httpx.Client


def _client_factory(handler):
    def factory(*args, **kwargs):
        return REAL_CLIENT(*args, transport=httpx.MockTransport(handler), **kwargs)

    return factory


def test_backup_sync_disabled_without_url(monkeypatch):
    monkeypatch.setattr(settings, "backup_webhook_url", "")
    assert backup_sync.sync_booking_to_backup({"booking_code": "X"}) is False


def test_backup_sync_posts_row(monkeypatch):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    monkeypatch.setattr(settings, "backup_webhook_url", "https://backup.example/hook")
    monkeypatch.setattr(backup_sync.httpx, "Client", _client_factory(handler))
    assert backup_sync.sync_booking_to_backup({"booking_code": "GN-20240601001"}) is True
    assert seen == [{"type": "booking", "row": {"booking_code": "GN-20240601001"}}]


def test_backup_sync_failures_are_swallowed(monkeypatch):
    def handler(request):
        return httpx.Response(500, text="boom")

    monkeypatch.setattr(settings, "backup_webhook_url", "https://backup.example/hook")
    monkeypatch.setattr(backup_sync.httpx, "Client", _client_factory(handler))
    assert backup_sync.sync_booking_to_backup({"booking_code": "GN-20240601001"}) is False

    def unreachable(request):
        raise httpx.ConnectError("down", request=request)

    monkeypatch.setattr(backup_sync.httpx, "Client", _client_factory(unreachable))
    assert backup_sync.sync_booking_to_backup({"booking_code": "GN-20240601001"}) is False


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def sendmail(self, from_addr, to_addrs, msg):
        FakeSMTP.sent.append((to_addrs, msg))


def test_email_skipped_without_credentials(monkeypatch):
    monkeypatch.setattr(settings, "smtp_user", "")
    monkeypatch.setattr(settings, "smtp_password", "")
    assert email_notify.send_booking_created_email(SUMMARY, CUSTOMER) == 0


def test_booking_created_email_goes_to_customer_and_admin(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(settings, "smtp_user", "studio@example.com")
    monkeypatch.setattr(settings, "smtp_password", "app-password")
    monkeypatch.setattr(settings, "admin_notify_email", "owner@example.com")
    monkeypatch.setattr(email_notify.smtplib, "SMTP", FakeSMTP)

    assert email_notify.send_booking_created_email(SUMMARY, CUSTOMER) == 2
    recipients = [to for to, _ in FakeSMTP.sent]
    assert recipients == [["carla@example.com"], ["owner@example.com"]]
    assert "GN-20240601001" in FakeSMTP.sent[0][1]


def test_email_failure_returns_false(monkeypatch):
    class Broken(FakeSMTP):
        def login(self, user, password):
            raise OSError("auth failed")

    monkeypatch.setattr(settings, "smtp_user", "studio@example.com")
    monkeypatch.setattr(settings, "smtp_password", "app-password")
    monkeypatch.setattr(email_notify.smtplib, "SMTP", Broken)
    assert email_notify.send_email("carla@example.com", "hi", "body") is False
