"""
Tests for the Telegram notifier (always dry-run under pytest).
"""

from types import SimpleNamespace

from bookingbot.core.config import settings
from bookingbot.services.messaging import format_request_line, send_telegram_message
from bookingbot.services.notifier import TelegramNotifier


def test_send_is_dry_run_under_tests(monkeypatch):
    monkeypatch.setattr(settings, "telegram_bot_token", "123:abc")
    result = send_telegram_message(555, "hello", dry_run=False)
    assert result["status"] == "dry_run"
    assert result["chat_id"] == 555


def test_notify_staff_sends_to_every_staff_member(monkeypatch):
    sent = []
    monkeypatch.setattr(
        "bookingbot.services.notifier.send_telegram_message",
        lambda chat_id, text, dry_run: sent.append(chat_id),
    )

    TelegramNotifier(staff_ids={901, 900}).notify_staff("new request")

    assert sent == [900, 901]


def test_notify_staff_continues_after_one_failure(monkeypatch):
    sent = []

    def fake_send(chat_id, text, dry_run):
        if chat_id == 900:
            raise RuntimeError("blocked by user")
        sent.append(chat_id)

    monkeypatch.setattr("bookingbot.services.notifier.send_telegram_message", fake_send)

    TelegramNotifier(staff_ids={900, 901}).notify_staff("new request")

    assert sent == [901]


def test_notifications_disabled_by_feature_flag(monkeypatch):
    sent = []
    monkeypatch.setattr(settings, "feature_notifications_enabled", False)
    monkeypatch.setattr(
        "bookingbot.services.notifier.send_telegram_message",
        lambda chat_id, text, dry_run: sent.append(chat_id),
    )

    notifier = TelegramNotifier(staff_ids={900})
    notifier.notify_subject(555, "hi")
    notifier.notify_staff("hi")

    assert sent == []


def test_format_request_line():
    request = SimpleNamespace(
        subject_handle="ivan", subject_name="Ivan", slot_label="02.06.2030 10:00-11:00", procedure_name=None
    )
    assert format_request_line(request) == "@ivan - 02.06.2030 10:00-11:00 - -"
