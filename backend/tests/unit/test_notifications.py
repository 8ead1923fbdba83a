"""
Unit tests for notification payloads and fire-and-forget delivery.
"""

from datetime import date
from unittest.mock import Mock

from services.notifications import (
    ApplicantSelected,
    LoggingNotifier,
    RequestCancelled,
    send_notification,
)


class TestSendNotification:
    """Delivery never raises into the lifecycle."""

    def test_delivers_payload(self):
        notifier = Mock()
        payload = RequestCancelled(request_id="request-1", automatic=True)

        assert send_notification(notifier, "practice-1", "practice", payload) is True
        notifier.notify.assert_called_once_with("practice-1", "practice", payload)

    def test_failures_are_logged_and_reported(self):
        notifier = Mock()
        notifier.notify.side_effect = ConnectionError("push gateway down")

        ok = send_notification(notifier, "locum-1", "locum", RequestCancelled(request_id="request-1"))

        assert ok is False

    def test_logging_notifier_accepts_any_payload(self):
        payload = ApplicantSelected(
            request_id="request-1",
            confirmation_id="confirmation-1",
            appointment_date=date(2026, 3, 9),
            start_time="09:00",
            end_time="17:00",
            location="Main Street Surgery",
        )

        assert send_notification(LoggingNotifier(), "locum-1", "locum", payload) is True


class TestPayloads:
    """Payloads are tagged with their type."""

    def test_type_tag_is_serialized(self):
        data = RequestCancelled(request_id="request-1").model_dump()

        assert data["type"] == "request_cancelled"
        assert data["automatic"] is False
