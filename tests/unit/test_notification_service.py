"""Unit tests for the notifier."""

from structlog.testing import capture_logs

from rise_eval.services.notification_service import (
    Notification,
    NotificationLevel,
    Notifier,
    log_sink,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestNotifier:
    """Tests for delivery and de-duplication."""

    def test_delivers_to_every_sink(self):
        """Test a notification reaches all sinks."""
        first, second = [], []
        notifier = Notifier(sinks=[first.append, second.append])

        assert notifier.success("Model evaluation saved") is True

        expected = Notification(NotificationLevel.SUCCESS, "Model evaluation saved")
        assert first == second == [expected]

    def test_duplicate_suppressed_within_window(self):
        """Test the same message is delivered once per window."""
        delivered = []
        clock = FakeClock()
        notifier = Notifier(sinks=[delivered.append], dedupe_seconds=5.0, clock=clock)

        assert notifier.error("Failed to save evaluation to server") is True
        clock.now = 4.9
        assert notifier.error("Failed to save evaluation to server") is False
        clock.now = 5.0
        assert notifier.error("Failed to save evaluation to server") is True

        assert len(delivered) == 2

    def test_level_is_part_of_identity(self):
        """Test equal messages at different levels are both delivered."""
        delivered = []
        notifier = Notifier(sinks=[delivered.append], clock=FakeClock())

        notifier.warning("Check image")
        notifier.error("Check image")

        assert [n.level for n in delivered] == [
            NotificationLevel.WARNING,
            NotificationLevel.ERROR,
        ]

    def test_description_not_part_of_identity(self):
        """Test a repeat with a different description is still suppressed."""
        delivered = []
        notifier = Notifier(sinks=[delivered.append], clock=FakeClock())

        notifier.error("Failed to load data", "Server error. Please try again later.")
        notifier.error("Failed to load data", "No response received from the server.")

        assert len(delivered) == 1
        assert delivered[0].description == "Server error. Please try again later."

    def test_default_sink_logs(self):
        """Test the default sink writes to the structured log."""
        notifier = Notifier()

        with capture_logs() as logs:
            notifier.warning("Image unavailable", "Showing a placeholder")

        assert logs[0]["event"] == "notification"
        assert logs[0]["level"] == "warning"
        assert logs[0]["description"] == "Showing a placeholder"

    def test_log_sink(self):
        """Test log_sink can be used directly."""
        with capture_logs() as logs:
            log_sink(Notification(NotificationLevel.SUCCESS, "Saved"))

        assert logs[0]["message"] == "Saved"
        assert logs[0]["log_level"] == "info"
