"""
Notifier fake that records messages instead of sending them.
"""

from bookingbot.services.notifier import Notifier


class RecordingNotifier(Notifier):
    def __init__(self):
        self.subject_messages: list[tuple[int, str]] = []
        self.staff_messages: list[str] = []
        self.failing_subjects: set[int] = set()

    def notify_subject(self, subject_id: int, text: str) -> None:
        if subject_id in self.failing_subjects:
            raise RuntimeError(f"send to {subject_id} failed")
        self.subject_messages.append((subject_id, text))

    def notify_staff(self, text: str) -> None:
        self.staff_messages.append(text)

    def messages_for(self, subject_id: int) -> list[str]:
        return [text for sid, text in self.subject_messages if sid == subject_id]
