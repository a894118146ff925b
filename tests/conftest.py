"""
Shared fixtures for logarchive tests.
"""

from typing import List, Optional, Tuple

import pytest

from logarchive.monitoring.notifications import Notifier
from logarchive.storage.archive_models import NotifyResult


class RecordingNotifier(Notifier):
    """Notifier that keeps every report in memory instead of sending it."""

    def __init__(self, deliver: bool = True):
        super().__init__()
        self.deliver = deliver
        self.sent: List[Tuple[Optional[str], str, str]] = []

    async def notify(self, channel: Optional[str], subject: str, body: str) -> NotifyResult:
        self.sent.append((channel, subject, body))
        if not channel:
            return NotifyResult(delivered=False)
        return NotifyResult(delivered=self.deliver)


@pytest.fixture
def notifier():
    """A notifier that records (channel, subject, body) for each run."""
    return RecordingNotifier()
