import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List

SUCCESS = 'success'
WARNING = 'warning'
ERROR = 'error'

_LEVELS = {SUCCESS: logging.INFO, WARNING: logging.WARNING, ERROR: logging.ERROR}


@dataclass
class Notification:
    category: str
    message: str
    counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


class NotificationSink:
    """Receives human readable allocation outcomes."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def notify(self, category: str, message: str, **counts):
        self.logger.log(_LEVELS.get(category, logging.INFO), message)


class LoggingNotificationSink(NotificationSink):
    pass


class RecordingNotificationSink(NotificationSink):
    def __init__(self):
        super().__init__()
        self.notifications: List[Notification] = []

    def notify(self, category: str, message: str, **counts):
        super().notify(category, message, **counts)
        self.notifications.append(Notification(category, message, dict(counts)))

    @property
    def last(self):
        return self.notifications[-1] if self.notifications else None

    def clear(self):
        self.notifications = []
