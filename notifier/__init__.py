"""
Notifier — scheduled chat notifications for the org chart portal.

Public API:
    from notifier import RecurrenceRule, evaluate, NotificationScheduler
"""

__version__ = "0.1.0"

# Core
from notifier.core.config import NotifierConfig
from notifier.core.errors import (
    NotifierError,
    NotFoundError,
    RuleValidationError,
    StoreError,
)

# Scheduling
from notifier.scheduler.rule import RecurrenceKind, RecurrenceRule
from notifier.scheduler.due import DueDecision, evaluate
from notifier.scheduler.record import ChatTarget, NotificationRecord, RecordStatus
from notifier.scheduler.engine import FireOutcome, FireResult, NotificationScheduler
from notifier.scheduler.manual import ManualTrigger
from notifier.scheduler.lifecycle import ServiceLifecycle, ServiceStatus

__all__ = [
    # Core
    "NotifierConfig",
    "NotifierError",
    "NotFoundError",
    "RuleValidationError",
    "StoreError",
    # Scheduling
    "RecurrenceKind",
    "RecurrenceRule",
    "DueDecision",
    "evaluate",
    "ChatTarget",
    "NotificationRecord",
    "RecordStatus",
    "FireOutcome",
    "FireResult",
    "NotificationScheduler",
    "ManualTrigger",
    "ServiceLifecycle",
    "ServiceStatus",
]
