"""
Notifier exception hierarchy.

Every error in the system inherits from NotifierError.
Each subsystem has its own error class for targeted catching.

Usage:
    try:
        await store.get(record_id)
    except NotFoundError as e:
        # Handle a missing notification
    except NotifierError as e:
        # Handle any notifier error
"""


class NotifierError(Exception):
    """Base exception for all notifier errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Core Errors ━━━


class ConfigError(NotifierError):
    """Configuration is invalid, missing, or malformed."""

    pass


# ━━━ Scheduling Errors ━━━


class RuleValidationError(NotifierError):
    """Recurrence rule is malformed (missing weekdays, bad month day, …)."""

    def __init__(
        self,
        message: str,
        kind: str = "",
        field: str = "",
        details: dict | None = None,
    ):
        self.kind = kind
        self.field = field
        super().__init__(message, details)


class NotFoundError(NotifierError):
    """Notification does not exist or is not in active status."""

    def __init__(self, message: str, record_id: str = "", details: dict | None = None):
        self.record_id = record_id
        super().__init__(message, details)


# ━━━ Collaborator Errors ━━━


class StoreError(NotifierError):
    """Storage backend failure — database unreachable, corruption, etc."""

    pass


class RenderError(NotifierError):
    """Template could not be loaded or rendered."""

    def __init__(self, message: str, template_ref: str = "", details: dict | None = None):
        self.template_ref = template_ref
        super().__init__(message, details)


class DeliveryError(NotifierError):
    """Sending a message to one recipient chat failed."""

    def __init__(
        self,
        message: str,
        channel: str = "",
        target: str = "",
        details: dict | None = None,
    ):
        self.channel = channel
        self.target = target
        super().__init__(message, details)
