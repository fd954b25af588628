"""
errors.py - Exception types

Sampling and notification errors are contained by the component that
raises them. Forecasting errors are the caller's problem.
"""


class HostwatchError(Exception):
    """Base class for all hostwatch errors."""


class TransientSamplingError(HostwatchError):
    """An OS counter could not be read this time around."""


class UnknownTaskError(HostwatchError, KeyError):
    """No scheduled task is registered under the given id."""

    def __init__(self, task_id: str):
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Unknown task: {self.task_id}"


class TaskAlreadyRegisteredError(HostwatchError):
    def __init__(self, task_id: str):
        super().__init__(f"Task already registered: {task_id}")
        self.task_id = task_id


class InvalidRecurrenceError(HostwatchError, ValueError):
    """A recurrence expression is not a valid crontab line."""


class InsufficientDataError(HostwatchError):
    """The forecaster needs at least one snapshot of history."""


class NotificationFailure(HostwatchError):
    """A notifier could not deliver an alert."""
