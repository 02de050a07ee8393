"""Exceptions raised by endpoint derivation.

All derive from ValueError so callers that already guard data loading with
``except ValueError`` keep working.
"""


class ScheduleError(ValueError):
    """A column label cannot be mapped to a visit cycle."""


class InvalidPatientError(ValueError):
    """A patient record cannot support endpoint derivation."""

    def __init__(self, subject_id, reason: str):
        self.subject_id = subject_id
        self.reason = reason
        super().__init__(f"Invalid patient {subject_id}: {reason}")


class PreconditionError(ValueError):
    """Input data violates an assumption the derivation relies on."""


class UnsupportedEstimandError(ValueError):
    """No estimand strategy is registered under the given label."""

    def __init__(self, label: str, supported: list[str] | None = None):
        self.label = label
        msg = f"Unsupported estimand: {label!r}"
        if supported:
            msg += f" (supported: {', '.join(supported)})"
        super().__init__(msg)
