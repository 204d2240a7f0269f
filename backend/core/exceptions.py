"""Typed outcomes raised by the scheduling engine.

Every class here is an expected, caller-recoverable result. Storage and
connectivity failures are not wrapped and surface as ``SQLAlchemyError``.
"""

from datetime import datetime


class SchedulingError(Exception):
    """Base class for scheduling outcomes the caller is expected to handle."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(SchedulingError):
    """Malformed or out-of-range input."""


class NotFound(SchedulingError):
    def __init__(self, entity: str, entity_id: int):
        super().__init__(f'{entity} not found.')
        self.entity = entity
        self.entity_id = entity_id


class OverlapConflict(SchedulingError):
    def __init__(self, conflicting_id: int | None):
        if conflicting_id is None:
            detail = 'Definition overlaps an existing definition for this day.'
        else:
            detail = f'Definition overlaps existing definition {conflicting_id} for this day.'
        super().__init__(detail)
        self.conflicting_id = conflicting_id


class SlotConflict(SchedulingError):
    def __init__(self, provider_id: int, instant: datetime):
        super().__init__('This time is already booked.')
        self.provider_id = provider_id
        self.instant = instant


class InvalidTransition(SchedulingError):
    def __init__(self, current_status: str, action: str):
        super().__init__(f'Cannot {action} an appointment that is {current_status.lower()}.')
        self.current_status = current_status
        self.action = action
