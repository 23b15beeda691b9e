"""Exceptions raised by the scheduling engine.

All errors derive from ``ValueError`` so API layers that translate
``ValueError`` into a 400 response keep working unchanged.
"""

from __future__ import annotations


class SchedulingError(ValueError):
    """Base class for caller-visible scheduling failures."""


class NotFoundError(SchedulingError):
    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found.")


class InvalidStateError(SchedulingError):
    """Operation is not allowed in the entity's current state."""


class EmptyInputError(SchedulingError):
    """Nothing usable was supplied for a run."""


class SlotConflictError(SchedulingError):
    """A slot was booked or reserved by another run before this one committed."""

    def __init__(self, slot_ids: list[str]) -> None:
        self.slot_ids = slot_ids
        super().__init__(f"Showing slot(s) no longer available: {', '.join(slot_ids)}")


class StoreError(SchedulingError):
    """The backing store rejected or failed an operation."""
