"""Thread-safe in-memory store used by default and in tests."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date
from typing import Any, Iterable, Optional

from ..errors import InvalidStateError, NotFoundError, SlotConflictError
from ..models.domain import (
    ACTIVE_BOOKING_STATUSES,
    Agent,
    Appointment,
    BookingRequest,
    Client,
    Property,
    PropertyPreference,
    ShowingSlot,
)
from .base import WriteBatch

logger = logging.getLogger(__name__)


def _copy(record):
    """Detached copy so callers never share mutable rows with the store."""
    if record is None:
        return None
    if isinstance(record, BookingRequest):
        return replace(record, client_ids=list(record.client_ids))
    return replace(record)


class MemoryStore:
    """Dictionary-backed implementation of ``SchedulingStore``.

    Every read and write holds ``_lock``; reads hand out copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.agents: dict[str, Agent] = {}
        self.clients: dict[str, Client] = {}
        self.properties: dict[str, Property] = {}
        self.preferences: dict[str, PropertyPreference] = {}
        self.slots: dict[str, ShowingSlot] = {}
        self.appointments: dict[str, Appointment] = {}
        self.booking_requests: dict[str, BookingRequest] = {}

    def seed(
        self,
        *,
        agents: Iterable[Agent] = (),
        clients: Iterable[Client] = (),
        properties: Iterable[Property] = (),
        preferences: Iterable[PropertyPreference] = (),
        slots: Iterable[ShowingSlot] = (),
        appointments: Iterable[Appointment] = (),
        booking_requests: Iterable[BookingRequest] = (),
    ) -> "MemoryStore":
        with self._lock:
            self.agents.update((agent.id, agent) for agent in agents)
            self.clients.update((client.id, client) for client in clients)
            self.properties.update((prop.id, prop) for prop in properties)
            self.preferences.update((pref.id, pref) for pref in preferences)
            self.slots.update((slot.id, slot) for slot in slots)
            self.appointments.update((appointment.id, appointment) for appointment in appointments)
            self.booking_requests.update((request.id, request) for request in booking_requests)
        return self

    # Agents, clients, properties
    def get_agent(self, agent_id: str) -> Optional[Agent]:
        with self._lock:
            return self.agents.get(agent_id)

    def list_agents(self) -> list[Agent]:
        with self._lock:
            return list(self.agents.values())

    def get_client(self, client_id: str) -> Optional[Client]:
        with self._lock:
            return self.clients.get(client_id)

    def list_clients_by_agent(self, agent_id: str) -> list[Client]:
        with self._lock:
            return [client for client in self.clients.values() if client.agent_id == agent_id]

    def get_property(self, property_id: str) -> Optional[Property]:
        with self._lock:
            return self.properties.get(property_id)

    def list_properties(self) -> list[Property]:
        with self._lock:
            return list(self.properties.values())

    def list_preferences_by_client(self, client_id: str) -> list[PropertyPreference]:
        with self._lock:
            return [pref for pref in self.preferences.values() if pref.client_id == client_id]

    # Showing slots
    def get_slot(self, slot_id: str) -> Optional[ShowingSlot]:
        with self._lock:
            return _copy(self.slots.get(slot_id))

    def list_slots_for_property(self, property_id: str, day: date) -> list[ShowingSlot]:
        with self._lock:
            return [
                _copy(slot)
                for slot in self.slots.values()
                if slot.property_id == property_id and slot.date == day
            ]

    def list_slots(self) -> list[ShowingSlot]:
        with self._lock:
            return [_copy(slot) for slot in self.slots.values()]

    def create_slot(self, slot: ShowingSlot) -> ShowingSlot:
        with self._lock:
            self.slots[slot.id] = _copy(slot)
        return slot

    def update_slot(self, slot_id: str, **changes: Any) -> Optional[ShowingSlot]:
        with self._lock:
            slot = self.slots.get(slot_id)
            if slot is None:
                return None
            updated = replace(slot, **changes)
            self.slots[slot_id] = updated
            return _copy(updated)

    # Appointments
    def create_appointment(self, appointment: Appointment) -> Appointment:
        with self._lock:
            self.appointments[appointment.id] = _copy(appointment)
        return appointment

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        with self._lock:
            return _copy(self.appointments.get(appointment_id))

    def update_appointment(self, appointment_id: str, **changes: Any) -> Optional[Appointment]:
        with self._lock:
            appointment = self.appointments.get(appointment_id)
            if appointment is None:
                return None
            updated = replace(appointment, **changes)
            self.appointments[appointment_id] = updated
            return _copy(updated)

    def list_appointments_by_agent(self, agent_id: str) -> list[Appointment]:
        with self._lock:
            return [_copy(a) for a in self.appointments.values() if a.agent_id == agent_id]

    def list_appointments_by_date(self, agent_id: str, day: date) -> list[Appointment]:
        with self._lock:
            return [
                _copy(a)
                for a in self.appointments.values()
                if a.agent_id == agent_id and a.scheduled_date.date() == day
            ]

    # Booking requests
    def create_booking_request(self, request: BookingRequest) -> BookingRequest:
        with self._lock:
            self.booking_requests[request.id] = _copy(request)
        return request

    def get_booking_request(self, request_id: str) -> Optional[BookingRequest]:
        with self._lock:
            return _copy(self.booking_requests.get(request_id))

    def update_booking_request(self, request_id: str, **changes: Any) -> Optional[BookingRequest]:
        with self._lock:
            request = self.booking_requests.get(request_id)
            if request is None:
                return None
            updated = replace(request, **changes)
            self.booking_requests[request_id] = updated
            return _copy(updated)

    def list_booking_requests_by_agent(self, agent_id: str) -> list[BookingRequest]:
        with self._lock:
            return [_copy(r) for r in self.booking_requests.values() if r.agent_id == agent_id]

    def list_booking_requests_by_date(self, agent_id: str, day: date) -> list[BookingRequest]:
        with self._lock:
            slot_dates = {slot_id: slot.date for slot_id, slot in self.slots.items()}
            return [
                _copy(r)
                for r in self.booking_requests.values()
                if r.agent_id == agent_id and slot_dates.get(r.slot_id) == day
            ]

    def list_booking_requests_by_status(self, status: str) -> list[BookingRequest]:
        with self._lock:
            return [_copy(r) for r in self.booking_requests.values() if r.status == status]

    # Transactions
    def commit(self, batch: WriteBatch) -> None:
        """Validate every write in ``batch`` and apply all of them, or none."""

        with self._lock:
            self._validate(batch)
            for appointment in batch.appointments:
                self.appointments[appointment.id] = _copy(appointment)
            for booking in batch.slot_bookings:
                slot = self.slots[booking.slot_id]
                self.slots[booking.slot_id] = replace(slot, is_booked=True, booked_by=booking.client_id)
            for request in batch.booking_requests:
                self.booking_requests[request.id] = _copy(request)
            for request_id, _, changes in batch.request_updates:
                self.booking_requests[request_id] = replace(self.booking_requests[request_id], **changes)
        logger.debug(
            f"Committed {len(batch.appointments)} appointment(s), {len(batch.slot_bookings)} slot booking(s), "
            f"{len(batch.booking_requests)} booking request(s), {len(batch.request_updates)} request update(s)"
        )

    def _validate(self, batch: WriteBatch) -> None:
        releasing = {request_id for request_id, _, changes in batch.request_updates if changes.get("status") == "rejected"}
        reserved = {
            request.slot_id
            for request in self.booking_requests.values()
            if request.status in ACTIVE_BOOKING_STATUSES and request.id not in releasing
        }
        conflicts: list[str] = []
        claimed: set[str] = set()

        for booking in batch.slot_bookings:
            slot = self.slots.get(booking.slot_id)
            if slot is None:
                raise NotFoundError("Showing slot", booking.slot_id)
            if slot.is_booked or booking.slot_id in reserved or booking.slot_id in claimed:
                conflicts.append(booking.slot_id)
            claimed.add(booking.slot_id)

        for request in batch.booking_requests:
            slot = self.slots.get(request.slot_id)
            if slot is None:
                raise NotFoundError("Showing slot", request.slot_id)
            if slot.is_booked or request.slot_id in reserved or request.slot_id in claimed:
                conflicts.append(request.slot_id)
            claimed.add(request.slot_id)

        if conflicts:
            raise SlotConflictError(conflicts)

        for request_id, expected_status, _ in batch.request_updates:
            current = self.booking_requests.get(request_id)
            if current is None:
                raise NotFoundError("Booking request", request_id)
            if current.status != expected_status:
                raise InvalidStateError(
                    f"Booking request '{request_id}' is {current.status}, expected {expected_status}."
                )
