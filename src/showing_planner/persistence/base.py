"""Storage contract consumed by the scheduling services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Protocol, Sequence

from ..models.domain import (
    Agent,
    Appointment,
    BookingRequest,
    Client,
    Property,
    PropertyPreference,
    ShowingSlot,
)


@dataclass(slots=True)
class SlotBooking:
    slot_id: str
    client_id: Optional[str]


@dataclass(slots=True)
class WriteBatch:
    """Writes collected during a run and applied together by ``SchedulingStore.commit``.

    Slot bookings require the slot to still be unbooked and unreserved; new
    booking requests require their slot to be unreserved. Request updates are
    applied only if the request still has ``expected_status``.
    """

    appointments: list[Appointment] = field(default_factory=list)
    slot_bookings: list[SlotBooking] = field(default_factory=list)
    booking_requests: list[BookingRequest] = field(default_factory=list)
    request_updates: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def add_appointment(self, appointment: Appointment) -> None:
        self.appointments.append(appointment)

    def book_slot(self, slot_id: str, client_id: Optional[str]) -> None:
        self.slot_bookings.append(SlotBooking(slot_id=slot_id, client_id=client_id))

    def add_booking_request(self, request: BookingRequest) -> None:
        self.booking_requests.append(request)

    def update_booking_request(self, request_id: str, expected_status: str, **changes: Any) -> None:
        self.request_updates.append((request_id, expected_status, changes))

    def is_empty(self) -> bool:
        return not (self.appointments or self.slot_bookings or self.booking_requests or self.request_updates)


class SchedulingStore(Protocol):
    # Agents, clients, properties
    def get_agent(self, agent_id: str) -> Optional[Agent]: ...

    def list_agents(self) -> list[Agent]: ...

    def get_client(self, client_id: str) -> Optional[Client]: ...

    def list_clients_by_agent(self, agent_id: str) -> list[Client]: ...

    def get_property(self, property_id: str) -> Optional[Property]: ...

    def list_properties(self) -> list[Property]: ...

    def list_preferences_by_client(self, client_id: str) -> list[PropertyPreference]: ...

    # Showing slots
    def get_slot(self, slot_id: str) -> Optional[ShowingSlot]: ...

    def list_slots_for_property(self, property_id: str, day: date) -> list[ShowingSlot]: ...

    def list_slots(self) -> list[ShowingSlot]: ...

    def create_slot(self, slot: ShowingSlot) -> ShowingSlot: ...

    def update_slot(self, slot_id: str, **changes: Any) -> Optional[ShowingSlot]: ...

    # Appointments
    def create_appointment(self, appointment: Appointment) -> Appointment: ...

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]: ...

    def update_appointment(self, appointment_id: str, **changes: Any) -> Optional[Appointment]: ...

    def list_appointments_by_agent(self, agent_id: str) -> list[Appointment]: ...

    def list_appointments_by_date(self, agent_id: str, day: date) -> list[Appointment]: ...

    # Booking requests
    def create_booking_request(self, request: BookingRequest) -> BookingRequest: ...

    def get_booking_request(self, request_id: str) -> Optional[BookingRequest]: ...

    def update_booking_request(self, request_id: str, **changes: Any) -> Optional[BookingRequest]: ...

    def list_booking_requests_by_agent(self, agent_id: str) -> list[BookingRequest]: ...

    def list_booking_requests_by_date(self, agent_id: str, day: date) -> list[BookingRequest]: ...

    def list_booking_requests_by_status(self, status: str) -> list[BookingRequest]: ...

    # Transactions
    def commit(self, batch: WriteBatch) -> None: ...


def reserved_slot_ids(store: SchedulingStore, statuses: Sequence[str] = ("pending", "confirmed")) -> set[str]:
    """Slots held by a pending or confirmed booking request."""

    reserved: set[str] = set()
    for status in statuses:
        reserved.update(request.slot_id for request in store.list_booking_requests_by_status(status))
    return reserved
