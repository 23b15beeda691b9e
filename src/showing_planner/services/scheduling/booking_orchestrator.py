"""Multi-client booking requests and their confirmation lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Sequence

from ...config import DistanceUnit, settings
from ...errors import EmptyInputError, InvalidStateError, NotFoundError
from ...models.domain import Appointment, BookingRequest, Client, Coordinate, Property, new_id, utc_now
from ...persistence.base import SchedulingStore, WriteBatch, reserved_slot_ids
from ..clock import to_minutes
from .models import AcceptedBooking, RouteCursor, SlotCandidate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BookingParameters:
    average_speed: float = settings.booking_average_speed
    unit: DistanceUnit = settings.booking_distance_unit
    start_time: time = settings.booking_start_time
    end_time: time = settings.booking_end_time


def _resolve_clients(store: SchedulingStore, client_ids: Sequence[str]) -> list[Client]:
    clients: list[Client] = []
    for client_id in dict.fromkeys(client_ids):
        client = store.get_client(client_id)
        if client is None:
            logger.warning(f"Ignoring unknown client {client_id}")
            continue
        clients.append(client)
    return clients


def _interest_map(store: SchedulingStore, clients: Sequence[Client]) -> dict[str, list[str]]:
    """property id -> ids of clients with a preference for it, in client order."""

    interested: dict[str, list[str]] = {}
    for client in clients:
        for preference in store.list_preferences_by_client(client.id):
            members = interested.setdefault(preference.property_id, [])
            if client.id not in members:
                members.append(client.id)
    return interested


def build_slot_candidates(
    store: SchedulingStore,
    day: date,
    interested: dict[str, list[str]],
) -> list[SlotCandidate]:
    reserved = reserved_slot_ids(store)
    properties: dict[str, Optional[Property]] = {}
    candidates: list[SlotCandidate] = []

    for slot in store.list_slots():
        if slot.date != day or slot.is_booked or slot.id in reserved:
            continue
        client_ids = interested.get(slot.property_id)
        if not client_ids:
            continue
        if slot.property_id not in properties:
            properties[slot.property_id] = store.get_property(slot.property_id)
        prop = properties[slot.property_id]
        if prop is None:
            continue
        if len(client_ids) > slot.max_capacity:
            logger.debug(f"Slot {slot.id} holds {slot.max_capacity} but {len(client_ids)} clients are interested")
            continue
        candidates.append(
            SlotCandidate(
                slot=slot,
                property=prop,
                start_minutes=to_minutes(slot.start_time),
                end_minutes=to_minutes(slot.end_time),
                client_ids=list(client_ids),
            )
        )

    candidates.sort(key=lambda candidate: candidate.start_minutes)
    return candidates


def select_bookings(
    candidates: Sequence[SlotCandidate],
    cursor: RouteCursor,
    window_end: int,
) -> list[AcceptedBooking]:
    """Single forward pass: accept each time-ordered candidate the agent can reach."""

    window_start = cursor.minutes
    visited_properties: set[str] = set()
    accepted: list[AcceptedBooking] = []

    for candidate in candidates:
        if candidate.start_minutes < window_start or candidate.end_minutes > window_end:
            continue
        if candidate.property.id in visited_properties:
            continue
        if candidate.property.location is None:
            continue

        leg, minutes = cursor.leg_to(candidate.property.location)
        if not cursor.can_reach(minutes, candidate.start_minutes):
            logger.debug(f"Slot {candidate.slot.id} unreachable: {minutes} min travel from cursor")
            continue

        first = not accepted
        accepted.append(
            AcceptedBooking(
                candidate=candidate,
                travel_time_from_previous=None if first else minutes,
                distance_from_previous=None if first else leg,
            )
        )
        visited_properties.add(candidate.property.id)
        cursor.advance(candidate.property.location, candidate.end_minutes, leg, minutes)

    return accepted


def generate_booking_requests(
    store: SchedulingStore,
    agent_id: str,
    day: date,
    client_ids: Sequence[str],
    start_location: Coordinate,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    *,
    parameters: Optional[BookingParameters] = None,
) -> list[BookingRequest]:
    """Create pending booking requests for the clients' shared property interests."""

    parameters = parameters or BookingParameters()
    if store.get_agent(agent_id) is None:
        raise NotFoundError("Agent", agent_id)

    clients = _resolve_clients(store, client_ids)
    if not clients:
        raise EmptyInputError("No valid clients found")

    candidates = build_slot_candidates(store, day, _interest_map(store, clients))
    cursor = RouteCursor(
        location=start_location,
        minutes=to_minutes(start_time or parameters.start_time),
        unit=parameters.unit,
        average_speed=parameters.average_speed,
    )
    accepted = select_bookings(candidates, cursor, to_minutes(end_time or parameters.end_time))

    batch = WriteBatch()
    for booking in accepted:
        candidate = booking.candidate
        batch.add_booking_request(
            BookingRequest(
                id=new_id(),
                agent_id=agent_id,
                property_id=candidate.property.id,
                slot_id=candidate.slot.id,
                client_ids=list(candidate.client_ids),
                status="pending",
                travel_time_from_previous=booking.travel_time_from_previous,
                distance_from_previous=booking.distance_from_previous,
                requested_at=utc_now(),
                notes=f"Automated booking request for {len(candidate.client_ids)} client(s)",
            )
        )
    if not batch.is_empty():
        store.commit(batch)

    logger.info(
        f"Generated {len(batch.booking_requests)} booking request(s) for agent {agent_id} on {day.isoformat()} "
        f"from {len(candidates)} candidate slot(s)"
    )
    return list(batch.booking_requests)


def _pending_request(store: SchedulingStore, request_id: str, action: str) -> BookingRequest:
    request = store.get_booking_request(request_id)
    if request is None:
        raise NotFoundError("Booking request", request_id)
    if request.status != "pending":
        raise InvalidStateError(f"Only pending requests can be {action}; '{request_id}' is {request.status}.")
    return request


def confirm_booking_request(store: SchedulingStore, request_id: str) -> list[Appointment]:
    """Materialize one appointment per client and mark the request confirmed."""

    request = _pending_request(store, request_id, "confirmed")
    slot = store.get_slot(request.slot_id)
    if slot is None:
        raise NotFoundError("Showing slot", request.slot_id)

    batch = WriteBatch()
    scheduled = slot.starts_at()
    for client_id in request.client_ids:
        client = store.get_client(client_id)
        if client is None:
            logger.warning(f"Client {client_id} on booking request {request_id} no longer exists; skipping")
            continue
        batch.add_appointment(
            Appointment(
                id=new_id(),
                agent_id=request.agent_id,
                property_id=request.property_id,
                client_id=client.id,
                client_name=client.name,
                client_email=client.email,
                client_phone=client.phone,
                scheduled_date=scheduled,
                duration=slot.duration_minutes,
                status="scheduled",
                notes="Confirmed from booking request",
                booking_request_id=request_id,
            )
        )
    batch.update_booking_request(request_id, "pending", status="confirmed", responded_at=utc_now())
    store.commit(batch)

    logger.info(f"Confirmed booking request {request_id}: {len(batch.appointments)} appointment(s) created")
    return list(batch.appointments)


def reject_booking_request(store: SchedulingStore, request_id: str, reason: Optional[str] = None) -> BookingRequest:
    """Mark a pending request rejected; its slot stays available."""

    request = _pending_request(store, request_id, "rejected")
    notes = request.notes
    if reason:
        notes = f"{notes}\nRejected: {reason}" if notes else f"Rejected: {reason}"

    batch = WriteBatch()
    batch.update_booking_request(request_id, "pending", status="rejected", responded_at=utc_now(), notes=notes)
    store.commit(batch)

    logger.info(f"Rejected booking request {request_id}")
    return store.get_booking_request(request_id) or request
