"""Supabase-backed implementation of the scheduling store."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from typing import Any, Optional

from supabase import create_client

from ..config import settings
from ..errors import InvalidStateError, NotFoundError, SlotConflictError, StoreError
from ..models.domain import (
    ACTIVE_BOOKING_STATUSES,
    Agent,
    Appointment,
    BookingRequest,
    Client,
    Coordinate,
    Property,
    PropertyPreference,
    ShowingSlot,
)
from .base import WriteBatch

logger = logging.getLogger(__name__)

AGENTS_TABLE = "agents"
CLIENTS_TABLE = "clients"
PROPERTIES_TABLE = "properties"
PREFERENCES_TABLE = "property_preferences"
SLOTS_TABLE = "showing_slots"
APPOINTMENTS_TABLE = "appointments"
BOOKING_REQUESTS_TABLE = "booking_requests"

# Postgres SQLSTATE reported by PostgREST for a unique index violation
UNIQUE_VIOLATION = "23505"


@lru_cache()
def get_supabase_client() -> Any:
    """Cached Supabase client for the configured project, or None.

    Creating the client does not touch the network, so a wrong URL or key
    surfaces later as a ``StoreError`` from the first query.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.info("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(f"Failed to create Supabase client for scheduling store: {e}")
        return None


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _coerce_time(value: Any) -> time:
    return value if isinstance(value, time) else time.fromisoformat(str(value))


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _isoformat(value: Any) -> Any:
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    return value


def row_to_agent(row: dict) -> Agent:
    return Agent(id=str(row["id"]), name=row["name"], email=row["email"], phone=row.get("phone"))


def row_to_property(row: dict) -> Property:
    lat = _coerce_float(row.get("latitude"))
    lon = _coerce_float(row.get("longitude"))
    return Property(
        id=str(row["id"]),
        address=row.get("address") or "",
        city=row.get("city") or "",
        state=row.get("state") or "",
        zip_code=row.get("zip_code") or "",
        property_type=row.get("property_type") or "house",
        location=Coordinate(latitude=lat, longitude=lon) if lat is not None and lon is not None else None,
        status=row.get("status") or "available",
        price=row.get("price"),
        bedrooms=row.get("bedrooms"),
        bathrooms=row.get("bathrooms"),
        square_feet=row.get("square_feet"),
    )


def row_to_client(row: dict) -> Client:
    return Client(
        id=str(row["id"]),
        agent_id=str(row["agent_id"]),
        name=row["name"],
        email=row.get("email"),
        phone=row.get("phone"),
        preferred_days=frozenset(row.get("preferred_days") or ()),
        preferred_time_slots=frozenset(row.get("preferred_time_slots") or ()),
        notes=row.get("notes"),
    )


def row_to_preference(row: dict) -> PropertyPreference:
    return PropertyPreference(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        property_id=str(row["property_id"]),
        priority=row.get("priority"),
    )


def row_to_slot(row: dict) -> ShowingSlot:
    return ShowingSlot(
        id=str(row["id"]),
        property_id=str(row["property_id"]),
        date=_coerce_date(row["date"]),
        start_time=_coerce_time(row["start_time"]),
        end_time=_coerce_time(row["end_time"]),
        is_booked=bool(row.get("is_booked")),
        booked_by=row.get("booked_by"),
        max_capacity=int(row.get("max_capacity") or settings.default_slot_capacity),
    )


def row_to_appointment(row: dict) -> Appointment:
    return Appointment(
        id=str(row["id"]),
        agent_id=str(row["agent_id"]),
        property_id=str(row["property_id"]),
        client_name=row["client_name"],
        scheduled_date=_coerce_datetime(row["scheduled_date"]),
        client_id=row.get("client_id"),
        client_email=row.get("client_email"),
        client_phone=row.get("client_phone"),
        duration=int(row.get("duration") or settings.default_appointment_duration),
        status=row.get("status") or "scheduled",
        notes=row.get("notes"),
        post_visit_notes=row.get("post_visit_notes"),
        booking_request_id=row.get("booking_request_id"),
    )


def row_to_booking_request(row: dict) -> BookingRequest:
    return BookingRequest(
        id=str(row["id"]),
        agent_id=str(row["agent_id"]),
        property_id=str(row["property_id"]),
        slot_id=str(row["slot_id"]),
        client_ids=list(row.get("client_ids") or []),
        status=row.get("status") or "pending",
        travel_time_from_previous=row.get("travel_time_from_previous"),
        distance_from_previous=_coerce_float(row.get("distance_from_previous")),
        requested_at=_coerce_datetime(row.get("requested_at")),
        responded_at=_coerce_datetime(row.get("responded_at")),
        notes=row.get("notes"),
    )


def slot_to_row(slot: ShowingSlot) -> dict:
    return {
        "id": slot.id,
        "property_id": slot.property_id,
        "date": slot.date.isoformat(),
        "start_time": slot.start_time.isoformat(),
        "end_time": slot.end_time.isoformat(),
        "is_booked": slot.is_booked,
        "booked_by": slot.booked_by,
        "max_capacity": slot.max_capacity,
    }


def appointment_to_row(appointment: Appointment) -> dict:
    return {
        "id": appointment.id,
        "agent_id": appointment.agent_id,
        "property_id": appointment.property_id,
        "client_id": appointment.client_id,
        "client_name": appointment.client_name,
        "client_email": appointment.client_email,
        "client_phone": appointment.client_phone,
        "scheduled_date": appointment.scheduled_date.isoformat(),
        "duration": appointment.duration,
        "status": appointment.status,
        "notes": appointment.notes,
        "post_visit_notes": appointment.post_visit_notes,
        "booking_request_id": appointment.booking_request_id,
    }


def booking_request_to_row(request: BookingRequest) -> dict:
    return {
        "id": request.id,
        "agent_id": request.agent_id,
        "property_id": request.property_id,
        "slot_id": request.slot_id,
        "client_ids": list(request.client_ids),
        "status": request.status,
        "travel_time_from_previous": request.travel_time_from_previous,
        "distance_from_previous": request.distance_from_previous,
        "requested_at": _isoformat(request.requested_at),
        "responded_at": _isoformat(request.responded_at),
        "notes": request.notes,
    }


class SupabaseStore:
    """``SchedulingStore`` over Supabase tables.

    PostgREST offers no multi-statement transaction, so ``commit`` writes its
    claims first (guarded slot updates, new booking requests) and then reads
    the claimed slots back. Two runs racing for one slot both write before
    either verifies, so at least one of them sees the other and rolls back.
    A unique partial index on ``booking_requests(slot_id)`` for active
    statuses, where the database has one, surfaces as ``SlotConflictError``
    straight from the insert.
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    def _select(self, table: str, **filters: Any) -> list[dict]:
        try:
            query = self.client.table(table).select("*")
            for column, value in filters.items():
                query = query.eq(column, value)
            response = query.execute()
        except Exception as exc:
            logger.error(f"Supabase select on '{table}' failed: {exc}")
            raise StoreError(f"Failed to read from '{table}': {exc}") from exc
        return response.data or []

    def _first(self, table: str, **filters: Any) -> Optional[dict]:
        rows = self._select(table, **filters)
        return rows[0] if rows else None

    def _insert(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        try:
            response = self.client.table(table).insert(rows).execute()
        except Exception as exc:
            if getattr(exc, "code", None) == UNIQUE_VIOLATION and table == BOOKING_REQUESTS_TABLE:
                logger.warning(f"Active booking request already exists for slot(s) in {table}: {exc}")
                raise SlotConflictError([row["slot_id"] for row in rows]) from exc
            logger.error(f"Supabase insert into '{table}' failed: {exc}")
            raise StoreError(f"Failed to write to '{table}': {exc}") from exc
        return response.data or []

    def _delete(self, table: str, **filters: Any) -> None:
        try:
            query = self.client.table(table).delete()
            for column, value in filters.items():
                query = query.eq(column, value)
            query.execute()
        except Exception as exc:
            logger.error(f"Supabase delete on '{table}' failed: {exc}")
            raise StoreError(f"Failed to delete from '{table}': {exc}") from exc

    def _update(self, table: str, changes: dict, **filters: Any) -> list[dict]:
        payload = {column: _isoformat(value) for column, value in changes.items()}
        try:
            query = self.client.table(table).update(payload)
            for column, value in filters.items():
                query = query.eq(column, value)
            response = query.execute()
        except Exception as exc:
            logger.error(f"Supabase update on '{table}' failed: {exc}")
            raise StoreError(f"Failed to update '{table}': {exc}") from exc
        return response.data or []

    # Agents, clients, properties
    def get_agent(self, agent_id: str) -> Optional[Agent]:
        row = self._first(AGENTS_TABLE, id=agent_id)
        return row_to_agent(row) if row else None

    def list_agents(self) -> list[Agent]:
        return [row_to_agent(row) for row in self._select(AGENTS_TABLE)]

    def get_client(self, client_id: str) -> Optional[Client]:
        row = self._first(CLIENTS_TABLE, id=client_id)
        return row_to_client(row) if row else None

    def list_clients_by_agent(self, agent_id: str) -> list[Client]:
        return [row_to_client(row) for row in self._select(CLIENTS_TABLE, agent_id=agent_id)]

    def get_property(self, property_id: str) -> Optional[Property]:
        row = self._first(PROPERTIES_TABLE, id=property_id)
        return row_to_property(row) if row else None

    def list_properties(self) -> list[Property]:
        return [row_to_property(row) for row in self._select(PROPERTIES_TABLE)]

    def list_preferences_by_client(self, client_id: str) -> list[PropertyPreference]:
        return [row_to_preference(row) for row in self._select(PREFERENCES_TABLE, client_id=client_id)]

    # Showing slots
    def get_slot(self, slot_id: str) -> Optional[ShowingSlot]:
        row = self._first(SLOTS_TABLE, id=slot_id)
        return row_to_slot(row) if row else None

    def list_slots_for_property(self, property_id: str, day: date) -> list[ShowingSlot]:
        rows = self._select(SLOTS_TABLE, property_id=property_id, date=day.isoformat())
        return [row_to_slot(row) for row in rows]

    def list_slots(self) -> list[ShowingSlot]:
        return [row_to_slot(row) for row in self._select(SLOTS_TABLE)]

    def create_slot(self, slot: ShowingSlot) -> ShowingSlot:
        rows = self._insert(SLOTS_TABLE, [slot_to_row(slot)])
        return row_to_slot(rows[0]) if rows else slot

    def update_slot(self, slot_id: str, **changes: Any) -> Optional[ShowingSlot]:
        rows = self._update(SLOTS_TABLE, changes, id=slot_id)
        return row_to_slot(rows[0]) if rows else None

    # Appointments
    def create_appointment(self, appointment: Appointment) -> Appointment:
        rows = self._insert(APPOINTMENTS_TABLE, [appointment_to_row(appointment)])
        return row_to_appointment(rows[0]) if rows else appointment

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        row = self._first(APPOINTMENTS_TABLE, id=appointment_id)
        return row_to_appointment(row) if row else None

    def update_appointment(self, appointment_id: str, **changes: Any) -> Optional[Appointment]:
        rows = self._update(APPOINTMENTS_TABLE, changes, id=appointment_id)
        return row_to_appointment(rows[0]) if rows else None

    def list_appointments_by_agent(self, agent_id: str) -> list[Appointment]:
        return [row_to_appointment(row) for row in self._select(APPOINTMENTS_TABLE, agent_id=agent_id)]

    def list_appointments_by_date(self, agent_id: str, day: date) -> list[Appointment]:
        try:
            response = (
                self.client.table(APPOINTMENTS_TABLE)
                .select("*")
                .eq("agent_id", agent_id)
                .gte("scheduled_date", day.isoformat())
                .lt("scheduled_date", (day + timedelta(days=1)).isoformat())
                .execute()
            )
        except Exception as exc:
            logger.error(f"Supabase select on '{APPOINTMENTS_TABLE}' failed: {exc}")
            raise StoreError(f"Failed to read from '{APPOINTMENTS_TABLE}': {exc}") from exc
        return [row_to_appointment(row) for row in response.data or []]

    # Booking requests
    def create_booking_request(self, request: BookingRequest) -> BookingRequest:
        rows = self._insert(BOOKING_REQUESTS_TABLE, [booking_request_to_row(request)])
        return row_to_booking_request(rows[0]) if rows else request

    def get_booking_request(self, request_id: str) -> Optional[BookingRequest]:
        row = self._first(BOOKING_REQUESTS_TABLE, id=request_id)
        return row_to_booking_request(row) if row else None

    def update_booking_request(self, request_id: str, **changes: Any) -> Optional[BookingRequest]:
        rows = self._update(BOOKING_REQUESTS_TABLE, changes, id=request_id)
        return row_to_booking_request(rows[0]) if rows else None

    def list_booking_requests_by_agent(self, agent_id: str) -> list[BookingRequest]:
        return [row_to_booking_request(row) for row in self._select(BOOKING_REQUESTS_TABLE, agent_id=agent_id)]

    def list_booking_requests_by_date(self, agent_id: str, day: date) -> list[BookingRequest]:
        slot_ids = {row["id"] for row in self._select(SLOTS_TABLE, date=day.isoformat())}
        return [request for request in self.list_booking_requests_by_agent(agent_id) if request.slot_id in slot_ids]

    def list_booking_requests_by_status(self, status: str) -> list[BookingRequest]:
        return [row_to_booking_request(row) for row in self._select(BOOKING_REQUESTS_TABLE, status=status)]

    # Transactions
    def commit(self, batch: WriteBatch) -> None:
        self._check_conflicts(batch)

        claimed: list[str] = []
        transitioned: list[tuple[str, str]] = []
        inserted: list[str] = []
        try:
            for booking in batch.slot_bookings:
                rows = self._update(
                    SLOTS_TABLE,
                    {"is_booked": True, "booked_by": booking.client_id},
                    id=booking.slot_id,
                    is_booked=False,
                )
                if not rows:
                    raise SlotConflictError([booking.slot_id])
                claimed.append(booking.slot_id)

            self._insert(BOOKING_REQUESTS_TABLE, [booking_request_to_row(r) for r in batch.booking_requests])
            inserted.extend(request.id for request in batch.booking_requests)

            self._verify_claims(batch)

            for request_id, expected_status, changes in batch.request_updates:
                rows = self._update(BOOKING_REQUESTS_TABLE, changes, id=request_id, status=expected_status)
                if not rows:
                    raise InvalidStateError(f"Booking request '{request_id}' is no longer {expected_status}.")
                transitioned.append((request_id, expected_status))

            self._insert(APPOINTMENTS_TABLE, [appointment_to_row(a) for a in batch.appointments])
        except Exception:
            self._withdraw(inserted)
            self._release(claimed)
            self._revert(transitioned)
            raise

        logger.info(
            f"Committed {len(batch.appointments)} appointment(s), {len(batch.slot_bookings)} slot booking(s), "
            f"{len(batch.booking_requests)} booking request(s) to Supabase"
        )

    def _check_conflicts(self, batch: WriteBatch) -> None:
        wanted = [booking.slot_id for booking in batch.slot_bookings] + [r.slot_id for r in batch.booking_requests]
        if not wanted:
            return
        reserved = {
            request.slot_id
            for status in ACTIVE_BOOKING_STATUSES
            for request in self.list_booking_requests_by_status(status)
        }
        conflicts: list[str] = []
        for slot_id in dict.fromkeys(wanted):
            slot = self.get_slot(slot_id)
            if slot is None:
                raise NotFoundError("Showing slot", slot_id)
            if slot.is_booked or slot_id in reserved or wanted.count(slot_id) > 1:
                conflicts.append(slot_id)
        if conflicts:
            raise SlotConflictError(conflicts)

    def _verify_claims(self, batch: WriteBatch) -> None:
        """Re-read every slot this batch claimed, after its own writes landed."""

        own_requests = {request.id for request in batch.booking_requests}
        requested_slots = {request.slot_id for request in batch.booking_requests}
        conflicts: list[str] = []

        for slot_id in dict.fromkeys([b.slot_id for b in batch.slot_bookings] + list(requested_slots)):
            rivals = [
                row
                for row in self._select(BOOKING_REQUESTS_TABLE, slot_id=slot_id)
                if row.get("status") in ACTIVE_BOOKING_STATUSES and str(row["id"]) not in own_requests
            ]
            if rivals:
                conflicts.append(slot_id)
                continue
            if slot_id in requested_slots:
                slot = self._first(SLOTS_TABLE, id=slot_id)
                if slot is None or slot.get("is_booked"):
                    conflicts.append(slot_id)

        if conflicts:
            logger.warning(f"Concurrent run claimed slot(s) {', '.join(conflicts)}; rolling back")
            raise SlotConflictError(conflicts)

    def _withdraw(self, request_ids: list[str]) -> None:
        for request_id in request_ids:
            try:
                self._delete(BOOKING_REQUESTS_TABLE, id=request_id)
            except StoreError:
                logger.exception(f"Failed to withdraw booking request {request_id} after an aborted commit")

    def _release(self, slot_ids: list[str]) -> None:
        for slot_id in slot_ids:
            try:
                self._update(SLOTS_TABLE, {"is_booked": False, "booked_by": None}, id=slot_id)
            except StoreError:
                logger.exception(f"Failed to release slot {slot_id} after an aborted commit")

    def _revert(self, transitions: list[tuple[str, str]]) -> None:
        for request_id, previous_status in transitions:
            try:
                self._update(BOOKING_REQUESTS_TABLE, {"status": previous_status, "responded_at": None}, id=request_id)
            except StoreError:
                logger.exception(f"Failed to restore booking request {request_id} after an aborted commit")
