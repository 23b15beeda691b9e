from datetime import date, time

import pytest

from showing_planner.errors import NotFoundError
from showing_planner.models.domain import (
    Agent,
    BookingRequest,
    Client,
    Coordinate,
    Property,
    PropertyPreference,
    ShowingSlot,
)
from showing_planner.persistence.memory import MemoryStore
from showing_planner.services.geospatial import distance
from showing_planner.services.scheduling.models import ScheduleCandidate
from showing_planner.services.scheduling.smart_scheduler import generate_smart_schedule, rank_candidates

SATURDAY = date(2026, 10, 24)
AGENT = Agent(id="A1", name="Agent Smith", email="agent@example.com")
HOME = Coordinate(43.5890, -79.6441)


def _property(pid: str, lat: float, lon: float) -> Property:
    return Property(
        id=pid,
        address=f"{pid} Main St",
        city="Mississauga",
        state="ON",
        zip_code="L5B",
        location=Coordinate(lat, lon),
    )


def _client(cid: str, days=("Saturday",), slots=("morning",), notes: str | None = None) -> Client:
    return Client(
        id=cid,
        agent_id=AGENT.id,
        name=f"Client {cid}",
        email=f"{cid.lower()}@example.com",
        preferred_days=frozenset(days),
        preferred_time_slots=frozenset(slots),
        notes=notes,
    )


def _slot(sid: str, pid: str, start: str, end: str, **kwargs) -> ShowingSlot:
    return ShowingSlot(
        id=sid,
        property_id=pid,
        date=SATURDAY,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        **kwargs,
    )


def _pref(client_id: str, property_id: str, priority: int | None = 1) -> PropertyPreference:
    return PropertyPreference(id=f"{client_id}-{property_id}", client_id=client_id, property_id=property_id, priority=priority)


def _store(**entities) -> MemoryStore:
    return MemoryStore().seed(agents=[AGENT], **entities)


def test_single_client_single_slot_end_to_end():
    prop = _property("P1", 43.5890, -79.6441)
    store = _store(
        clients=[_client("C1", notes="Wants a yard")],
        properties=[prop],
        preferences=[_pref("C1", "P1")],
        slots=[_slot("S1", "P1", "09:00", "10:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, prop.location)

    assert len(result.appointments) == 1
    appointment = result.appointments[0]
    assert appointment.scheduled_date.hour == 9 and appointment.scheduled_date.minute == 0
    assert appointment.duration == 60
    assert appointment.client_id == "C1"
    assert appointment.notes == "Smart scheduled - Wants a yard"
    assert result.clients_scheduled == 1
    assert result.properties_visited == 1
    assert result.total_distance == 0
    assert store.get_slot("S1").is_booked is True
    assert store.get_slot("S1").booked_by == "C1"
    assert store.get_appointment(appointment.id) is not None


def test_total_distance_measured_from_start_location():
    prop = _property("P1", 43.6532, -79.3832)
    store = _store(
        clients=[_client("C1")],
        properties=[prop],
        preferences=[_pref("C1", "P1")],
        slots=[_slot("S1", "P1", "09:00", "10:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    assert len(result.appointments) == 1
    assert result.total_distance == pytest.approx(distance(HOME, prop.location, "mi"))
    assert result.total_travel_time > 0
    assert result.appointments[0].notes == "Smart scheduled - No notes"


def test_unknown_agent_raises_not_found():
    with pytest.raises(NotFoundError):
        generate_smart_schedule(MemoryStore(), "nobody", SATURDAY, HOME)


def test_no_available_clients_returns_empty_result():
    store = _store(
        clients=[_client("C1", days=("Monday",))],
        properties=[_property("P1", 43.59, -79.64)],
        preferences=[_pref("C1", "P1")],
        slots=[_slot("S1", "P1", "09:00", "10:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    assert result.appointments == []
    assert result.total_distance == 0
    assert result.clients_scheduled == 0
    assert store.get_slot("S1").is_booked is False


def test_booked_and_reserved_slots_are_never_offered():
    store = _store(
        clients=[_client("C1")],
        properties=[_property("P1", 43.59, -79.64), _property("P2", 43.60, -79.65)],
        preferences=[_pref("C1", "P1"), _pref("C1", "P2")],
        slots=[
            _slot("S1", "P1", "09:00", "10:00", is_booked=True, booked_by="someone"),
            _slot("S2", "P2", "10:00", "11:00"),
        ],
        booking_requests=[
            BookingRequest(id="R1", agent_id=AGENT.id, property_id="P2", slot_id="S2", client_ids=["C9"]),
        ],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    assert result.appointments == []
    assert store.get_slot("S1").booked_by == "someone"


def test_slots_outside_preferred_time_of_day_are_ignored():
    store = _store(
        clients=[_client("C1", slots=("morning",))],
        properties=[_property("P1", 43.59, -79.64)],
        preferences=[_pref("C1", "P1")],
        slots=[_slot("S1", "P1", "14:00", "15:00"), _slot("S2", "P1", "17:30", "18:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    assert result.appointments == []


def test_one_appointment_per_client_property_pair():
    store = _store(
        clients=[_client("C1", slots=("morning", "afternoon"))],
        properties=[_property("P1", 43.59, -79.64)],
        preferences=[_pref("C1", "P1")],
        slots=[_slot("S2", "P1", "13:00", "14:00"), _slot("S1", "P1", "09:00", "10:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    assert len(result.appointments) == 1
    assert result.appointments[0].scheduled_date.hour == 9
    assert store.get_slot("S2").is_booked is False


def test_appointments_never_overlap_for_a_client():
    store = _store(
        clients=[_client("C1", slots=("morning",))],
        properties=[
            _property("P1", 43.5890, -79.6441),
            _property("P2", 43.5895, -79.6445),
            _property("P3", 43.5900, -79.6450),
        ],
        preferences=[_pref("C1", "P1"), _pref("C1", "P2"), _pref("C1", "P3")],
        slots=[
            _slot("S1", "P1", "09:00", "10:00"),
            _slot("S2", "P2", "09:30", "10:30"),
            _slot("S3", "P3", "10:30", "11:30"),
        ],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    windows = sorted(
        (appointment.scheduled_date, appointment.duration) for appointment in result.appointments
    )
    for (start, minutes), (next_start, _) in zip(windows, windows[1:]):
        assert (next_start - start).total_seconds() / 60 >= minutes
    assert {appointment.property_id for appointment in result.appointments} == {"P1", "P3"}


def test_nearest_reachable_candidate_is_chosen_first():
    near = _property("NEAR", 43.5891, -79.6442)
    far = _property("FAR", 43.6532, -79.3832)
    store = _store(
        clients=[_client("C1"), _client("C2")],
        properties=[near, far],
        preferences=[_pref("C1", "NEAR"), _pref("C2", "FAR")],
        slots=[_slot("SN", "NEAR", "10:00", "11:00"), _slot("SF", "FAR", "09:30", "10:30")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME)

    # the later but closer showing wins; the earlier far one can no longer be reached
    assert [appointment.property_id for appointment in result.appointments] == ["NEAR"]
    assert store.get_slot("SF").is_booked is False


def test_start_time_limits_reachability():
    prop = _property("P1", 43.6532, -79.3832)
    store = _store(
        clients=[_client("C1")],
        properties=[prop],
        preferences=[_pref("C1", "P1")],
        slots=[_slot("S1", "P1", "09:00", "10:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME, time(8, 55))

    assert result.appointments == []


def test_selected_property_ids_restrict_candidates():
    store = _store(
        clients=[_client("C1")],
        properties=[_property("P1", 43.5890, -79.6441), _property("P2", 43.5891, -79.6442)],
        preferences=[_pref("C1", "P1"), _pref("C1", "P2")],
        slots=[_slot("S1", "P1", "09:00", "10:00"), _slot("S2", "P2", "10:00", "11:00")],
    )

    result = generate_smart_schedule(store, AGENT.id, SATURDAY, HOME, selected_property_ids=["P2"])

    assert [appointment.property_id for appointment in result.appointments] == ["P2"]


def test_rank_candidates_orders_by_priority_then_start_with_missing_priority_last():
    client = _client("C1")
    props = {pid: _property(pid, 43.59, -79.64) for pid in ("P1", "P2", "P3")}

    def _candidate(pid: str, start: str, priority):
        return ScheduleCandidate(
            client=client,
            property=props[pid],
            slot=_slot(f"S-{pid}-{start}", pid, start, "18:00"),
            preference=_pref("C1", pid, priority),
        )

    ranked = rank_candidates(
        [
            _candidate("P3", "09:00", None),
            _candidate("P2", "11:00", 2),
            _candidate("P1", "10:00", 1),
            _candidate("P2", "09:00", 2),
        ],
        default_priority=99,
    )

    assert [(c.property.id, c.slot.start_time.hour) for c in ranked] == [("P1", 10), ("P2", 9), ("P3", 9)]
