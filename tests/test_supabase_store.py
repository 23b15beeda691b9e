from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

import showing_planner.persistence as persistence
from showing_planner.errors import SlotConflictError, StoreError
from showing_planner.models.domain import Appointment, BookingRequest
from showing_planner.persistence.base import WriteBatch
from showing_planner.persistence.memory import MemoryStore
from showing_planner.persistence.supabase_store import SupabaseStore, booking_request_to_row, row_to_property
from showing_planner.services.scheduling.booking_orchestrator import confirm_booking_request

DAY = date(2026, 10, 24)


class UniqueViolation(Exception):
    code = "23505"


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []

    def select(self, _columns: str) -> "FakeQuery":
        self.action = "select"
        return self

    def insert(self, rows) -> "FakeQuery":
        self.action = "insert"
        self.payload = rows
        return self

    def update(self, changes) -> "FakeQuery":
        self.action = "update"
        self.payload = changes
        return self

    def delete(self) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column, value) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def gte(self, column, value) -> "FakeQuery":
        self.filters.append(lambda row: str(row.get(column)) >= value)
        return self

    def lt(self, column, value) -> "FakeQuery":
        self.filters.append(lambda row: str(row.get(column)) < value)
        return self

    def execute(self) -> SimpleNamespace:
        if self.table in self.db.failing:
            raise RuntimeError(f"{self.table} unavailable")
        rows = self.db.tables.setdefault(self.table, [])
        if self.action == "insert":
            if self.table == "booking_requests" and self.db.unique_active_slot:
                active = {row["slot_id"] for row in rows if row["status"] in ("pending", "confirmed")}
                if any(row["slot_id"] in active for row in self.payload):
                    raise UniqueViolation("duplicate key value violates unique constraint")
            rows.extend(dict(row) for row in self.payload)
            return SimpleNamespace(data=[dict(row) for row in self.payload])
        matched = [row for row in rows if all(check(row) for check in self.filters)]
        if self.action == "update":
            for row in matched:
                row.update(self.payload)
        if self.action == "delete":
            self.db.tables[self.table] = [row for row in rows if row not in matched]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeSupabase:
    def __init__(self, unique_active_slot: bool = False, **tables) -> None:
        self.tables = {name: [dict(row) for row in rows] for name, rows in tables.items()}
        self.failing: set[str] = set()
        self.unique_active_slot = unique_active_slot

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


def _slot_row(sid: str, **overrides) -> dict:
    row = {
        "id": sid,
        "property_id": "P1",
        "date": "2026-10-24",
        "start_time": "09:00:00",
        "end_time": "10:00:00",
        "is_booked": False,
        "booked_by": None,
        "max_capacity": 10,
    }
    row.update(overrides)
    return row


def _appointment(aid: str) -> Appointment:
    return Appointment(
        id=aid,
        agent_id="A1",
        property_id="P1",
        client_id="C1",
        client_name="Client",
        scheduled_date=datetime(2026, 10, 24, 9, 0),
    )


def test_row_to_property_parses_coordinates():
    located = row_to_property({"id": 7, "address": "1 Main St", "latitude": "43.5890", "longitude": "-79.6441"})
    unlocated = row_to_property({"id": 8, "address": "2 Main St", "latitude": None, "longitude": -79.6})

    assert located.id == "7"
    assert located.location.latitude == pytest.approx(43.589)
    assert unlocated.location is None


def test_reads_map_rows_to_domain_objects():
    db = FakeSupabase(
        clients=[
            {"id": "C1", "agent_id": "A1", "name": "Client", "preferred_days": ["Saturday"], "preferred_time_slots": ["morning"]}
        ],
        showing_slots=[_slot_row("S1"), _slot_row("S2", date="2026-10-25")],
        appointments=[
            {"id": "AP1", "agent_id": "A1", "property_id": "P1", "client_name": "X", "scheduled_date": "2026-10-24T09:00:00"},
            {"id": "AP2", "agent_id": "A1", "property_id": "P1", "client_name": "Y", "scheduled_date": "2026-10-25T09:00:00"},
        ],
    )
    store = SupabaseStore(db)

    [client] = store.list_clients_by_agent("A1")
    assert client.preferred_days == frozenset({"Saturday"})
    assert [slot.id for slot in store.list_slots_for_property("P1", DAY)] == ["S1"]
    assert store.get_slot("S1").start_time == time(9, 0)
    assert [a.id for a in store.list_appointments_by_date("A1", DAY)] == ["AP1"]


def test_commit_claims_slots_and_inserts_rows():
    db = FakeSupabase(showing_slots=[_slot_row("S1")], booking_requests=[], appointments=[])
    store = SupabaseStore(db)
    batch = WriteBatch()
    batch.add_appointment(_appointment("AP1"))
    batch.book_slot("S1", "C1")

    store.commit(batch)

    assert db.tables["showing_slots"][0]["is_booked"] is True
    assert db.tables["showing_slots"][0]["booked_by"] == "C1"
    assert db.tables["appointments"][0]["scheduled_date"] == "2026-10-24T09:00:00"


def test_commit_refuses_booked_slot():
    db = FakeSupabase(showing_slots=[_slot_row("S1", is_booked=True)], booking_requests=[], appointments=[])
    batch = WriteBatch()
    batch.add_appointment(_appointment("AP1"))
    batch.book_slot("S1", "C1")

    with pytest.raises(SlotConflictError):
        SupabaseStore(db).commit(batch)
    assert db.tables["appointments"] == []


def test_commit_releases_claimed_slots_when_insert_fails():
    db = FakeSupabase(showing_slots=[_slot_row("S1")], booking_requests=[], appointments=[])
    db.failing.add("appointments")
    batch = WriteBatch()
    batch.add_appointment(_appointment("AP1"))
    batch.book_slot("S1", "C1")

    with pytest.raises(StoreError):
        SupabaseStore(db).commit(batch)
    assert db.tables["showing_slots"][0]["is_booked"] is False


def test_read_failures_raise_store_error():
    db = FakeSupabase()
    db.failing.add("agents")

    with pytest.raises(StoreError):
        SupabaseStore(db).get_agent("A1")


def test_get_store_falls_back_to_memory(monkeypatch):
    monkeypatch.setattr(persistence, "get_supabase_client", lambda: None)
    persistence.get_store.cache_clear()
    try:
        assert isinstance(persistence.get_store(), MemoryStore)
    finally:
        persistence.get_store.cache_clear()


def test_get_store_uses_supabase_when_configured(monkeypatch):
    monkeypatch.setattr(persistence, "get_supabase_client", lambda: FakeSupabase())
    persistence.get_store.cache_clear()
    try:
        assert isinstance(persistence.get_store(), SupabaseStore)
    finally:
        persistence.get_store.cache_clear()


def _request(rid: str, slot_id: str = "S1", status: str = "pending") -> BookingRequest:
    return BookingRequest(id=rid, agent_id="A1", property_id="P1", slot_id=slot_id, client_ids=["C1"], status=status)


def _request_batch(rid: str) -> WriteBatch:
    batch = WriteBatch()
    batch.add_booking_request(_request(rid))
    return batch


def _booking_batch(client_id: str) -> WriteBatch:
    batch = WriteBatch()
    batch.add_appointment(_appointment(f"AP-{client_id}"))
    batch.book_slot("S1", client_id)
    return batch


def _interleave(monkeypatch, store: SupabaseStore, concurrent) -> None:
    """Run ``concurrent`` right after ``store`` passes its up-front conflict check."""

    check = store._check_conflicts

    def _check_then_race(batch: WriteBatch) -> None:
        check(batch)
        concurrent()

    monkeypatch.setattr(store, "_check_conflicts", _check_then_race)


def _active_requests(db: FakeSupabase) -> list[str]:
    return [row["id"] for row in db.tables["booking_requests"] if row["status"] in ("pending", "confirmed")]


@pytest.mark.parametrize("unique_active_slot", [False, True])
def test_racing_booking_requests_leave_one_active(monkeypatch, unique_active_slot):
    db = FakeSupabase(unique_active_slot=unique_active_slot, showing_slots=[_slot_row("S1")], booking_requests=[])
    first, second = SupabaseStore(db), SupabaseStore(db)
    _interleave(monkeypatch, first, lambda: second.commit(_request_batch("R-second")))

    with pytest.raises(SlotConflictError):
        first.commit(_request_batch("R-first"))

    assert _active_requests(db) == ["R-second"]


def test_slot_claim_loses_to_request_inserted_meanwhile(monkeypatch):
    db = FakeSupabase(showing_slots=[_slot_row("S1")], booking_requests=[], appointments=[])
    scheduler, orchestrator = SupabaseStore(db), SupabaseStore(db)
    _interleave(monkeypatch, scheduler, lambda: orchestrator.commit(_request_batch("R-other")))

    with pytest.raises(SlotConflictError):
        scheduler.commit(_booking_batch("C1"))

    assert db.tables["showing_slots"][0]["is_booked"] is False
    assert db.tables["appointments"] == []
    assert _active_requests(db) == ["R-other"]


def test_request_loses_to_slot_booked_meanwhile(monkeypatch):
    db = FakeSupabase(showing_slots=[_slot_row("S1")], booking_requests=[], appointments=[])
    orchestrator, scheduler = SupabaseStore(db), SupabaseStore(db)
    _interleave(monkeypatch, orchestrator, lambda: scheduler.commit(_booking_batch("C2")))

    with pytest.raises(SlotConflictError):
        orchestrator.commit(_request_batch("R-late"))

    assert _active_requests(db) == []
    assert db.tables["showing_slots"][0]["booked_by"] == "C2"


def test_failed_confirm_puts_request_back_to_pending():
    db = FakeSupabase(
        showing_slots=[_slot_row("S1")],
        clients=[{"id": "C1", "agent_id": "A1", "name": "Client"}],
        booking_requests=[booking_request_to_row(_request("R1"))],
        appointments=[],
    )
    db.failing.add("appointments")

    with pytest.raises(StoreError):
        confirm_booking_request(SupabaseStore(db), "R1")

    [row] = db.tables["booking_requests"]
    assert row["status"] == "pending"
    assert row["responded_at"] is None
