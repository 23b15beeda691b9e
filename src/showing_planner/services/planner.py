"""Scheduling facade used by the surrounding application."""

from __future__ import annotations

import logging
from datetime import date
from typing import Mapping, Optional, Sequence

from ..errors import InvalidStateError, NotFoundError
from ..models.domain import APPOINTMENT_STATUSES, Agent, Appointment, Property
from ..persistence import SchedulingStore, get_store
from ..schemas.scheduling import (
    AppointmentModel,
    BookingRequestModel,
    BookingRunRequest,
    DailyScheduleModel,
    Location,
    SmartScheduleRequest,
    SmartScheduleResponse,
)
from .locks import agent_run_lock
from .routing.models import DailySchedule
from .routing.optimizer import optimize_route as _optimize_route
from .scheduling import booking_orchestrator
from .scheduling.smart_scheduler import generate_smart_schedule as _generate_smart_schedule

logger = logging.getLogger(__name__)


def optimize_route(
    appointments: Sequence[Appointment],
    properties: Mapping[str, Property],
    agent: Agent,
    day: date,
) -> DailySchedule:
    """Read-only; safe to call repeatedly."""
    return _optimize_route(appointments, properties, agent, day)


def get_daily_schedule(agent_id: str, day: date, store: Optional[SchedulingStore] = None) -> DailyScheduleModel:
    store = store or get_store()
    agent = store.get_agent(agent_id)
    if agent is None:
        raise NotFoundError("Agent", agent_id)

    appointments = store.list_appointments_by_date(agent_id, day)
    properties: dict[str, Property] = {}
    for appointment in appointments:
        if appointment.property_id in properties:
            continue
        prop = store.get_property(appointment.property_id)
        if prop is not None:
            properties[prop.id] = prop

    schedule = _optimize_route(appointments, properties, agent, day)
    return DailyScheduleModel.model_validate(schedule)


def generate_smart_schedule(
    payload: SmartScheduleRequest,
    store: Optional[SchedulingStore] = None,
) -> SmartScheduleResponse:
    store = store or get_store()
    location = payload.start_location or Location.default()
    with agent_run_lock(payload.agent_id):
        result = _generate_smart_schedule(
            store,
            payload.agent_id,
            payload.date,
            location.to_coordinate(),
            payload.start_time,
            selected_property_ids=payload.selected_property_ids,
        )
    return SmartScheduleResponse.model_validate(result)


def generate_booking_requests(
    payload: BookingRunRequest,
    store: Optional[SchedulingStore] = None,
) -> list[BookingRequestModel]:
    store = store or get_store()
    location = payload.start_location or Location.default()
    with agent_run_lock(payload.agent_id):
        requests = booking_orchestrator.generate_booking_requests(
            store,
            payload.agent_id,
            payload.date,
            payload.client_ids,
            location.to_coordinate(),
            payload.start_time,
            payload.end_time,
        )
    return [BookingRequestModel.model_validate(request) for request in requests]


def _request_agent(store: SchedulingStore, request_id: str) -> str:
    request = store.get_booking_request(request_id)
    if request is None:
        raise NotFoundError("Booking request", request_id)
    return request.agent_id


def confirm_booking_request(request_id: str, store: Optional[SchedulingStore] = None) -> list[AppointmentModel]:
    store = store or get_store()
    with agent_run_lock(_request_agent(store, request_id)):
        appointments = booking_orchestrator.confirm_booking_request(store, request_id)
    return [AppointmentModel.model_validate(appointment) for appointment in appointments]


def reject_booking_request(
    request_id: str,
    reason: Optional[str] = None,
    store: Optional[SchedulingStore] = None,
) -> BookingRequestModel:
    store = store or get_store()
    with agent_run_lock(_request_agent(store, request_id)):
        request = booking_orchestrator.reject_booking_request(store, request_id, reason)
    return BookingRequestModel.model_validate(request)


def update_appointment_notes(
    appointment_id: str,
    notes: Optional[str] = None,
    post_visit_notes: Optional[str] = None,
    store: Optional[SchedulingStore] = None,
) -> AppointmentModel:
    store = store or get_store()
    changes = {}
    if notes is not None:
        changes["notes"] = notes
    if post_visit_notes is not None:
        changes["post_visit_notes"] = post_visit_notes
    if not changes:
        appointment = store.get_appointment(appointment_id)
    else:
        appointment = store.update_appointment(appointment_id, **changes)
    if appointment is None:
        raise NotFoundError("Appointment", appointment_id)
    return AppointmentModel.model_validate(appointment)


def update_appointment_status(
    appointment_id: str,
    status: str,
    store: Optional[SchedulingStore] = None,
) -> AppointmentModel:
    if status not in APPOINTMENT_STATUSES:
        raise InvalidStateError(f"Unknown appointment status '{status}'. Expected one of {', '.join(APPOINTMENT_STATUSES)}.")
    store = store or get_store()
    appointment = store.update_appointment(appointment_id, status=status)
    if appointment is None:
        raise NotFoundError("Appointment", appointment_id)
    logger.info(f"Appointment {appointment_id} marked {status}")
    return AppointmentModel.model_validate(appointment)
