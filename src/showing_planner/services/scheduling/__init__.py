"""Greedy showing schedulers sharing one cursor model."""

from .booking_orchestrator import confirm_booking_request, generate_booking_requests, reject_booking_request
from .smart_scheduler import generate_smart_schedule

__all__ = [
    "confirm_booking_request",
    "generate_booking_requests",
    "generate_smart_schedule",
    "reject_booking_request",
]
