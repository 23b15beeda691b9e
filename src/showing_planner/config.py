"""Application configuration and settings management."""

from datetime import time
from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .services.clock import parse_clock

DistanceUnit = Literal["km", "mi"]


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="SHOWINGS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Route optimizer (display ordering of an existing day)
    route_average_speed: float = Field(default=25.0, gt=0, description="Average city speed for route legs.")
    route_distance_unit: DistanceUnit = "mi"
    route_stop_buffer_minutes: int = Field(default=2, ge=0, description="Parking/stop allowance added per leg.")
    route_min_travel_minutes: int = Field(default=5, ge=0)

    # Smart scheduler (single-agent day planning)
    scheduler_average_speed: float = Field(default=35.0, gt=0)
    scheduler_distance_unit: DistanceUnit = "mi"
    scheduler_start_time: time = Field(default=time(8, 0))
    default_priority: int = Field(default=99, ge=1, description="Priority assumed when a preference has none.")

    # Booking orchestrator (multi-client batch requests)
    booking_average_speed: float = Field(default=55.0, gt=0)
    booking_distance_unit: DistanceUnit = "km"
    booking_start_time: time = Field(default=time(9, 0))
    booking_end_time: time = Field(default=time(17, 0))

    default_slot_capacity: int = Field(default=10, ge=1)
    default_appointment_duration: int = Field(default=60, ge=1, description="Minutes.")

    default_start_latitude: float = Field(default=43.5890, ge=-90, le=90)
    default_start_longitude: float = Field(default=-79.6441, ge=-180, le=180)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("scheduler_start_time", "booking_start_time", "booking_end_time", mode="before")
    @classmethod
    def _parse_clock(cls, value: Any) -> Any:
        """Accept "HH:MM" strings from the environment."""
        if isinstance(value, str) and value.strip():
            return parse_clock(value)
        return value


settings = Settings()
