"""
Configuration management using Pydantic models loaded from YAML.
"""

import os
from datetime import time
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import InvalidInputError
from .domain.models import WEEKDAY_NAMES, BusinessHours, DayHours, InventoryItem
from .domain.slot_generator import resolve_timezone


def _parse_clock(value: str) -> time:
    try:
        hour_text, minute_text = value.split(":")
        return time(hour=int(hour_text), minute=int(minute_text))
    except ValueError as exc:
        raise ValueError(f"Time must use HH:MM format, got {value!r}") from exc


def _default_business_hours() -> Dict[str, Optional["DayHoursConfig"]]:
    weekdays = {name: DayHoursConfig() for name in WEEKDAY_NAMES[:5]}
    weekdays.update({"saturday": None, "sunday": None})
    return weekdays


class DayHoursConfig(BaseModel):
    """Opening window for one weekday, as ``HH:MM`` strings."""
    start: str = "09:00"
    end: str = "17:00"

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        """Validate the value parses as a time of day."""
        _parse_clock(v)
        return v

    def to_day_hours(self) -> DayHours:
        return DayHours(opens=_parse_clock(self.start), closes=_parse_clock(self.end))


class FeaturesConfig(BaseModel):
    """Feature toggles of a widget's scheduling step."""
    inventory_booking: bool = False
    meeting_booking: bool = False
    availability_checking: bool = True
    send_calendar_invites: bool = False
    create_meet_links: bool = False


class SchedulingConfig(BaseModel):
    """Per-widget scheduling settings."""
    enabled: bool = True
    business_hours: Dict[str, Optional[DayHoursConfig]] = Field(
        default_factory=_default_business_hours
    )
    google_calendars: List[str] = Field(default_factory=list)  # For availability checking
    primary_calendar: Optional[str] = None  # Where meetings get created
    duration: int = 60
    buffer: int = 15
    conflict_duration: Optional[int] = None  # Defaults to duration
    timezone: str = "America/New_York"
    max_days_ahead: Optional[int] = None
    min_hours_notice: float = 2
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure appointment duration is positive."""
        if value <= 0:
            raise ValueError("duration must be greater than zero")
        return value

    @field_validator("conflict_duration")
    @classmethod
    def validate_conflict_duration(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("conflict_duration must be greater than zero")
        return value

    @field_validator("buffer", "max_days_ahead")
    @classmethod
    def validate_not_negative(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("value must not be negative")
        return value

    @field_validator("min_hours_notice")
    @classmethod
    def validate_notice(cls, value: float) -> float:
        if value < 0:
            raise ValueError("min_hours_notice must not be negative")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        try:
            resolve_timezone(value)
        except InvalidInputError as exc:
            raise ValueError(exc.message) from exc
        return value

    @field_validator("business_hours")
    @classmethod
    def validate_weekdays(
        cls, value: Dict[str, Optional[DayHoursConfig]]
    ) -> Dict[str, Optional[DayHoursConfig]]:
        """Normalize weekday keys and reject unknown ones."""
        normalized: Dict[str, Optional[DayHoursConfig]] = {}
        for day, hours in value.items():
            key = day.lower()
            if key not in WEEKDAY_NAMES:
                raise ValueError(f"Unknown weekday in business_hours: {day}")
            normalized[key] = hours
        return normalized

    @property
    def effective_conflict_duration(self) -> int:
        return self.conflict_duration or self.duration

    @property
    def event_calendar(self) -> Optional[str]:
        """Calendar new meetings are written to."""
        if self.primary_calendar:
            return self.primary_calendar
        return self.google_calendars[0] if self.google_calendars else None

    def to_business_hours(self) -> BusinessHours:
        return BusinessHours(
            days={
                day: hours.to_day_hours() if hours is not None else None
                for day, hours in self.business_hours.items()
            }
        )


class WidgetConfig(BaseModel):
    """An embeddable widget and the business it books for."""
    id: str
    business_id: str
    name: str = ""
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)


class InventoryItemConfig(BaseModel):
    """A finite bookable resource (bins, equipment, vehicles...)."""
    id: str
    business_id: str
    name: str = ""
    type: Literal["bin", "equipment", "vehicle", "material"] = "equipment"
    sku: Optional[str] = None
    quantity: int = 0
    is_active: bool = True

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, value: int) -> int:
        if value < 0:
            raise ValueError("quantity must not be negative")
        return value

    def to_item(self) -> InventoryItem:
        return InventoryItem(
            id=self.id,
            business_id=self.business_id,
            total_quantity=self.quantity,
            is_active=self.is_active,
            name=self.name,
            item_type=self.type,
            sku=self.sku,
        )


class CalendarConfig(BaseModel):
    """Busy-time provider settings."""
    provider: Literal["google", "mock"] = "mock"
    access_token: Optional[str] = None
    access_token_env: str = "WIDGETSCHEDULER_CALENDAR_TOKEN"
    fetch_timeout_seconds: float = 10.0
    mock_data_file: Optional[Path] = None

    @field_validator("fetch_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("fetch_timeout_seconds must be greater than zero")
        return value

    def resolve_access_token(self) -> Optional[str]:
        """Explicit token first, then the configured environment variable."""
        return self.access_token or os.environ.get(self.access_token_env)


class StoreConfig(BaseModel):
    """Record store settings; no state file keeps everything in memory."""
    state_file: Optional[Path] = None


class RateLimitConfig(BaseModel):
    """Booking attempts allowed per key within a fixed window."""
    enabled: bool = True
    max_requests: int = 10
    window_seconds: int = 60

    @model_validator(mode="after")
    def validate_limits(self) -> "RateLimitConfig":
        if self.max_requests <= 0 or self.window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be greater than zero")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    widgets: List[WidgetConfig] = Field(default_factory=list)
    inventory: List[InventoryItemConfig] = Field(default_factory=list)

    @field_validator("widgets")
    @classmethod
    def validate_widgets(cls, value: List[WidgetConfig]) -> List[WidgetConfig]:
        """Ensure widget ids are unique."""
        seen: set[str] = set()
        for widget in value:
            if widget.id in seen:
                raise ValueError(f"Duplicate widget id detected: {widget.id}")
            seen.add(widget.id)
        return value

    @field_validator("inventory")
    @classmethod
    def validate_inventory(cls, value: List[InventoryItemConfig]) -> List[InventoryItemConfig]:
        """Ensure inventory item ids are unique."""
        seen: set[str] = set()
        for item in value:
            if item.id in seen:
                raise ValueError(f"Duplicate inventory item id detected: {item.id}")
            seen.add(item.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def find_widget(self, widget_id: str) -> WidgetConfig | None:
        for widget in self.widgets:
            if widget.id == widget_id:
                return widget
        return None


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
