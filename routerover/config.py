"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import (
    DEFAULT_TIMEZONE,
    SERVICE_DURATIONS,
    BusinessHours,
)


class BusinessHoursConfig(BaseModel):
    """Daily window in which appointments may be booked."""
    start_hour: int = 9
    end_hour: int = 17
    closed_weekdays: List[int] = Field(default_factory=list)

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("closed_weekdays")
    @classmethod
    def validate_closed_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"closed_weekdays must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessHoursConfig":
        """Ensure the configured window opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self

    def get_start_time(self) -> time:
        """Get start time as time object."""
        return time(hour=self.start_hour, minute=0)

    def get_end_time(self) -> time:
        """Get end time as time object."""
        return time(hour=self.end_hour, minute=0)


class RouteConfig(BaseModel):
    """Settings for the route feasibility estimate."""
    office_location: str = "123 Main St, Anytown, USA"
    travel_buffer_minutes: int = 15
    fixed_travel_minutes: int = 30
    average_speed_kmh: float = 40.0
    max_alternatives: int = 5
    maps_api_key: Optional[str] = None
    locations: Dict[str, Tuple[float, float]] = Field(default_factory=dict)

    @field_validator("travel_buffer_minutes", "fixed_travel_minutes")
    @classmethod
    def validate_minutes(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"Travel minutes must not be negative, got {value}")
        return value

    @field_validator("average_speed_kmh")
    @classmethod
    def validate_speed(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("average_speed_kmh must be greater than zero")
        return value

    @field_validator("max_alternatives")
    @classmethod
    def validate_max_alternatives(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_alternatives must not be negative")
        return value


class GraphConfig(BaseModel):
    """Microsoft Graph application registration used for the live calendar."""
    client_id: str
    tenant_id: str

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class IntentConfig(BaseModel):
    """Which message-understanding strategy the chat command uses."""
    strategy: Literal["rule_based", "hosted_model", "structured_model"] = "rule_based"
    api_key: Optional[str] = None
    model: Optional[str] = None
    endpoint: Optional[str] = None

    @model_validator(mode="after")
    def validate_api_key(self) -> "IntentConfig":
        """Hosted strategies need credentials."""
        if self.strategy != "rule_based" and not self.api_key:
            raise ValueError(f"intent.api_key is required for strategy '{self.strategy}'")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = DEFAULT_TIMEZONE
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    service_durations: Dict[str, int] = Field(default_factory=lambda: dict(SERVICE_DURATIONS))
    route: RouteConfig = Field(default_factory=RouteConfig)
    graph: Optional[GraphConfig] = None
    intent: IntentConfig = Field(default_factory=IntentConfig)
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA timezone names early."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("service_durations")
    @classmethod
    def validate_service_durations(cls, value: Dict[str, int]) -> Dict[str, int]:
        """Normalise service names and ensure durations are positive."""
        normalized: Dict[str, int] = {}
        for service, minutes in value.items():
            if minutes <= 0:
                raise ValueError(f"Duration for '{service}' must be greater than zero")
            normalized[service.strip().lower()] = minutes
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def get_business_hours(self) -> BusinessHours:
        """Build the domain ``BusinessHours`` for this configuration."""
        return BusinessHours(
            start_time=self.business_hours.get_start_time(),
            end_time=self.business_hours.get_end_time(),
            timezone=self.timezone,
            closed_weekdays=tuple(self.business_hours.closed_weekdays),
        )

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


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load the configuration file, or fall back to defaults when none exists.

    An explicitly given path must exist.
    """
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if default_path.exists():
        return AppConfig.load_from_yaml(default_path)
    return AppConfig()
