import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Final, Optional, Tuple

import jsonschema
import yaml

logger: Final = logging.getLogger(__name__)

SETTINGS_PATH_DEFAULT: Final[str] = "config/settings.yaml"
SCHEMA_PATH_DEFAULT: Final[str] = "config/schema.settings.yaml"

DEFAULT_STATUS: Final[str] = "PAUSED"
ALLOWED_STATUSES: Final[Tuple[str, ...]] = ("ACTIVE", "PAUSED")
DEFAULT_PUBLISHER_PLATFORMS: Final[Tuple[str, ...]] = ("facebook", "instagram")
DEFAULT_AGE_MIN: Final[int] = 18
DEFAULT_AGE_MAX: Final[int] = 65
# Meta gender codes: 1 = male, 2 = female.
DEFAULT_GENDERS: Final[Tuple[int, ...]] = (1, 2)
DEFAULT_CTA_TYPE: Final[str] = "LEARN_MORE"
START_TIME_GRACE_SECONDS: Final[int] = 3600
MAX_WORKERS_CAP: Final[int] = 8


@dataclass(frozen=True)
class DeploymentSettings:
    default_status: str = DEFAULT_STATUS
    max_workers: int = 1
    publisher_platforms: Tuple[str, ...] = DEFAULT_PUBLISHER_PLATFORMS
    age_min: int = DEFAULT_AGE_MIN
    age_max: int = DEFAULT_AGE_MAX
    genders: Tuple[int, ...] = DEFAULT_GENDERS
    default_cta_type: str = DEFAULT_CTA_TYPE
    start_time_grace_seconds: int = START_TIME_GRACE_SECONDS
    public_base_url: str = ""
    notify_slack: bool = True

    def absolute_media_url(self, url: str) -> str:
        """Relative upload paths are served from the public base URL."""
        if not url or url.startswith(("http://", "https://")) or not self.public_base_url:
            return url
        return f"{self.public_base_url.rstrip('/')}/{url.lstrip('/')}"


@dataclass(frozen=True)
class PerformanceSyncSettings:
    enabled: bool = True
    run_at: str = "02:00"
    timezone: str = "Europe/Amsterdam"


@dataclass(frozen=True)
class Settings:
    deployment: DeploymentSettings = field(default_factory=DeploymentSettings)
    performance_sync: PerformanceSyncSettings = field(default_factory=PerformanceSyncSettings)


def load_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Settings file not found: {path}; using defaults")
        return {}


def validate_settings(raw: Dict[str, Any], schema: Optional[Dict[str, Any]]) -> None:
    if not isinstance(raw, dict):
        raise ValueError("Settings payload must be a mapping.")
    if not schema:
        return
    try:
        jsonschema.validate(instance=raw, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ValueError(f"Invalid settings at {path}: {e.message}") from e


def settings_from_dict(raw: Dict[str, Any]) -> Settings:
    dep = raw.get("deployment") or {}
    sync = raw.get("performance_sync") or {}

    status = str(dep.get("default_status", DEFAULT_STATUS)).upper()
    if status not in ALLOWED_STATUSES:
        raise ValueError(f"deployment.default_status must be one of {ALLOWED_STATUSES}, got {status!r}")

    age_min = int(dep.get("age_min", DEFAULT_AGE_MIN))
    age_max = int(dep.get("age_max", DEFAULT_AGE_MAX))
    if age_min > age_max:
        raise ValueError(f"deployment.age_min ({age_min}) must not exceed age_max ({age_max})")

    workers = max(1, min(MAX_WORKERS_CAP, int(dep.get("max_workers", 1))))

    return Settings(
        deployment=DeploymentSettings(
            default_status=status,
            max_workers=workers,
            publisher_platforms=tuple(dep.get("publisher_platforms") or DEFAULT_PUBLISHER_PLATFORMS),
            age_min=age_min,
            age_max=age_max,
            genders=tuple(int(g) for g in (dep.get("genders") or DEFAULT_GENDERS)),
            default_cta_type=str(dep.get("default_cta_type") or DEFAULT_CTA_TYPE),
            start_time_grace_seconds=int(dep.get("start_time_grace_seconds", START_TIME_GRACE_SECONDS)),
            public_base_url=str(dep.get("public_base_url") or os.getenv("PUBLIC_BASE_URL") or ""),
            notify_slack=bool(dep.get("notify_slack", True)),
        ),
        performance_sync=PerformanceSyncSettings(
            enabled=bool(sync.get("enabled", True)),
            run_at=str(sync.get("run_at") or "02:00"),
            timezone=str(sync.get("timezone") or os.getenv("ACCOUNT_TIMEZONE") or "Europe/Amsterdam"),
        ),
    )


def load_settings(path: str = SETTINGS_PATH_DEFAULT, schema_path: Optional[str] = SCHEMA_PATH_DEFAULT) -> Settings:
    raw = load_yaml(path)
    schema = load_yaml(schema_path) if schema_path else None
    validate_settings(raw, schema)
    return settings_from_dict(raw)
