"""Configuration model for services, profiles and tier topology."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_TIER = "default"
DEFAULT_PROFILE = "default"
VERSION = "0.1.0"

MAX_WORKERS = 3
RETRY_ATTEMPTS = 3
RETRY_BACKOFF = 0.5
SHUTDOWN_TIMEOUT = 5.0

DEFAULT_READINESS_TIMEOUT = 30.0
DEFAULT_READINESS_INTERVAL = 0.5


class ReadinessType(str, Enum):
    """How a service signals that it is ready."""

    HTTP = "http"
    LOG = "log"


@dataclass
class Readiness:
    """Readiness check settings; durations are in seconds."""

    type: ReadinessType | str
    url: str = ""
    pattern: str = ""
    timeout: float = DEFAULT_READINESS_TIMEOUT
    interval: float = DEFAULT_READINESS_INTERVAL


@dataclass
class ServiceConfig:
    """A single service definition."""

    dir: str
    tier: str = ""
    readiness: Readiness | None = None

    def effective_tier(self) -> str:
        """The tier name, falling back to the default tier when unset."""
        return self.tier or DEFAULT_TIER


@dataclass
class Config:
    """Services by name and profiles by name.

    A profile is either ``"*"`` (all services), a single service name,
    or a list of service names.
    """

    services: dict[str, ServiceConfig] = field(default_factory=dict)
    profiles: dict[str, Any] = field(default_factory=dict)


@dataclass
class Topology:
    """The order in which tiers are started."""

    order: list[str] = field(default_factory=list)
    tier_services: dict[str, list[str]] = field(default_factory=dict)