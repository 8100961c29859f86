"""Resolves a profile into services grouped and ordered by tier."""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import DEFAULT_TIER, Config, Topology
from .errors import (
    ProfileNotFoundError,
    ServiceNotFoundError,
    UnsupportedProfileFormatError,
)


@dataclass
class Tier:
    """A group of services started together."""

    name: str
    services: list[str] = field(default_factory=list)


def _build_tier_index_map(order: list[str]) -> dict[str, int]:
    """Map tier names to their start position; the default tier goes last if unlisted."""
    index_map = {tier: position for position, tier in enumerate(order)}
    index_map.setdefault(DEFAULT_TIER, len(order))
    return index_map


def _tier_index(tier_name: str, index_map: dict[str, int]) -> int:
    """Position of a tier; unknown tiers share the default tier's position."""
    return index_map.get(tier_name, index_map[DEFAULT_TIER])


class Discovery:
    """Works out which services a profile runs and in what order."""

    def __init__(self, config: Config, topology: Topology) -> None:
        self.config = config
        self.topology = topology

    def resolve(self, profile: str) -> list[Tier]:
        """Services of ``profile`` grouped into tiers, in start order."""
        names = self._services_for_profile(profile)
        ordered = self._resolve_order(names)
        if not ordered:
            return []
        return self._group_by_tier(ordered)

    def _services_for_profile(self, profile: str) -> list[str]:
        try:
            entry = self.config.profiles[profile]
        except KeyError:
            raise ProfileNotFoundError(profile) from None

        if isinstance(entry, str):
            if entry == "*":
                return list(self.config.services)
            return [entry]
        if isinstance(entry, (list, tuple)):
            if not all(isinstance(item, str) for item in entry):
                raise UnsupportedProfileFormatError(
                    f"profile '{profile}' contains non-string entry"
                )
            return list(entry)
        raise UnsupportedProfileFormatError(profile)

    def _resolve_order(self, names: list[str]) -> list[str]:
        """Validate, deduplicate and stably order services by tier."""
        for name in names:
            if name not in self.config.services:
                raise ServiceNotFoundError(f"'{name}'")

        unique = list(dict.fromkeys(names))
        index_map = _build_tier_index_map(self.topology.order)
        return sorted(
            unique,
            key=lambda name: _tier_index(
                self.config.services[name].effective_tier(), index_map
            ),
        )

    def _group_by_tier(self, names: list[str]) -> list[Tier]:
        index_map = _build_tier_index_map(self.topology.order)
        tiers: dict[int, Tier] = {}

        for name in names:
            tier_name = self.config.services[name].effective_tier()
            if tier_name not in index_map:
                tier_name = DEFAULT_TIER
            position = _tier_index(tier_name, index_map)
            tiers.setdefault(position, Tier(name=tier_name)).services.append(name)

        result = []
        for position in sorted(tiers):
            tier = tiers[position]
            tier.services.sort()
            result.append(tier)
        return result