import pytest

from fuku.config import Config, ServiceConfig, Topology
from fuku.discovery import Discovery, Tier, _build_tier_index_map, _tier_index
from fuku.errors import (
    ProfileNotFoundError,
    ServiceNotFoundError,
    UnsupportedProfileFormatError,
)


def _services(spec):
    return {name: ServiceConfig(dir=name, tier=tier) for name, tier in spec.items()}


def _discovery(services, profiles=None, order=None):
    config = Config(services=_services(services), profiles=profiles or {})
    return Discovery(config, Topology(order=list(order or [])))


RESOLVE_CASES = [
    ({}, {"empty": "*"}, "empty", []),
    (
        {"api": ""},
        {"api-only": ["api"]},
        "api-only",
        [Tier("default", ["api"])],
    ),
    (
        {"storage": "foundation", "api": "platform", "frontend-api": "edge"},
        {"all": ["storage", "api", "frontend-api"]},
        "all",
        [
            Tier("foundation", ["storage"]),
            Tier("platform", ["api"]),
            Tier("edge", ["frontend-api"]),
        ],
    ),
    (
        {"storage": "foundation", "database": "foundation", "api": "platform"},
        {"backend": ["storage", "database", "api"]},
        "backend",
        [Tier("foundation", ["database", "storage"]), Tier("platform", ["api"])],
    ),
    (
        {"storage": "foundation", "api": "platform"},
        {"all": "*"},
        "all",
        [Tier("foundation", ["storage"]), Tier("platform", ["api"])],
    ),
    (
        {"api": "platform", "web": "edge"},
        {"duplicate": ["api", "web", "api"]},
        "duplicate",
        [Tier("platform", ["api"]), Tier("edge", ["web"])],
    ),
    (
        {
            "zebra": "platform",
            "alpha": "platform",
            "beta": "platform",
            "web": "edge",
            "api": "edge",
            "frontend": "edge",
        },
        {"mixed": ["zebra", "web", "alpha", "api", "beta", "frontend"]},
        "mixed",
        [
            Tier("platform", ["alpha", "beta", "zebra"]),
            Tier("edge", ["api", "frontend", "web"]),
        ],
    ),
    (
        {
            "user-service": "foundation",
            "auth-service": "foundation",
            "file-storage": "platform",
            "backend-api": "platform",
            "frontend": "edge",
        },
        {"all": "*"},
        "all",
        [
            Tier("foundation", ["auth-service", "user-service"]),
            Tier("platform", ["backend-api", "file-storage"]),
            Tier("edge", ["frontend"]),
        ],
    ),
    (
        {"service-c": "", "service-a": "", "service-b": ""},
        {"default-tier": ["service-c", "service-a", "service-b"]},
        "default-tier",
        [Tier("default", ["service-a", "service-b", "service-c"])],
    ),
    (
        {"zebra": "platform", "alpha": "platform", "beta": "platform"},
        {"dup": ["zebra", "alpha", "zebra", "beta", "alpha"]},
        "dup",
        [Tier("platform", ["alpha", "beta", "zebra"])],
    ),
    (
        {"cache": "infrastructure", "api": "backend", "frontend": "ui"},
        {"custom": ["cache", "api", "frontend"]},
        "custom",
        [
            Tier("infrastructure", ["cache"]),
            Tier("backend", ["api"]),
            Tier("ui", ["frontend"]),
        ],
    ),
    (
        {"db": "foundation", "middleware": "custom-layer", "api": "platform"},
        {"mixed": ["db", "middleware", "api"]},
        "mixed",
        [
            Tier("foundation", ["db"]),
            Tier("custom-layer", ["middleware"]),
            Tier("platform", ["api"]),
        ],
    ),
    (
        {"postgres": "foundation", "api": "platform", "web": "edge"},
        {"classic": ["postgres", "api", "web"]},
        "classic",
        [
            Tier("foundation", ["postgres"]),
            Tier("platform", ["api"]),
            Tier("edge", ["web"]),
        ],
    ),
    (
        {"api": "platform", "web": "platform"},
        {"inherited": ["api", "web"]},
        "inherited",
        [Tier("platform", ["api", "web"])],
    ),
    (
        {"db": "foundation", "unknown1": "mystery-tier", "unknown2": "another-unknown"},
        {"with-unknown": ["db", "unknown1", "unknown2"]},
        "with-unknown",
        [Tier("foundation", ["db"]), Tier("default", ["unknown1", "unknown2"])],
    ),
]


@pytest.mark.parametrize("services, profiles, profile, expected", RESOLVE_CASES)
def test_resolve(services, profiles, profile, expected):
    order = [tier.name for tier in expected]
    discovery = _discovery(services, profiles, order)
    assert discovery.resolve(profile) == expected


@pytest.mark.parametrize(
    "services, profiles, profile, error",
    [
        ({"api": ""}, {}, "nonexistent", ProfileNotFoundError),
        (
            {"api": ""},
            {"backend": ["api", "nonexistent"]},
            "backend",
            ServiceNotFoundError,
        ),
        (
            {"api": "", "web": ""},
            {"invalid": ["api", 123, "web"]},
            "invalid",
            UnsupportedProfileFormatError,
        ),
    ],
)
def test_resolve_errors(services, profiles, profile, error):
    with pytest.raises(error):
        _discovery(services, profiles).resolve(profile)


def test_profile_not_found_message_names_profile():
    with pytest.raises(ProfileNotFoundError, match="profile not found: nonexistent"):
        _discovery({"api": ""}).resolve("nonexistent")


@pytest.mark.parametrize(
    "profiles, profile, expected",
    [
        ({"single": "api"}, "single", ["api"]),
        ({"multi": ["api", "web"]}, "multi", ["api", "web"]),
    ],
)
def test_services_for_profile(profiles, profile, expected):
    discovery = _discovery({"api": "", "web": ""}, profiles)
    assert discovery._services_for_profile(profile) == expected


def test_services_for_wildcard_profile():
    discovery = _discovery({"api": "", "web": ""}, {"all": "*"})
    assert sorted(discovery._services_for_profile("all")) == ["api", "web"]


@pytest.mark.parametrize(
    "profiles, profile, error",
    [
        ({}, "nonexistent", ProfileNotFoundError),
        ({"invalid": ["api", 123]}, "invalid", UnsupportedProfileFormatError),
        ({"bad": 123}, "bad", UnsupportedProfileFormatError),
    ],
)
def test_services_for_profile_errors(profiles, profile, error):
    discovery = _discovery({"api": "", "web": ""}, profiles)
    with pytest.raises(error):
        discovery._services_for_profile(profile)


@pytest.mark.parametrize(
    "services, order, names, expected",
    [
        (
            {"api": "platform", "web": "edge"},
            ["platform", "edge"],
            ["api", "web", "api"],
            ["api", "web"],
        ),
        (
            {"web": "edge", "api": "platform", "db": "foundation"},
            ["foundation", "platform", "edge"],
            ["web", "api", "db"],
            ["db", "api", "web"],
        ),
        (
            {"api": "", "cache": "foundation"},
            ["foundation", "default"],
            ["api", "cache"],
            ["cache", "api"],
        ),
    ],
)
def test_resolve_order(services, order, names, expected):
    assert _discovery(services, order=order)._resolve_order(names) == expected


def test_resolve_order_unknown_service():
    with pytest.raises(ServiceNotFoundError):
        _discovery({"api": ""})._resolve_order(["api", "nonexistent"])


@pytest.mark.parametrize(
    "order, expected",
    [
        (
            ["foundation", "platform", "edge"],
            {"foundation": 0, "platform": 1, "edge": 2, "default": 3},
        ),
        (
            ["infrastructure", "backend", "ui"],
            {"infrastructure": 0, "backend": 1, "ui": 2, "default": 3},
        ),
        (
            ["foundation", "default", "edge"],
            {"foundation": 0, "default": 1, "edge": 2},
        ),
        ([], {"default": 0}),
    ],
)
def test_build_tier_index_map(order, expected):
    assert _build_tier_index_map(order) == expected


@pytest.mark.parametrize(
    "index_map, tier_name, expected",
    [
        ({"foundation": 0, "platform": 1, "edge": 2, "default": 3}, "platform", 1),
        ({"foundation": 0, "platform": 1, "default": 2}, "unknown-tier", 2),
        ({"foundation": 0, "default": 1}, "default", 1),
    ],
)
def test_tier_index(index_map, tier_name, expected):
    assert _tier_index(tier_name, index_map) == expected


@pytest.mark.parametrize(
    "services, order, names, expected",
    [
        (
            {"db": "foundation", "api": "platform", "web": "edge"},
            ["foundation", "platform", "edge"],
            ["db", "api", "web"],
            [
                Tier("foundation", ["db"]),
                Tier("platform", ["api"]),
                Tier("edge", ["web"]),
            ],
        ),
        (
            {"zebra": "platform", "alpha": "platform", "beta": "platform"},
            ["platform"],
            ["zebra", "alpha", "beta"],
            [Tier("platform", ["alpha", "beta", "zebra"])],
        ),
        (
            {"api": "", "web": ""},
            ["default"],
            ["api", "web"],
            [Tier("default", ["api", "web"])],
        ),
        (
            {"db": "foundation", "unknown": "mystery-tier"},
            ["foundation", "default"],
            ["db", "unknown"],
            [Tier("foundation", ["db"]), Tier("default", ["unknown"])],
        ),
    ],
)
def test_group_by_tier(services, order, names, expected):
    assert _discovery(services, order=order)._group_by_tier(names) == expected