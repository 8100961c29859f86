from fuku.config import (
    DEFAULT_TIER,
    Config,
    Readiness,
    ReadinessType,
    ServiceConfig,
    Topology,
)


def test_effective_tier_falls_back_to_default():
    assert ServiceConfig(dir="api").effective_tier() == "default"
    assert ServiceConfig(dir="api", tier="").effective_tier() == DEFAULT_TIER


def test_effective_tier_keeps_explicit_tier():
    assert ServiceConfig(dir="api", tier="platform").effective_tier() == "platform"


def test_readiness_type_parses_from_string():
    assert ReadinessType("http") is ReadinessType.HTTP
    assert ReadinessType("log") is ReadinessType.LOG


def test_readiness_type_compares_with_plain_string():
    readiness = Readiness(type="log", pattern="ready")
    assert readiness.type == ReadinessType.LOG
    assert readiness.pattern == "ready"


def test_config_defaults_are_independent():
    first = Config()
    second = Config()
    first.services["api"] = ServiceConfig(dir="api")
    assert "api" not in second.services
    assert second.profiles == {}


def test_topology_defaults_empty():
    topology = Topology()
    assert topology.order == []
    assert topology.tier_services == {}