import pytest

from wind import breaker, constants
from wind.breaker import (
    BreakerOverride,
    FuseRegistry,
    Strategy,
    client_scope,
    get_rule_by_scope,
    resource_in_fuse,
    scope_from_context,
    server_scope,
)
from wind.context import background


def test_server_scope_defaults():
    rules = get_rule_by_scope(["server", "grpc", "Hello"])
    assert len(rules) == 1
    rule = rules[0]
    assert rule.resource == "server.grpc.Hello"
    assert rule.strategy is Strategy.ERROR_RATIO
    assert rule.retry_timeout_ms == breaker.DEFAULT_SERVER_RETRY_TIMEOUT_MS
    assert rule.min_request_amount == breaker.DEFAULT_SERVER_MIN_REQUEST_AMOUNT
    assert rule.stat_interval_ms == breaker.DEFAULT_SERVER_STAT_INTERVAL_MS
    assert rule.threshold == breaker.DEFAULT_SERVER_THRESHOLD
    assert rule.max_allowed_rt_ms == 0


def test_client_scope_defaults_from_string():
    rules = get_rule_by_scope("client.grpc.addr")
    assert [r.strategy for r in rules] == [Strategy.ERROR_RATIO]
    assert rules[0].resource == "client.grpc.addr"
    assert rules[0].threshold == breaker.DEFAULT_CLIENT_THRESHOLD
    assert rules[0].stat_sliding_window_bucket_count == (
        breaker.DEFAULT_CLIENT_STAT_SLIDING_WINDOW_BUCKET_COUNT
    )


def test_mongo_rules_order_and_defaults():
    rules = get_rule_by_scope(["mongo", "user", "find"])
    assert [r.strategy for r in rules] == [Strategy.SLOW_REQUEST_RATIO, Strategy.ERROR_COUNT]
    slow, count = rules
    assert slow.max_allowed_rt_ms == breaker.DEFAULT_MONGO_MAX_ALLOWED_RT_MS
    assert slow.threshold == breaker.DEFAULT_MONGO_THRESHOLD
    assert count.threshold == breaker.DEFAULT_MONGO_ERROR_COUNT_THRESHOLD
    assert count.min_request_amount == breaker.DEFAULT_MONGO_MIN_REQUEST_AMOUNT


def test_unknown_type_raises():
    with pytest.raises(ValueError):
        get_rule_by_scope(["redis", "x", "get"])


def test_empty_scope_raises():
    with pytest.raises(ValueError):
        get_rule_by_scope([])


def test_lookup_order_falls_back():
    asked = []

    def lookup(scope):
        asked.append(scope)
        return None

    rules = get_rule_by_scope(["mongo", "user", "find"], lookup)
    assert asked == ["mongo.user.find", "mongo.user", "mongo"]
    assert [r.strategy for r in rules] == [Strategy.SLOW_REQUEST_RATIO, Strategy.ERROR_COUNT]
    assert rules == get_rule_by_scope(["mongo", "user", "find"])


def test_most_specific_override_wins():
    overrides = {
        "server.grpc.Hello": BreakerOverride(retry_timeout_ms=5000),
        "server": BreakerOverride(retry_timeout_ms=7000),
    }
    rules = get_rule_by_scope("server.grpc.Hello", overrides.get)
    assert rules[0].retry_timeout_ms == 5000
    other = get_rule_by_scope("server.grpc.Other", overrides.get)
    assert other[0].retry_timeout_ms == 7000


def test_thresholds_apply_to_matching_strategy_only():
    override = BreakerOverride(slow_ratio_threshold=0.5, err_ratio_threshold=0.9)
    slow, count = get_rule_by_scope("mongo.user.find", lambda _: override)
    assert slow.threshold == 0.5
    assert count.threshold == breaker.DEFAULT_MONGO_ERROR_COUNT_THRESHOLD


def test_common_fields_apply_to_all_rules():
    override = BreakerOverride(min_request_amount=3, stat_interval_ms=2000, max_allowed_rt_ms=40)
    rules = get_rule_by_scope("mongo.user.find", lambda _: override)
    assert all(r.min_request_amount == 3 for r in rules)
    assert all(r.stat_interval_ms == 2000 for r in rules)
    assert all(r.max_allowed_rt_ms == 40 for r in rules)


def test_zero_override_keeps_defaults():
    with_override = get_rule_by_scope("client.grpc.a", lambda _: BreakerOverride())
    without = get_rule_by_scope("client.grpc.a")
    assert with_override == without


def test_server_scope_from_method():
    assert server_scope("/pkg.Service/Method") == "server.grpc." + "Service/Method"


def test_server_scope_without_dot_raises():
    with pytest.raises(ValueError):
        server_scope("/Service/Method")


def test_client_scope_replaces_dots():
    assert client_scope("10.0.0.1:80") == "client.grpc.10_0_0_1:80"


def test_scope_from_context():
    ctx = background().with_value(constants.SENTINEL_BREAKER, "mongo.user.find")
    assert scope_from_context(ctx) == "mongo.user.find"
    with pytest.raises(TypeError):
        scope_from_context(background())


def test_fuse_registry_transitions():
    fuses = FuseRegistry()
    assert fuses.in_fuse("r") is False
    fuses.on_open("r")
    assert fuses.in_fuse("r") is True
    fuses.on_half_open("r")
    assert fuses.in_fuse("r") is True
    fuses.on_closed("r")
    assert fuses.in_fuse("r") is False
    assert fuses.in_fuse("other") is False


def test_module_registry():
    resource = client_scope("192.0.2.1:9000")
    breaker.fuse_registry.on_open(resource)
    try:
        assert resource_in_fuse(resource) is True
    finally:
        breaker.fuse_registry.on_closed(resource)
    assert resource_in_fuse(resource) is False