import pytest

from wind.discovery import (
    Address,
    Instance,
    RegistryResolver,
    StaticResolver,
    instances_to_addresses,
)


class _Subscription:
    def __init__(self, registry, service_name):
        self.registry = registry
        self.service_name = service_name

    def unsubscribe(self):
        self.registry.unsubscribed.append(self.service_name)


class FakeRegistry:
    def __init__(self, instances=None, fail=False):
        self._instances = instances or []
        self._fail = fail
        self.callbacks = {}
        self.unsubscribed = []

    def register_service(self):
        pass

    def deregister_instance(self):
        pass

    def select_instances(self, service_name):
        if self._fail:
            raise ConnectionError("registry down")
        return list(self._instances)

    def subscribe(self, service_name, callback):
        self.callbacks[service_name] = callback
        return _Subscription(self, service_name)

    def get_all_services(self):
        return list(self.callbacks)


def _instance(ip, port, **metadata):
    return Instance(ip=ip, port=port, metadata=dict(metadata), service_name="demo", healthy=True)


def test_static_resolver_demo():
    resolver = StaticResolver({"demo": ["localhost:8080"]})
    assert resolver.resolve("static://demo") == [Address("localhost:8080")]


def test_static_resolver_bare_host_and_unknown():
    resolver = StaticResolver({"demo": ["a:1", "b:2"]})
    assert [a.addr for a in resolver.resolve("demo")] == ["a:1", "b:2"]
    assert resolver.resolve("static://missing") == []


def test_instances_to_addresses_with_and_without_label():
    addresses = instances_to_addresses(
        [
            _instance("10.0.0.5", 9000, hostName="host-a", label="canary"),
            _instance("10.0.0.6", 9001, hostName="host-b"),
        ]
    )
    assert addresses[0] == Address("10.0.0.5:9000", {"hostName": "host-a", "label": "canary"})
    assert addresses[1] == Address("10.0.0.6:9001", {"hostName": "host-b"})


def test_instances_to_addresses_missing_host_name():
    addresses = instances_to_addresses([_instance("h", 1)])
    assert addresses[0].attributes == {"hostName": ""}


def test_registry_resolver_start_publishes_instances():
    inst = _instance("10.0.0.5", 9000, hostName="host-a")
    registry = FakeRegistry([inst])
    updates = []
    resolver = RegistryResolver(registry, "demo", updates.append)
    resolver.start()
    assert resolver.instances() == [inst]
    assert updates == [[Address("10.0.0.5:9000", {"hostName": "host-a"})]]
    assert "demo" in registry.callbacks


def test_registry_resolver_follows_changes():
    registry = FakeRegistry([_instance("a", 1, hostName="x")])
    updates = []
    resolver = RegistryResolver(registry, "demo", updates.append)
    resolver.start()
    changed = [_instance("b", 2, hostName="y"), _instance("c", 3, hostName="z")]
    registry.callbacks["demo"](changed)
    assert resolver.instances() == changed
    assert [a.addr for a in updates[-1]] == ["b:2", "c:3"]
    assert len(updates) == 2


def test_registry_resolver_select_failure_publishes_empty():
    registry = FakeRegistry(fail=True)
    updates = []
    resolver = RegistryResolver(registry, "demo", updates.append)
    resolver.start()
    assert resolver.instances() == []
    assert updates == [[]]
    assert "demo" in registry.callbacks


def test_registry_resolver_close_unsubscribes_once():
    registry = FakeRegistry()
    resolver = RegistryResolver(registry, "demo", lambda _: None)
    resolver.start()
    resolver.close()
    resolver.close()
    assert registry.unsubscribed == ["demo"]


@pytest.mark.parametrize("target", ["static://demo", "demo"])
def test_static_resolver_target_forms(target):
    resolver = StaticResolver({"demo": ["localhost:8080"]})
    assert resolver.resolve(target)[0].addr == "localhost:8080"