"""Service instances, registries and resolvers that turn them into addresses."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

REGISTRY_SCHEME = "meta"
STATIC_SCHEME = "static"


@dataclass
class Instance:
    """One running instance of a service as known to the registry."""

    ip: str = ""
    port: int = 0
    weight: float = 0.0
    metadata: Dict[str, str] = field(default_factory=dict)
    cluster_name: str = ""
    service_name: str = ""
    enable: bool = False
    healthy: bool = False
    ephemeral: bool = False


@dataclass
class Address:
    """A dialable address with attributes used by the balancer."""

    addr: str
    attributes: Dict[str, str] = field(default_factory=dict)


SubscribeCallback = Callable[[List[Instance]], None]
UpdateCallback = Callable[[List[Address]], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class Registry(Protocol):
    """A service registry."""

    def register_service(self) -> None: ...

    def deregister_instance(self) -> None: ...

    def select_instances(self, service_name: str) -> List[Instance]:
        """All healthy instances of a service."""
        ...

    def subscribe(self, service_name: str, callback: SubscribeCallback) -> Subscription:
        """Call callback with the instance list whenever the service changes."""
        ...

    def get_all_services(self) -> List[str]: ...


def instances_to_addresses(instances: Iterable[Instance]) -> List[Address]:
    """Addresses for instances, carrying host name and, if set, label."""
    addresses = []
    for inst in instances:
        attributes = {"hostName": inst.metadata.get("hostName", "")}
        label = inst.metadata.get("label", "")
        if label:
            attributes["label"] = label
        addresses.append(Address(f"{inst.ip}:{inst.port}", attributes))
    return addresses


def _target_host(target: str) -> str:
    if "://" in target:
        return urlsplit(target).netloc
    return target


class StaticResolver:
    """Resolves targets from a fixed map of host to addresses."""

    scheme = STATIC_SCHEME

    def __init__(self, addr_map: Mapping[str, Sequence[str]]) -> None:
        self._addr_map = {host: list(addrs) for host, addrs in addr_map.items()}

    def resolve(self, target: str) -> List[Address]:
        """Addresses for a target such as ``static://demo`` or ``demo``."""
        return [Address(addr) for addr in self._addr_map.get(_target_host(target), [])]


class RegistryResolver:
    """Keeps the addresses of one service current by watching a registry."""

    scheme = REGISTRY_SCHEME

    def __init__(self, registry: Registry, app_id: str, on_update: UpdateCallback) -> None:
        self.registry = registry
        self.app_id = app_id
        self._on_update = on_update
        self._instances: List[Instance] = []
        self._lock = threading.Lock()
        self._subscription: Optional[Subscription] = None

    def _update(self, instances: List[Instance]) -> None:
        with self._lock:
            self._instances = list(instances)
        self._on_update(instances_to_addresses(instances))

    def start(self) -> None:
        """Publish the current instances, then follow changes."""
        try:
            instances = list(self.registry.select_instances(self.app_id))
        except Exception:
            logger.exception("selecting instances of %s failed", self.app_id)
            instances = []
        self._update(instances)
        self._subscription = self.registry.subscribe(self.app_id, self._update)

    def close(self) -> None:
        """Stop following changes."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()

    def instances(self) -> List[Instance]:
        with self._lock:
            return list(self._instances)