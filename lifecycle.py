import os
import threading
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from accessors import Accessor, AccessorGenerator
from identity_registry import IdentityRegistry
from log_utils import env_verbose, get_logger
from property_errors import DuplicateProperty
from property_store import PropertyStore, live_stores
from property_types import PropertyDescriptor, Remnant

FINALIZER_NAME = "demolish"

ErrorSink = Callable[[BaseException, int, type], None]


class LifecycleState(Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    FINALIZING = "finalizing"
    CLEANED = "cleaned"


@dataclass
class RegistryEntry:
    identity: int
    ref: weakref.ref
    cls: type
    descriptors: Tuple[PropertyDescriptor, ...]
    state: LifecycleState = LifecycleState.REGISTERED


class LifecycleManager:
    """registers objects and tears their properties down when they go away.

    Each class contributes a group of property descriptors. On registration an
    object captures the groups of its class and of every participating
    ancestor, in MRO order. When the object becomes unreachable, or is
    destroyed explicitly, the concrete class's own ``demolish`` method runs
    once and then every captured store drops the object's entry.

    Parameters
    ----------
    error_sink: callable, optional
        Called as ``error_sink(exc, identity, cls)`` when a finalizer raises.
        Defaults to logging the failure.
    finalizer_name: str
        Name of the finalizer looked up on the concrete class.
    verbose: bool
        If True, enables detailed logging output.
    """

    def __init__(self, error_sink: Optional[ErrorSink] = None, finalizer_name: str = FINALIZER_NAME,
                 verbose: bool = False):
        self.logger = get_logger(f"{__name__}.{self.__class__.__name__}", verbose=verbose)
        self.registry = IdentityRegistry(verbose=verbose)
        self.accessors = AccessorGenerator(self.registry.identity_of)
        self.error_sink = error_sink or self._log_finalizer_error
        self.finalizer_name = finalizer_name
        self._groups: Dict[type, List[PropertyDescriptor]] = {}
        self._resolved: Dict[type, Tuple[PropertyDescriptor, ...]] = {}
        self._entries: Dict[int, RegistryEntry] = {}
        self._lock = threading.RLock()
        _live_managers.add(self)

    def declare(self, descriptor: PropertyDescriptor) -> Accessor:
        """attach a descriptor to its owner's group and return its accessor"""
        with self._lock:
            group = self._groups.setdefault(descriptor.owner, [])
            if any(existing.label == descriptor.label for existing in group):
                raise DuplicateProperty(f"{descriptor.owner.__qualname__} already declares {descriptor.label!r}")
            group.append(descriptor)
            self._resolved.clear()
            # objects registered before a late declaration still clean it up
            for entry in self._entries.values():
                if issubclass(entry.cls, descriptor.owner):
                    entry.descriptors += (descriptor,)
        self.logger.debug(f"declared {descriptor!r}")
        return self.accessors.generate(descriptor)

    def descriptors_for(self, cls: type) -> Tuple[PropertyDescriptor, ...]:
        """descriptors of cls followed by those of its participating ancestors"""
        with self._lock:
            resolved = self._resolved.get(cls)
            if resolved is None:
                resolved = tuple(
                    descriptor
                    for klass in cls.__mro__
                    for descriptor in self._groups.get(klass, ())
                )
                self._resolved[cls] = resolved
            return resolved

    def accessor_for(self, cls: type, label: str) -> Accessor:
        return self.accessors.generate_for(self.descriptors_for(cls), label, cls)

    def properties_of(self, cls: type) -> Dict[str, str]:
        """label -> privacy for the properties cls itself declares"""
        with self._lock:
            return {d.label: d.privacy.value for d in self._groups.get(cls, ())}

    def register(self, obj: Any) -> int:
        cls = type(obj)
        descriptors = self.descriptors_for(cls)
        identity = self.registry.register(obj)
        with self._lock:
            self._entries[identity] = RegistryEntry(identity, weakref.ref(obj), cls, descriptors)
        self.registry.on_unreachable(identity, self._demolish)
        return identity

    def identity_of(self, obj: Any) -> int:
        return self.registry.identity_of(obj)

    def destroy(self, obj: Any) -> bool:
        """finalize and clean obj now; false if that already happened or is underway"""
        return self.registry.fire(self.registry.identity_of(obj))

    def state_of(self, identity: int) -> LifecycleState:
        with self._lock:
            entry = self._entries.get(identity)
        if entry is not None:
            return entry.state
        if self.registry.was_minted(identity):
            return LifecycleState.CLEANED
        return LifecycleState.UNREGISTERED

    def object_count(self) -> int:
        """number of objects registered and not yet finalizing"""
        with self._lock:
            return sum(1 for entry in self._entries.values() if entry.state is LifecycleState.REGISTERED)

    def _demolish(self, identity: int) -> None:
        with self._lock:
            entry = self._entries.get(identity)
            if entry is None or entry.state is not LifecycleState.REGISTERED:
                return
            entry.state = LifecycleState.FINALIZING

        target = entry.ref()
        if target is None:
            target = Remnant(identity, entry.cls)

        try:
            self._run_finalizer(entry, target)
        finally:
            self._cleanup(entry)

    def _run_finalizer(self, entry: RegistryEntry, target: Any) -> None:
        finalizer = entry.cls.__dict__.get(self.finalizer_name)
        if finalizer is None:
            return
        if hasattr(finalizer, "__get__"):
            finalizer = finalizer.__get__(target, entry.cls)
        try:
            finalizer()
        except Exception as e:
            self.error_sink(e, entry.identity, entry.cls)

    def _cleanup(self, entry: RegistryEntry) -> None:
        for descriptor in entry.descriptors:
            descriptor.store.remove(entry.identity)
        with self._lock:
            entry.state = LifecycleState.CLEANED
            self._entries.pop(entry.identity, None)
        self.registry.retire(entry.identity)
        self.logger.debug(f"cleaned {entry.cls.__qualname__} {entry.identity} from {len(entry.descriptors)} stores")

    def _log_finalizer_error(self, exc: BaseException, identity: int, cls: type) -> None:
        self.logger.error(f"{cls.__qualname__}.{self.finalizer_name} failed for {identity}: {exc}", exc_info=exc)

    def stores(self) -> List[PropertyStore]:
        """every store declared through this manager"""
        with self._lock:
            seen: Dict[int, PropertyStore] = {}
            for group in self._groups.values():
                for descriptor in group:
                    seen.setdefault(id(descriptor.store), descriptor.store)
            return list(seen.values())

    def leaking_stores(self) -> Dict[str, Set[int]]:
        """'Owner.label' -> identities a store holds that are no longer registered"""
        with self._lock:
            live = set(self._entries.keys())
            groups = [list(group) for group in self._groups.values()]
        leaks: Dict[str, Set[int]] = {}
        for group in groups:
            for descriptor in group:
                stale = descriptor.store.identities() - live
                if stale:
                    leaks[f"{descriptor.owner.__qualname__}.{descriptor.label}"] = stale
        return leaks

    def resync(self) -> List[PropertyStore]:
        """re-scope registry, entries and stores to a duplicated execution context.

        Returns the stores that were rekeyed.
        """
        self._lock = threading.RLock()
        mapping = self.registry.resync()
        with self._lock:
            entries: Dict[int, RegistryEntry] = {}
            for old, entry in self._entries.items():
                new = mapping.get(old)
                if new is None:
                    continue
                entry.identity = new
                entries[new] = entry
            dropped = len(self._entries) - len(entries)
            self._entries = entries

        stores = self.stores()
        for store in stores:
            store.rekey(mapping)
        self.logger.info(f"resynced {len(entries)} objects ({dropped} dropped) across {len(stores)} stores")
        return stores


_live_managers: "weakref.WeakSet[LifecycleManager]" = weakref.WeakSet()


def _after_fork_in_child() -> None:
    owned: Set[int] = set()
    for manager in list(_live_managers):
        owned.update(id(store) for store in manager.resync())
    for store in live_stores():
        if id(store) not in owned:
            store.rekey({})


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_after_fork_in_child)


_manager = LifecycleManager(verbose=env_verbose())


def default_manager() -> LifecycleManager:
    return _manager

