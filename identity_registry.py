import itertools
import os
import threading
import weakref
from typing import Any, Callable, Dict, List, Optional, Set

from log_utils import get_logger
from property_errors import DoubleRegistration, NotRegistered
from property_types import Remnant

UnreachableCallback = Callable[[int], None]

# identities are minted as (process id << CONTEXT_SHIFT) + n, so two live
# processes never hand out the same identity
CONTEXT_SHIFT = 32


class IdentityRegistry:
    """binds live objects to minted integer identities through weak references"""

    def __init__(self, verbose: bool = False):
        self.logger = get_logger(f"{__name__}.{self.__class__.__name__}", verbose=verbose)
        self._lock = threading.RLock()
        self._reset_context()
        self._refs: Dict[int, weakref.ref] = {}
        self._addresses: Dict[int, int] = {}
        self._by_address: Dict[int, int] = {}
        self._finalizers: Dict[int, weakref.finalize] = {}
        self._callbacks: Dict[int, List[UnreachableCallback]] = {}

    def _reset_context(self) -> None:
        self.context_id = os.getpid()
        self._base = self.context_id << CONTEXT_SHIFT
        self._counter = itertools.count(self._base + 1)
        self.last_identity = self._base

    def _track(self, obj: Any, identity: int) -> None:
        address = id(obj)
        self._refs[identity] = weakref.ref(obj)
        self._addresses[identity] = address
        self._by_address[address] = identity
        self._finalizers[identity] = weakref.finalize(obj, self._unreachable, identity)

    def register(self, obj: Any) -> int:
        """register an object and return its new identity"""
        try:
            weakref.ref(obj)
        except TypeError:
            raise TypeError(f"cannot register {type(obj).__name__!r} object: it does not support weak references") from None

        with self._lock:
            existing = self._by_address.get(id(obj))
            if existing is not None and self._refs[existing]() is obj:
                raise DoubleRegistration(f"{type(obj).__name__} object is already registered as {existing}")

            identity = next(self._counter)
            self.last_identity = identity
            self._track(obj, identity)
            self._callbacks[identity] = []

        self.logger.debug(f"registered {type(obj).__name__} as {identity}")
        return identity

    def _unreachable(self, identity: int) -> None:
        # with callbacks attached, their owner retires the identity
        with self._lock:
            self._finalizers.pop(identity, None)
            callbacks = self._callbacks.pop(identity, [])

        if not callbacks:
            self.retire(identity)
            return
        for callback in callbacks:
            callback(identity)

    def on_unreachable(self, identity: int, callback: UnreachableCallback) -> None:
        """run callback(identity) once, when the object goes away or is fired"""
        with self._lock:
            if identity not in self._callbacks:
                raise NotRegistered(f"identity {identity} is not registered or already unreachable")
            self._callbacks[identity].append(callback)

    def fire(self, identity: int) -> bool:
        """run the unreachability callbacks now; false if they already ran"""
        with self._lock:
            finalizer = self._finalizers.get(identity)
        if finalizer is None or finalizer.detach() is None:
            return False
        self._unreachable(identity)
        return True

    def retire(self, identity: int) -> None:
        """forget identity for good"""
        with self._lock:
            self._refs.pop(identity, None)
            self._callbacks.pop(identity, None)
            address = self._addresses.pop(identity, None)
            if address is not None and self._by_address.get(address) == identity:
                del self._by_address[address]
            finalizer = self._finalizers.pop(identity, None)
        if finalizer is not None:
            finalizer.detach()
        self.logger.debug(f"retired {identity}")

    def is_registered(self, identity: int) -> bool:
        with self._lock:
            return identity in self._refs

    def identity_of(self, obj: Any) -> int:
        """identity of a registered object or remnant"""
        if isinstance(obj, Remnant):
            identity = obj.remnant_identity
            if not self.is_registered(identity):
                raise NotRegistered(f"{obj!r} has already been cleaned up")
            return identity

        with self._lock:
            identity = self._by_address.get(id(obj))
            if identity is not None and self._refs[identity]() is obj:
                return identity
        raise NotRegistered(f"{type(obj).__name__} object is not registered")

    def get(self, identity: int) -> Optional[Any]:
        """live object for identity, none if unknown or already collected"""
        with self._lock:
            ref = self._refs.get(identity)
        return ref() if ref is not None else None

    def list_ids(self) -> Set[int]:
        with self._lock:
            return set(self._refs.keys())

    def size(self) -> int:
        with self._lock:
            return len(self._refs)

    def clear(self) -> None:
        """forget every identity without running callbacks"""
        with self._lock:
            for finalizer in self._finalizers.values():
                finalizer.detach()
            self._refs.clear()
            self._addresses.clear()
            self._by_address.clear()
            self._finalizers.clear()
            self._callbacks.clear()

    def resync(self) -> Dict[int, int]:
        """re-scope the registry to a duplicated execution context.

        Dead references are dropped and each surviving object gets a freshly
        minted identity. Returns the old -> new identity mapping; identities
        missing from it no longer exist.
        """
        self._lock = threading.RLock()
        with self._lock:
            old_refs = self._refs
            old_finalizers = self._finalizers
            old_callbacks = self._callbacks
            if os.getpid() != self.context_id:
                self._reset_context()
            self._refs = {}
            self._addresses = {}
            self._by_address = {}
            self._finalizers = {}
            self._callbacks = {}

            mapping: Dict[int, int] = {}
            for old, ref in old_refs.items():
                finalizer = old_finalizers.get(old)
                if finalizer is None:
                    continue
                finalizer.detach()
                obj = ref()
                if obj is None:
                    continue
                identity = next(self._counter)
                self.last_identity = identity
                self._track(obj, identity)
                self._callbacks[identity] = old_callbacks.get(old, [])
                mapping[old] = identity

        self.logger.info(f"resynced registry in context {self.context_id}: kept {len(mapping)} of {len(old_refs)} identities")
        return mapping

    def was_minted(self, identity: int) -> bool:
        """true if identity was handed out in the current context"""
        return self._base < identity <= self.last_identity
