import threading
import weakref
from typing import Any, Callable, Dict, Iterator, List, Mapping, Set

from property_types import ABSENT


class PropertyStore:
    """identity-indexed values of one property"""

    def __init__(self, name: str = ""):
        self.name = name
        self._values: Dict[int, Any] = {}
        self._lock = threading.RLock()
        _live_stores.add(self)

    def get(self, identity: int) -> Any:
        """value stored for identity, or ABSENT"""
        with self._lock:
            return self._values.get(identity, ABSENT)

    def set(self, identity: int, value: Any) -> None:
        with self._lock:
            self._values[identity] = value

    def remove(self, identity: int) -> None:
        """drop the entry for identity; absent entries are not an error"""
        with self._lock:
            self._values.pop(identity, None)

    def update(self, identity: int, func: Callable[[Any], Any]) -> Any:
        """atomically replace the entry with func(current), current may be ABSENT"""
        with self._lock:
            value = func(self._values.get(identity, ABSENT))
            self._values[identity] = value
            return value

    def contains(self, identity: int) -> bool:
        with self._lock:
            return identity in self._values

    def identities(self) -> Set[int]:
        with self._lock:
            return set(self._values.keys())

    def rekey(self, mapping: Mapping[int, int]) -> int:
        """keep only identities present in mapping, renamed to their new identity.

        Returns the number of entries dropped. Also replaces the lock, which may
        have been held by a thread that does not exist in a forked child.
        """
        self._lock = threading.RLock()
        with self._lock:
            kept = {mapping[old]: value for old, value in self._values.items() if old in mapping}
            dropped = len(self._values) - len(kept)
            self._values = kept
            return dropped

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __iter__(self) -> Iterator[int]:
        return iter(self.identities())

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<PropertyStore{label} entries={len(self)}>"


_live_stores: "weakref.WeakSet[PropertyStore]" = weakref.WeakSet()


def live_stores() -> List[PropertyStore]:
    """every property store that is still referenced somewhere"""
    return list(_live_stores)
