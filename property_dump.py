import json
from typing import Any, Dict, TYPE_CHECKING

from property_types import ABSENT, Remnant

if TYPE_CHECKING:
    from lifecycle import LifecycleManager


class PropertyDumper:
    """debugging view of the raw values an object holds; hooks and privacy are bypassed"""

    def __init__(self, manager: "LifecycleManager"):
        self.manager = manager

    def dump(self, obj: Any) -> Dict[str, Dict[str, Any]]:
        identity = self.manager.identity_of(obj)
        cls = obj.remnant_class if isinstance(obj, Remnant) else type(obj)

        result: Dict[str, Dict[str, Any]] = {}
        for descriptor in self.manager.descriptors_for(cls):
            value = descriptor.store.get(identity)
            if value is ABSENT:
                continue
            result.setdefault(descriptor.owner.__qualname__, {})[descriptor.label] = value
        return result

    def serialize(self, obj: Any) -> str:
        cls = obj.remnant_class if isinstance(obj, Remnant) else type(obj)
        envelope = {
            "type": cls.__qualname__,
            "id": self.manager.identity_of(obj),
            "properties": self.dump(obj),
        }
        return json.dumps(envelope, default=str)
