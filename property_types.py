from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from property_store import PropertyStore


class _Absent:
    """marker for a property that has no entry for an identity"""
    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class Privacy(Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    READONLY = "readonly"


GetHook = Callable[[Any], Any]
SetHook = Callable[..., Any]


@dataclass(frozen=True)
class PropertyOptions:
    """per-property options; a None field falls back to the defaults in effect"""
    privacy: Optional[Privacy] = None
    get_hook: Optional[GetHook] = None
    set_hook: Optional[SetHook] = None

    def merged_over(self, defaults: Optional["PropertyOptions"]) -> "PropertyOptions":
        if defaults is None:
            return self
        merged = {}
        for field in fields(self):
            value = getattr(self, field.name)
            merged[field.name] = value if value is not None else getattr(defaults, field.name)
        return PropertyOptions(**merged)


@dataclass(frozen=True, eq=False)
class PropertyDescriptor:
    label: str
    store: "PropertyStore"
    owner: type
    privacy: Privacy = Privacy.PUBLIC
    get_hook: Optional[GetHook] = None
    set_hook: Optional[SetHook] = None

    @classmethod
    def from_options(cls, label: str, store: "PropertyStore", owner: type,
                     options: Optional[PropertyOptions] = None) -> "PropertyDescriptor":
        options = options or PropertyOptions()
        return cls(
            label=label,
            store=store,
            owner=owner,
            privacy=options.privacy or Privacy.PUBLIC,
            get_hook=options.get_hook,
            set_hook=options.set_hook,
        )

    @property
    def module(self) -> str:
        """name of the module the owner class is defined in"""
        return self.owner.__module__

    def __repr__(self) -> str:
        return f"PropertyDescriptor({self.owner.__qualname__}.{self.label}, {self.privacy.value})"


class Remnant:
    """stand-in for an object that is already unreachable.

    Finalizers run after the object itself is gone, so they receive a remnant
    instead. It carries the retired object's identity and concrete class, and
    binds class attributes to itself, so accessor methods such as
    ``self.name()`` keep working until cleanup removes the entries.
    """
    __slots__ = ("_remnant_identity", "_remnant_cls")

    def __init__(self, identity: int, cls: type):
        self._remnant_identity = identity
        self._remnant_cls = cls

    @property
    def remnant_identity(self) -> int:
        return self._remnant_identity

    @property
    def remnant_class(self) -> type:
        return self._remnant_cls

    def __getattr__(self, name: str) -> Any:
        for klass in self._remnant_cls.__mro__:
            if name in klass.__dict__:
                raw = klass.__dict__[name]
                if hasattr(raw, "__get__"):
                    return raw.__get__(self, self._remnant_cls)
                return raw
        raise AttributeError(f"{self._remnant_cls.__name__!r} remnant has no attribute {name!r}")

    def __repr__(self) -> str:
        return f"<Remnant of {self._remnant_cls.__qualname__} #{self._remnant_identity}>"
