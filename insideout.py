"""Inside-out properties: per-instance data kept outside the instance.

Declare a property in a class body and register instances in the
constructor::

    class Person:
        name = declare_property("name")
        ssn = declare_property("ssn", options=PropertyOptions(privacy=Privacy.READONLY))

        def __init__(self):
            register(self)

    larry = Person()
    larry.name("Larry")
    larry.name()        # 'Larry'

Values live in identity-indexed property stores, not on the object, and are
removed when the object goes away.
"""

import inspect
from typing import Any, Dict, Optional, Set

from accessors import Accessor, caller_module
from lifecycle import LifecycleManager, default_manager
from property_dump import PropertyDumper
from property_store import PropertyStore
from property_errors import (
    DoubleRegistration, DuplicateProperty, NotRegistered, PrivacyViolation, PropertyError,
    ReadOnlyViolation, UnknownProperty, ValidationFailure,
)
from property_types import ABSENT, Privacy, PropertyDescriptor, PropertyOptions, Remnant

__all__ = [
    "ABSENT", "Privacy", "PropertyOptions", "PropertyStore", "Remnant", "LifecycleManager",
    "PropertyError", "ReadOnlyViolation", "ValidationFailure", "PrivacyViolation", "DoubleRegistration",
    "NotRegistered", "UnknownProperty", "DuplicateProperty",
    "declare_property", "register", "destroy", "identity_of", "object_count", "properties_of",
    "accessor_for", "leaking_stores", "dump", "dump_json", "set_default_options", "get_default_options",
]

_default_options: Dict[str, PropertyOptions] = {}


def set_default_options(options: PropertyOptions, scope: Optional[str] = None) -> None:
    """set the defaults used by declarations made in scope (the calling module by default)"""
    if not isinstance(options, PropertyOptions):
        raise TypeError(f"expected PropertyOptions, got {type(options).__name__}")
    _default_options[scope or caller_module(skip=(__name__,))] = options


def get_default_options(scope: Optional[str] = None) -> PropertyOptions:
    return _default_options.get(scope or caller_module(skip=(__name__,)), PropertyOptions())


class PropertyDeclaration:
    """placeholder that turns into an accessor once its class exists"""

    def __init__(self, label: str, store: PropertyStore, options: PropertyOptions, manager: LifecycleManager):
        self.label = label
        self.store = store
        self.options = options
        self.manager = manager

    def __set_name__(self, owner: type, name: str) -> None:
        setattr(owner, name, self.bind(owner))

    def bind(self, owner: type) -> Accessor:
        descriptor = PropertyDescriptor.from_options(self.label, self.store, owner, self.options)
        return self.manager.declare(descriptor)

    def __repr__(self) -> str:
        return f"<PropertyDeclaration {self.label!r} (unbound)>"


def declare_property(label: str, store: Optional[PropertyStore] = None, options: Optional[PropertyOptions] = None,
                     owner: Optional[type] = None, manager: Optional[LifecycleManager] = None):
    """declare a property.

    Used in a class body the declaration binds itself to the class; with
    ``owner`` it binds immediately and the accessor is returned. Options are
    merged over the defaults of the declaring module as they stand now.
    """
    if not isinstance(label, str) or not label:
        raise ValueError("property label must be a non-empty string")
    if store is None:
        store = PropertyStore(label)
    elif not isinstance(store, PropertyStore):
        raise TypeError(f"store for {label!r} must be a PropertyStore, got {type(store).__name__}")

    defaults = _default_options.get(caller_module(skip=(__name__,)))
    options = (options or PropertyOptions()).merged_over(defaults)
    declaration = PropertyDeclaration(label, store, options, manager or default_manager())
    if owner is not None:
        return declaration.bind(owner)
    return declaration


def register(obj_or_class: Any, manager: Optional[LifecycleManager] = None) -> Any:
    """register an object, or allocate and register a bare instance of a class"""
    if inspect.isclass(obj_or_class):
        obj = obj_or_class.__new__(obj_or_class)
    else:
        obj = obj_or_class
    (manager or default_manager()).register(obj)
    return obj


def identity_of(obj: Any, manager: Optional[LifecycleManager] = None) -> int:
    return (manager or default_manager()).identity_of(obj)


def destroy(obj: Any, manager: Optional[LifecycleManager] = None) -> bool:
    """run the finalize-then-clean sequence for obj now"""
    return (manager or default_manager()).destroy(obj)


def object_count(manager: Optional[LifecycleManager] = None) -> int:
    return (manager or default_manager()).object_count()


def properties_of(cls: type, manager: Optional[LifecycleManager] = None) -> Dict[str, str]:
    return (manager or default_manager()).properties_of(cls)


def accessor_for(cls: type, label: str, manager: Optional[LifecycleManager] = None) -> Accessor:
    return (manager or default_manager()).accessor_for(cls, label)


def leaking_stores(manager: Optional[LifecycleManager] = None) -> Dict[str, Set[int]]:
    return (manager or default_manager()).leaking_stores()


def dump(obj: Any, manager: Optional[LifecycleManager] = None) -> Dict[str, Dict[str, Any]]:
    """raw property values of obj grouped by declaring class"""
    return PropertyDumper(manager or default_manager()).dump(obj)


def dump_json(obj: Any, manager: Optional[LifecycleManager] = None) -> str:
    """json envelope with the object's type, identity and raw properties"""
    return PropertyDumper(manager or default_manager()).serialize(obj)
