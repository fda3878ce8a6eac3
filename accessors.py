import inspect
import types
from abc import ABC
from typing import Any, Callable, Iterable, Optional, Tuple

from property_errors import PrivacyViolation, ReadOnlyViolation, UnknownProperty, ValidationFailure
from property_types import ABSENT, Privacy, PropertyDescriptor

IdentityResolver = Callable[[Any], int]


def caller_module(skip: Iterable[str] = ()) -> Optional[str]:
    """name of the first module on the stack outside this one and skip"""
    skipped = {__name__, *skip}
    frame = inspect.currentframe()
    try:
        while frame is not None and frame.f_globals.get("__name__") in skipped:
            frame = frame.f_back
        return frame.f_globals.get("__name__") if frame is not None else None
    finally:
        del frame


class Accessor(ABC):
    """reads and writes one property store on behalf of registered objects.

    An accessor is a descriptor: stored on a class, ``obj.label()`` reads and
    ``obj.label(value)`` writes. On the class itself ``Cls.label(obj)`` and
    ``Cls.label.read(obj)`` / ``Cls.label.write(obj, value)`` do the same.
    """
    privacy: Privacy

    def __init__(self, descriptor: PropertyDescriptor, resolve: IdentityResolver):
        self.descriptor = descriptor
        self._resolve = resolve
        self.__name__ = descriptor.label
        self.__qualname__ = f"{descriptor.owner.__qualname__}.{descriptor.label}"

    @classmethod
    def can_handle(cls, descriptor: PropertyDescriptor) -> bool:
        return descriptor.privacy is cls.privacy

    @property
    def label(self) -> str:
        return self.descriptor.label

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return types.MethodType(self, instance)

    def __call__(self, obj: Any, *values: Any) -> Any:
        if values:
            return self.write(obj, *values)
        return self.read(obj)

    def read(self, obj: Any) -> Any:
        self._check_read()
        raw = self.descriptor.store.get(self._resolve(obj))
        if raw is ABSENT or self.descriptor.get_hook is None:
            return raw
        return self.descriptor.get_hook(raw)

    def write(self, obj: Any, *values: Any) -> Any:
        self._check_write()
        identity = self._resolve(obj)
        value = self._apply_set_hook(values)
        self.descriptor.store.set(identity, value)
        return value

    def _check_read(self) -> None:
        pass

    def _check_write(self) -> None:
        pass

    def _apply_set_hook(self, values: Tuple[Any, ...]) -> Any:
        hook = self.descriptor.set_hook
        if hook is None:
            if len(values) != 1:
                raise TypeError(f"accessor {self.label!r} takes exactly one value, got {len(values)}")
            return values[0]
        try:
            result = hook(*values)
        except ValidationFailure:
            raise
        except Exception as e:
            raise ValidationFailure(f"invalid value for {self.label!r}: {e}") from e
        # a hook returning None only validated
        if result is None:
            return values[0] if len(values) == 1 else values
        return result

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.descriptor.owner.__qualname__}.{self.label}>"


class PublicAccessor(Accessor):
    privacy = Privacy.PUBLIC


class PrivateAccessor(Accessor):
    """accessor usable only from code in the owner class's module.

    Privacy is per module, not per class: any function or class defined in
    the declaring module may read and write the property.
    """
    privacy = Privacy.PRIVATE

    def _check_access(self) -> None:
        module = caller_module()
        if module != self.descriptor.module:
            raise PrivacyViolation(
                f"{self.label!r} is private to {self.descriptor.module}; accessed from {module}"
            )

    def _check_read(self) -> None:
        self._check_access()

    def _check_write(self) -> None:
        self._check_access()


class ReadonlyAccessor(Accessor):
    privacy = Privacy.READONLY

    def _check_write(self) -> None:
        raise ReadOnlyViolation(f"{self.label!r} is a read-only accessor")


class AccessorGenerator:
    def __init__(self, resolve: IdentityResolver):
        self.resolve = resolve
        self.strategies = [
            PublicAccessor,
            PrivateAccessor,
            ReadonlyAccessor,
        ]

    def generate(self, descriptor: PropertyDescriptor) -> Accessor:
        for strategy in self.strategies:
            if strategy.can_handle(descriptor):
                return strategy(descriptor, self.resolve)
        raise ValueError(f"no accessor for privacy {descriptor.privacy!r}")

    def generate_for(self, descriptors: Iterable[PropertyDescriptor], label: str, owner: type) -> Accessor:
        """accessor for the first descriptor carrying label"""
        for descriptor in descriptors:
            if descriptor.label == label:
                return self.generate(descriptor)
        raise UnknownProperty(f"{owner.__qualname__} has no property {label!r}")
