from typing import List, Optional, Tuple

from insideout import (
    Privacy, PropertyOptions, PropertyStore, ValidationFailure,
    declare_property, identity_of, register,
)

_ssn = PropertyStore("ssn")
_badge = PropertyStore("badge")

departures: List[Tuple[str, str]] = []


def as_age(value) -> int:
    """accept ints and numeric strings"""
    try:
        age = int(value)
    except (TypeError, ValueError):
        raise ValidationFailure(f"age must be numeric, got {value!r}") from None
    if age < 0:
        raise ValidationFailure(f"age cannot be negative: {age}")
    return age


class Person:
    """person with a public name, read-only ssn, validated age and private nickname"""
    name = declare_property("name")
    ssn = declare_property("ssn", _ssn, PropertyOptions(privacy=Privacy.READONLY))
    age = declare_property("age", options=PropertyOptions(set_hook=as_age))
    nickname = declare_property("nickname", options=PropertyOptions(privacy=Privacy.PRIVATE, get_hook=str.title))

    def __init__(self, name: Optional[str] = None, ssn: Optional[int] = None):
        register(self)
        if name is not None:
            self.name(name)
        if ssn is not None:
            _ssn.set(identity_of(self), ssn)

    def set_nickname(self, nickname: str) -> None:
        self.nickname(nickname)

    def introduce(self) -> str:
        """introduce the person"""
        nickname = self.nickname()
        if nickname:
            return f"hi, i'm {self.name()}, call me {nickname}"
        return f"hi, i'm {self.name()}"


class Employee(Person):
    """person with an employer and a read-only badge number"""
    employer = declare_property("employer")
    badge = declare_property("badge", _badge, PropertyOptions(privacy=Privacy.READONLY))

    def __init__(self, name: str, employer: str, badge: int):
        super().__init__(name)
        self.employer(employer)
        _badge.set(identity_of(self), badge)

    def demolish(self):
        departures.append((self.name(), self.employer()))
