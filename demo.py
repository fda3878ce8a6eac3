#!/usr/bin/env python3
import gc
import logging

import insideout
from example_classes import Employee, Person, departures


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    larry = Person("Larry", ssn=123456789)
    larry.age("42")
    print(larry.introduce(), "| age", larry.age(), "| ssn", larry.ssn())

    try:
        larry.ssn(1)
    except insideout.ReadOnlyViolation as e:
        print("rejected:", e)

    try:
        larry.age("abc")
    except insideout.ValidationFailure as e:
        print("rejected:", e)

    moe = Employee("Moe", "Tavern", badge=7)
    print(insideout.dump_json(moe))
    print("live objects:", insideout.object_count())

    del larry, moe
    gc.collect()
    print("departures:", departures)
    print("live objects:", insideout.object_count(), "| leaks:", insideout.leaking_stores())


if __name__ == "__main__":
    main()
