"""
Unit tests for LifecycleManager.

These tests validate:
- Collection of descriptors across participating ancestors, resolved once per class
- The Unregistered -> Registered -> Finalizing -> Cleaned state sequence
- Finalizers running once, before cleanup, on the concrete class only
- Cleanup completeness across the hierarchy and the no-leak property
- Finalizer failures routed to the error sink without skipping cleanup
- Re-scoping of entries and stores after a simulated context duplication
"""

import pytest

from insideout import declare_property
from lifecycle import LifecycleManager, LifecycleState
from property_errors import DoubleRegistration, DuplicateProperty, NotRegistered
from property_types import ABSENT, Remnant


@pytest.fixture
def hierarchy(manager):
    events = []

    class Base:
        name = declare_property("name", manager=manager)

        def __init__(self, name):
            manager.register(self)
            self.name(name)

        def demolish(self):
            events.append(("Base", self.name()))

    class Plain:
        """not participating"""

    class Middle(Base, Plain):
        rank = declare_property("rank", manager=manager)

    class Leaf(Middle):
        tag = declare_property("tag", manager=manager)

        def demolish(self):
            events.append(("Leaf", self.name(), self.rank(), self.tag()))

    return Base, Middle, Leaf, events


def test_descriptors_follow_mro_of_participating_classes(manager, hierarchy):
    Base, Middle, Leaf, _ = hierarchy
    labels = [d.label for d in manager.descriptors_for(Leaf)]
    assert labels == ["tag", "rank", "name"]
    assert manager.descriptors_for(Leaf) is manager.descriptors_for(Leaf)


def test_duplicate_label_in_one_class(manager):
    class Twice:
        a = declare_property("a", manager=manager)

    with pytest.raises(DuplicateProperty):
        declare_property("a", owner=Twice, manager=manager)


def test_same_label_in_subclass_is_allowed(manager, hierarchy):
    Base, _, _, _ = hierarchy

    class Child(Base):
        name = declare_property("name", manager=manager)

    assert [d.owner for d in manager.descriptors_for(Child)] == [Child, Base]


def test_state_sequence(manager, hierarchy, collect):
    _, _, Leaf, _ = hierarchy
    leaf = Leaf("x")
    identity = manager.identity_of(leaf)
    assert manager.state_of(identity) is LifecycleState.REGISTERED

    observed = []
    Leaf.demolish = lambda self: observed.append(manager.state_of(identity))

    del leaf
    collect()
    assert observed == [LifecycleState.FINALIZING]
    assert manager.state_of(identity) is LifecycleState.CLEANED
    assert manager.state_of(identity + 10 ** 9) is LifecycleState.UNREGISTERED


def test_double_registration(manager, hierarchy):
    Base, _, _, _ = hierarchy
    base = Base("b")
    with pytest.raises(DoubleRegistration):
        manager.register(base)


def test_finalizer_sees_values_before_cleanup(manager, hierarchy, collect):
    _, _, Leaf, events = hierarchy
    leaf = Leaf("Larry")
    leaf.rank(3)
    leaf.tag("t")

    del leaf
    collect()

    assert events == [("Leaf", "Larry", 3, "t")]


def test_finalizer_is_not_inherited(manager, hierarchy, collect):
    _, Middle, _, events = hierarchy
    middle = Middle("m")
    del middle
    collect()
    assert events == []


def test_finalizer_receives_remnant_after_collection(manager, collect):
    seen = []

    class Handle:
        def demolish(self):
            seen.append(self)

    handle = Handle()
    identity = manager.register(handle)
    del handle
    collect()

    assert len(seen) == 1
    assert isinstance(seen[0], Remnant)
    assert seen[0].remnant_identity == identity


def test_destroy_passes_live_object_and_runs_once(manager, hierarchy):
    _, _, Leaf, events = hierarchy
    leaf = Leaf("Moe")
    identity = manager.identity_of(leaf)

    assert manager.destroy(leaf) is True
    assert events == [("Leaf", "Moe", ABSENT, ABSENT)]
    assert manager.state_of(identity) is LifecycleState.CLEANED

    with pytest.raises(NotRegistered):
        manager.destroy(leaf)
    del leaf
    assert len(events) == 1


def test_cleanup_completeness_across_hierarchy(manager, hierarchy, collect):
    Base, Middle, Leaf, _ = hierarchy
    leaf = Leaf("x")
    leaf.rank(1)
    leaf.tag("y")
    identity = manager.identity_of(leaf)
    descriptors = manager.descriptors_for(Leaf)

    del leaf
    collect()

    for descriptor in descriptors:
        assert descriptor.store.get(identity) is ABSENT
    assert manager.leaking_stores() == {}


def test_no_leak_after_many_objects(manager, hierarchy, collect):
    _, _, Leaf, _ = hierarchy
    stores = manager.stores()
    baseline = [len(s) for s in stores]

    for i in range(200):
        leaf = Leaf(str(i))
        leaf.rank(i)
        leaf.tag(i)
        del leaf
    collect()

    assert [len(s) for s in stores] == baseline
    assert manager.object_count() == 0
    assert manager.registry.size() == 0


def test_identity_uniqueness_for_live_objects(manager, hierarchy):
    Base, Middle, Leaf, _ = hierarchy
    objects = [cls(str(i)) for i in range(30) for cls in (Base, Middle, Leaf)]
    identities = {manager.identity_of(obj) for obj in objects}
    assert len(identities) == len(objects)
    assert manager.object_count() == len(objects)


def test_failing_finalizer_does_not_block_cleanup(manager, sink, collect):
    class Fragile:
        label = declare_property("label", manager=manager)

        def demolish(self):
            raise RuntimeError("boom")

    fragile = Fragile()
    identity = manager.register(fragile)
    fragile.label("kept until cleanup")

    del fragile
    collect()

    assert len(sink) == 1
    exc, failed_identity, cls = sink[0]
    assert isinstance(exc, RuntimeError)
    assert (failed_identity, cls) == (identity, Fragile)
    assert Fragile.label.descriptor.store.get(identity) is ABSENT
    assert manager.state_of(identity) is LifecycleState.CLEANED


def test_default_error_sink_logs(caplog, collect):
    manager = LifecycleManager()

    class Fragile:
        def demolish(self):
            raise ValueError("bad teardown")

    fragile = Fragile()
    manager.register(fragile)
    with caplog.at_level("ERROR"):
        del fragile
        collect()

    assert "bad teardown" in caplog.text


def test_properties_of(manager, hierarchy):
    Base, _, Leaf, _ = hierarchy
    assert manager.properties_of(Base) == {"name": "public"}
    assert manager.properties_of(Leaf) == {"tag": "public"}


def test_resync_rekeys_entries_and_stores(manager, hierarchy, collect):
    Base, _, Leaf, events = hierarchy
    survivor = Leaf("Larry")
    survivor.tag("t")
    goner = Base("gone")
    old_identity = manager.identity_of(survivor)
    goner_identity = manager.identity_of(goner)
    manager.registry.retire(goner_identity)

    manager.resync()

    new_identity = manager.identity_of(survivor)
    assert new_identity != old_identity
    assert survivor.name() == "Larry"
    assert survivor.tag() == "t"
    assert Base.name.descriptor.store.get(goner_identity) is ABSENT
    assert manager.state_of(new_identity) is LifecycleState.REGISTERED

    del survivor
    collect()
    assert events == [("Leaf", "Larry", ABSENT, "t")]
    assert manager.leaking_stores() == {}


def test_late_declaration_is_cleaned_for_registered_objects(manager, hierarchy, collect):
    Base, _, Leaf, _ = hierarchy
    leaf = Leaf("x")
    identity = manager.identity_of(leaf)

    Base.late = declare_property("late", owner=Base, manager=manager)
    leaf.late("value")
    assert Base.late.descriptor.store.get(identity) == "value"

    del leaf
    collect()

    assert Base.late.descriptor.store.get(identity) is ABSENT
    assert manager.leaking_stores() == {}
