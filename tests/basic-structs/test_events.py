from consul_operator._cogs.structs.events import Added, Deleted, Updated
from consul_operator._cogs.structs.references import ObjectKey

KEY = ObjectKey('ns1', 'name1')
BODY = {'metadata': {'namespace': 'ns1', 'name': 'name1'}}


def test_deletion_with_the_last_known_body():
    event = Deleted(KEY, BODY)
    assert event.key == KEY
    assert event.body == BODY
    assert not event.tombstone


def test_deletion_as_a_tombstone():
    event = Deleted(KEY, None)
    assert event.key == KEY
    assert event.body is None
    assert event.tombstone


def test_addition_and_update_carry_the_key():
    added = Added(KEY, BODY)
    updated = Updated(KEY, BODY, {**BODY, 'spec': {'size': 1}})
    assert added.key == KEY
    assert updated.key == KEY
    assert updated.old == BODY
    assert updated.new['spec'] == {'size': 1}


def test_event_kinds_are_distinguishable():
    assert not isinstance(Added(KEY, BODY), Deleted)
    assert not isinstance(Deleted(KEY, BODY), Added)
