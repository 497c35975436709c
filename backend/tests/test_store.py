import json
from unittest.mock import Mock

import pytest
import redis

from voteroom import db
from voteroom.errors import InfrastructureError
from voteroom.services.voting import machine
from voteroom.services.voting.store import (
    MemorySessionStore, RedisSessionStore, SqlSessionStore, build_store,
)


def _session(code='1234'):
    session = machine.new_session(code, 'coord')
    session.created_at = 500.0
    session.participants['p1'] = {'display_name': 'Alice', 'connected': True}
    return session


@pytest.fixture(params=['memory', 'sql'])
def store(request, clock):
    if request.param == 'memory':
        return MemorySessionStore(clock=clock)
    request.getfixturevalue('flask_app')
    return SqlSessionStore(db, clock=clock)


def test_set_get_round_trip(store):
    store.set(_session(), ttl=60)
    loaded = store.get('1234')
    assert loaded.to_dict() == _session().to_dict()
    assert store.exists('1234')
    assert store.get('9999') is None
    assert not store.exists('9999')


def test_loaded_sessions_are_independent_copies(store):
    store.set(_session(), ttl=60)
    first = store.get('1234')
    first.participants['p2'] = {'display_name': 'Bob', 'connected': True}
    assert 'p2' not in store.get('1234').participants


def test_expiry_and_refresh(store, clock):
    store.set(_session(), ttl=60)
    clock.now += 50
    store.set(store.get('1234'), ttl=60)  # write refreshes the expiry
    clock.now += 50
    assert store.exists('1234')
    clock.now += 11
    assert store.get('1234') is None
    assert not store.exists('1234')


def test_delete(store):
    store.set(_session(), ttl=60)
    store.delete('1234')
    assert store.get('1234') is None
    store.delete('1234')


def test_identity_binding(store, clock):
    assert store.identity_code('alice') is None
    store.bind_identity('alice', '1234', ttl=60)
    assert store.identity_code('alice') == '1234'
    store.bind_identity('alice', '5678', ttl=60)
    assert store.identity_code('alice') == '5678'
    clock.now += 61
    assert store.identity_code('alice') is None
    store.bind_identity('alice', '1234', ttl=60)
    store.unbind_identity('alice')
    assert store.identity_code('alice') is None


def test_sql_purge_expired(flask_app, clock):
    store = SqlSessionStore(db, clock=clock)
    store.set(_session('1111'), ttl=10)
    store.set(_session('2222'), ttl=100)
    store.bind_identity('coord', '1111', ttl=10)
    clock.now += 20
    assert store.purge_expired() == 1
    clock.now -= 20
    assert store.get('1111') is None
    assert store.get('2222') is not None
    assert store.identity_code('coord') is None


def test_redis_store_uses_prefixed_keys_with_ttl():
    client = Mock()
    client.get.return_value = json.dumps(_session().to_dict())
    client.exists.return_value = 1
    store = RedisSessionStore(client)

    store.set(_session(), ttl=7200)
    client.set.assert_called_with('session:1234', json.dumps(_session().to_dict()), ex=7200)
    assert store.get('1234').participants['p1']['display_name'] == 'Alice'
    client.get.assert_called_with('session:1234')
    assert store.exists('1234') is True
    store.delete('1234')
    client.delete.assert_called_with('session:1234')

    store.bind_identity('alice', '1234', ttl=7200)
    client.set.assert_called_with('identity:alice', '1234', ex=7200)
    client.get.return_value = b'1234'
    assert store.identity_code('alice') == '1234'
    store.unbind_identity('alice')
    client.delete.assert_called_with('identity:alice')


def test_redis_missing_keys():
    client = Mock()
    client.get.return_value = None
    client.exists.return_value = 0
    store = RedisSessionStore(client)
    assert store.get('1234') is None
    assert store.exists('1234') is False
    assert store.identity_code('alice') is None


def test_redis_failures_become_infrastructure_errors():
    client = Mock()
    client.get.side_effect = redis.ConnectionError('down')
    store = RedisSessionStore(client)
    with pytest.raises(InfrastructureError) as excinfo:
        store.get('1234')
    assert excinfo.value.message == 'Server error'


def test_build_store_backends(flask_app):
    assert isinstance(build_store({'STORE_BACKEND': 'memory'}), MemorySessionStore)
    assert isinstance(build_store({'STORE_BACKEND': 'sql'}, db), SqlSessionStore)
    assert isinstance(build_store({'STORE_BACKEND': 'redis', 'REDIS_URL': 'redis://localhost:6379/0'}), RedisSessionStore)
    with pytest.raises(ValueError):
        build_store({'STORE_BACKEND': 'carrier-pigeon'})
