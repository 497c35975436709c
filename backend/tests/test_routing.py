from voteroom.services.voting.routing import RoutingTable


def test_connect_then_bind():
    table = RoutingTable()
    table.connect('sid-1', 'alice')
    assert table.route('sid-1').code is None
    assert table.bind('sid-1', 'alice', '1234') is None
    route = table.route('sid-1')
    assert (route.identity, route.code) == ('alice', '1234')
    assert table.sid_for('alice') == 'sid-1'


def test_rebind_on_new_connection_returns_stale_sid():
    table = RoutingTable()
    table.bind('sid-1', 'alice', '1234')
    assert table.bind('sid-2', 'alice', '1234') == 'sid-1'
    assert table.sid_for('alice') == 'sid-2'
    assert table.route('sid-1').code is None
    assert table.route('sid-1').identity == 'alice'


def test_stale_disconnect_keeps_current_mapping():
    table = RoutingTable()
    table.bind('sid-1', 'alice', '1234')
    table.bind('sid-2', 'alice', '1234')
    table.disconnect('sid-1')
    assert table.sid_for('alice') == 'sid-2'
    table.disconnect('sid-2')
    assert table.sid_for('alice') is None
    assert len(table) == 0


def test_evict_session_detaches_members_only():
    table = RoutingTable()
    table.bind('sid-1', 'coord', '1234')
    table.bind('sid-2', 'bob', '1234')
    table.bind('sid-3', 'carol', '9999')
    evicted = table.evict_session('1234')
    assert sorted(r.sid for r in evicted) == ['sid-1', 'sid-2']
    assert table.route('sid-1').code is None
    assert table.sid_for('bob') is None
    assert table.route('sid-3').code == '9999'
    assert table.sid_for('carol') == 'sid-3'


def test_rebinding_a_connection_to_another_identity_drops_the_old_one():
    table = RoutingTable()
    table.bind('sid-1', 'bob', '9999')
    table.bind('sid-1', 'alice', '1234')
    assert table.sid_for('bob') is None
    assert table.sid_for('alice') == 'sid-1'
    table.disconnect('sid-1')
    assert len(table) == 0 and table.sid_for('alice') is None
