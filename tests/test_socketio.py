import json

from conftest import room_messages, send_action
from pruno import socketio
from pruno.models import Room
from pruno.services.sessions import NAMESPACE, OUTBOUND_EVENT, sessions


def _stored_state(code='ABC123'):
    room = Room.query.filter_by(room_code=code).first()
    return json.loads(room.state) if room else None


def _seat(connect, *names, code='ABC123'):
    clients = []
    for i, name in enumerate(names, start=1):
        c = connect(code)
        send_action(c, 'JOIN', playerId=f'p{i}', name=name)
        clients.append(c)
    for c in clients:
        room_messages(c)
    return clients


def test_socket_connect_and_ping(connect):
    sio_client = connect('ABC123')
    assert sio_client.is_connected(NAMESPACE)
    received = sio_client.get_received(NAMESPACE)
    assert any(pkt['name'] == 'connected' for pkt in received)

    sio_client.emit('ping', {'n': 1}, namespace=NAMESPACE)
    received = sio_client.get_received(NAMESPACE)
    assert any(pkt['name'] == 'pong' and pkt['args'][0] == {'n': 1} for pkt in received)


def test_invalid_room_code_is_refused(connect):
    assert not connect('bad-code!').is_connected(NAMESPACE)


def test_join_broadcasts_state_to_room(connect):
    alice, bob = connect(), connect()
    send_action(alice, 'JOIN', playerId='p1', name='Alice')

    for c in (alice, bob):
        states = room_messages(c, 'STATE_UPDATE')
        assert len(states) == 1
        assert [p['name'] for p in states[0]['payload']['players']] == ['Alice']
    assert _stored_state()['players'][0]['id'] == 'p1'


def test_two_players_start(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    send_action(alice, 'START')

    for c in (alice, bob):
        states = room_messages(c, 'STATE_UPDATE')
        assert len(states) == 1
        payload = states[0]['payload']
        assert payload['status'] == 'playing'
        assert 'drawPile' not in payload
        assert payload['deckCount'] == 93
        assert [len(p['hand']) for p in payload['players']] == [7, 7]
        assert len(payload['discardPile']) == 1
        assert payload['discardPile'][0]['color'] != 'wild'

    stored = _stored_state()
    assert len(stored['drawPile']) == 93
    assert stored['status'] == 'playing'


def test_start_needs_two_players_error_goes_to_sender(connect):
    alice, = _seat(connect, 'Alice')
    watcher = connect()
    room_messages(watcher)
    send_action(alice, 'START')
    errors = room_messages(alice, 'ERROR')
    assert len(errors) == 1
    assert room_messages(watcher) == []
    assert _stored_state()['status'] == 'waiting'


def test_reconnect_resends_state_without_duplicating(connect, client):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    send_action(alice, 'START')
    hand_before = [c['id'] for c in _stored_state()['players'][0]['hand']]
    room_messages(bob)

    alice.disconnect(namespace=NAMESPACE)
    assert len(client.get('/api/rooms/ABC123/state').get_json()['players']) == 2

    alice_again = connect()
    room_messages(alice_again)
    send_action(alice_again, 'JOIN', playerId='p1', name='Alice')

    states = room_messages(alice_again, 'STATE_UPDATE')
    assert len(states) == 1
    players = states[0]['payload']['players']
    assert len(players) == 2
    assert [c['id'] for c in players[0]['hand']] == hand_before
    assert room_messages(bob) == []


def test_join_rejected_once_game_started(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    send_action(alice, 'START')
    room_messages(alice)

    carol = connect()
    room_messages(carol)
    send_action(carol, 'JOIN', playerId='p3', name='Carol')
    assert room_messages(carol, 'ERROR') == [{'type': 'ERROR', 'message': 'Game already in progress'}]
    assert room_messages(alice) == []
    assert len(_stored_state()['players']) == 2


def test_room_full(connect):
    _seat(connect, *[f'N{i}' for i in range(6)])
    late = connect()
    room_messages(late)
    send_action(late, 'JOIN', playerId='p7', name='Late')
    assert room_messages(late, 'ERROR') == [{'type': 'ERROR', 'message': 'Room full'}]
    assert len(_stored_state()['players']) == 6


def test_malformed_message_is_dropped(connect):
    alice = connect()
    room_messages(alice)
    alice.emit('action', 'not json', namespace=NAMESPACE)
    alice.emit('action', {'type': 'LAUNCH'}, namespace=NAMESPACE)
    assert room_messages(alice) == []
    assert alice.is_connected(NAMESPACE)
    assert _stored_state() is None


def test_actions_for_unknown_room_are_ignored(connect):
    alice = connect('NEW1')
    room_messages(alice)
    send_action(alice, 'START')
    assert room_messages(alice) == []
    assert _stored_state('NEW1') is None


def test_out_of_turn_draw_is_ignored(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    send_action(alice, 'START')
    room_messages(alice)
    room_messages(bob)

    send_action(bob, 'DRAW_CARD')
    assert room_messages(alice) == []
    assert room_messages(bob) == []

    send_action(alice, 'DRAW_CARD')
    for c in (alice, bob):
        states = room_messages(c, 'STATE_UPDATE')
        assert states[-1]['payload']['deckCount'] == 92
        assert len(states[-1]['payload']['players'][0]['hand']) == 8


def test_actor_must_match_bound_identity(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    send_action(alice, 'START')
    room_messages(alice)
    room_messages(bob)

    stolen = _stored_state()['players'][0]['hand'][0]
    send_action(bob, 'PLAY_CARD', playerId='p1', card=stolen)
    assert room_messages(alice) == []
    assert len(_stored_state()['players'][0]['hand']) == 7


def test_seated_connection_cannot_rejoin_as_someone_else(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    send_action(alice, 'START')
    room_messages(alice)
    room_messages(bob)

    send_action(bob, 'JOIN', playerId='p1', name='Alice')
    assert room_messages(bob) == []

    stolen = _stored_state()['players'][0]['hand'][0]
    send_action(bob, 'PLAY_CARD', card=stolen)
    assert room_messages(alice) == []
    assert len(_stored_state()['players'][0]['hand']) == 7


def test_repeated_join_without_id_keeps_one_seat(connect):
    alice = connect()
    send_action(alice, 'JOIN', name='Alice')
    room_messages(alice)

    send_action(alice, 'JOIN', name='Alice')
    states = room_messages(alice, 'STATE_UPDATE')
    assert len(states) == 1
    assert [p['name'] for p in states[0]['payload']['players']] == ['Alice']
    assert len(_stored_state()['players']) == 1


def test_spectator_cannot_start_the_game(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    spectator = connect()
    room_messages(spectator)

    send_action(spectator, 'START', playerId='ghost')
    assert room_messages(alice) == []
    assert _stored_state()['status'] == 'waiting'


def test_room_locks_are_released_when_unused(connect):
    import gc
    from pruno.services import rooms as rooms_module

    alice, = _seat(connect, 'Alice', code='LOCK1')
    gc.collect()
    assert 'LOCK1' not in rooms_module._room_locks

    lock = rooms_module.room_lock('LOCK1')
    assert rooms_module.room_lock('LOCK1') is lock
    del lock
    gc.collect()
    assert 'LOCK1' not in rooms_module._room_locks


def test_chat_is_relayed_to_everyone(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    blob = {'iv': 'AAEC', 'ciphertext': 'c2VjcmV0'}
    send_action(bob, 'CHAT', playerId='p2', encryptedMessage=blob)

    for c in (alice, bob):
        chats = room_messages(c, 'CHAT_MESSAGE')
        assert len(chats) == 1
        payload = chats[0]['payload']
        assert payload['senderId'] == 'p2'
        assert payload['senderName'] == 'Bob'
        assert payload['encryptedMessage'] == blob
        assert isinstance(payload['timestamp'], int)


def test_broadcast_survives_lost_registry(connect):
    alice, bob = _seat(connect, 'Alice', 'Bob')
    sessions.clear()

    send_action(bob, 'CHAT', playerId='p2', encryptedMessage='hi')
    assert len(room_messages(alice, 'CHAT_MESSAGE')) == 1
    assert len(room_messages(bob, 'CHAT_MESSAGE')) == 1


def test_one_failing_channel_does_not_stop_broadcast(connect, monkeypatch):
    clients = _seat(connect, 'Alice', 'Bob', 'Carol')
    real_emit = socketio.emit
    failures = []

    def flaky_emit(event, *args, **kwargs):
        if event == OUTBOUND_EVENT and not failures:
            failures.append(kwargs.get('to'))
            raise RuntimeError('socket gone')
        return real_emit(event, *args, **kwargs)

    monkeypatch.setattr(socketio, 'emit', flaky_emit)
    send_action(clients[0], 'START')
    monkeypatch.undo()

    received = sorted(len(room_messages(c, 'STATE_UPDATE')) for c in clients)
    assert received == [0, 1, 1]
    assert len(failures) == 1
    assert _stored_state()['status'] == 'playing'


def test_join_can_name_room_in_payload(connect):
    drifter = connect(None)
    room_messages(drifter)
    send_action(drifter, 'START')
    assert room_messages(drifter, 'ERROR') == [{'type': 'ERROR', 'message': 'Not connected to a room'}]

    send_action(drifter, 'JOIN', playerId='p1', name='Dee', roomId='xyz9')
    states = room_messages(drifter, 'STATE_UPDATE')
    assert states[0]['payload']['roomId'] == 'XYZ9'
    assert _stored_state('XYZ9')['players'][0]['name'] == 'Dee'
