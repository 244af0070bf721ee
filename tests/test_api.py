import json

from pruno import db
from pruno.models import Room, generate_room_code, normalize_room_code
from pruno.services.uno.state import GameState, Player, Card


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_create_room(client):
    res = client.post('/api/rooms/create')
    assert res.status_code == 201
    code = res.get_json()['room_code']
    assert len(code) == 6
    assert code == code.upper() and code.isalnum()
    assert Room.query.filter_by(room_code=code).first() is not None


def test_room_state_is_sanitized(client):
    room = Room(room_code='ZED42')
    room.save_state(GameState(
        room_id='ZED42',
        players=[Player(id='p1', name='Alice')],
        draw_pile=[Card('c1', 'red', '1'), Card('c2', 'red', '2')],
    ))
    db.session.add(room)
    db.session.commit()

    res = client.get('/api/rooms/zed42/state')
    assert res.status_code == 200
    state = res.get_json()
    assert state['roomId'] == 'ZED42'
    assert state['status'] == 'waiting'
    assert state['deckCount'] == 2
    assert 'drawPile' not in state
    assert json.loads(Room.query.filter_by(room_code='ZED42').first().state)['drawPile']


def test_room_summary(client):
    code = client.post('/api/rooms/create').get_json()['room_code']
    res = client.get(f'/api/rooms/{code}')
    assert res.status_code == 200
    summary = res.get_json()
    assert summary['room_code'] == code
    assert summary['player_count'] == 0
    assert summary['status'] == 'waiting'


def test_unknown_and_invalid_rooms(client):
    assert client.get('/api/rooms/NOPE99/state').status_code == 404
    assert client.get('/api/rooms/bad-code!/state').status_code == 400


def test_normalize_room_code():
    assert normalize_room_code(' abc123 ') == 'ABC123'
    assert normalize_room_code('ab-12') is None
    assert normalize_room_code('') is None
    assert normalize_room_code(None) is None
    assert normalize_room_code('A' * 13) is None


def test_generate_room_code_skips_taken_codes(flask_app, monkeypatch):
    db.session.add(Room(room_code='AAAA'))
    db.session.commit()
    picks = iter([list('AAAA'), list('BBBB')])
    monkeypatch.setattr('pruno.models.random.choices', lambda population, k: next(picks))
    assert generate_room_code(length=4) == 'BBBB'


def test_db_reset_command(flask_app):
    db.session.add(Room(room_code='OLD1'))
    db.session.commit()
    result = flask_app.test_cli_runner().invoke(args=['db-reset'])
    assert 'Database has been reset' in result.output
    db.session.remove()
    assert Room.query.count() == 0
