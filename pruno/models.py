from pruno import db
from pruno.services.uno.state import GameState
import json
import re
import string
import random
import time

ROOM_CODE_RE = re.compile(r'^[A-Z0-9]{1,12}$')


def normalize_room_code(code):
    """Upper-case a room code; returns None when it is not 1-12 alphanumerics."""
    if not isinstance(code, str):
        return None
    code = code.strip().upper()
    return code if ROOM_CODE_RE.match(code) else None


def generate_room_code(length=6):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Room.query.filter_by(room_code=code).first():
            return code


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(12), unique=True, index=True, nullable=False)
    # JSON-encoded GameState, draw pile included
    state = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.Float, default=time.time)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time)

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.room_code:
            self.room_code = generate_room_code()
        if not self.state:
            self.save_state(GameState(room_id=self.room_code))

    def load_state(self) -> GameState:
        state = GameState.from_dict(json.loads(self.state))
        if not state.room_id:
            state.room_id = self.room_code
        return state

    def save_state(self, game_state: GameState) -> None:
        self.state = json.dumps(game_state.to_dict())

    def to_dict(self):
        game_state = self.load_state()
        return {
            'room_code': self.room_code,
            'status': game_state.status,
            'player_count': len(game_state.players),
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
