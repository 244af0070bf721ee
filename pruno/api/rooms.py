from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from pruno import db
from pruno.models import Room, normalize_room_code


rooms = Blueprint('rooms', __name__)


@rooms.route('/create', methods=['POST'])
def create_room():
    """
    Reserves a fresh room code with an empty waiting room behind it.
    """
    new_room = Room()
    try:
        db.session.add(new_room)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[room-create-failed] error={exc}")
        return jsonify({'error': 'Could not create room'}), 500
    current_app.logger.info(f"[room-create] room={new_room.room_code}")
    return jsonify({
        'message': 'New room created!',
        'room_code': new_room.room_code
    }), 201


@rooms.route('/<string:room_code>/state', methods=['GET'])
def get_room_state(room_code):
    """
    Returns the same sanitized snapshot the room broadcasts; the draw pile stays hidden.
    """
    code = normalize_room_code(room_code)
    if not code:
        return jsonify({'error': 'Invalid room code'}), 400
    room = Room.query.filter_by(room_code=code).first_or_404()
    return jsonify(room.load_state().sanitized())


@rooms.route('/<string:room_code>', methods=['GET'])
def get_room(room_code):
    code = normalize_room_code(room_code)
    if not code:
        return jsonify({'error': 'Invalid room code'}), 400
    room = Room.query.filter_by(room_code=code).first_or_404()
    return jsonify(room.to_dict())
