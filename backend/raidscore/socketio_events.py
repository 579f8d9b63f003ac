from flask_socketio import join_room, leave_room, emit
from raidscore import socketio
from raidscore.models import Match
from raidscore.store import materialize
from flask import current_app, request
from typing import Dict, Set
import time

# Rooms each socket joined, so disconnects can be logged per match
_sid_rooms: Dict[str, Set[int]] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore


def _match_id(data):
    try:
        return int((data or {}).get('match_id'))
    except (TypeError, ValueError):
        return None


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    joined = _sid_rooms.pop(_get_sid(), None)
    if joined:
        current_app.logger.info(f"[ws] sid left matches={sorted(joined)} reason={reason}")


def handle_join_match(data):
    match_id = _match_id(data)
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return
    room = f"match:{match_id}"
    join_room(room)
    _sid_rooms.setdefault(_get_sid(), set()).add(match_id)
    emit('joined', {'room': room})


def handle_leave_match(data):
    match_id = _match_id(data)
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return
    room = f"match:{match_id}"
    leave_room(room)
    _sid_rooms.get(_get_sid(), set()).discard(match_id)
    emit('left', {'room': room})


def handle_fetch_state(data):
    """Full reconstruction for a spectator that just got a state_update."""
    match_id = _match_id(data)
    match = Match.query.filter_by(id=match_id).first() if match_id is not None else None
    if not match:
        emit('error', {'message': 'Match not found'})
        return
    state = materialize(match, now=time.time())
    body = state.to_dict(match.settings(current_app.config))
    body['match'] = match.to_dict(include_players=False)
    emit('match_state', body)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_match': handle_join_match,
        'leave_match': handle_leave_match,
        'fetch_state': handle_fetch_state,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for name, handler in handlers.items():
            socketio.on_event(name, handler, namespace=namespace)
