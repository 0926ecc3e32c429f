from flask import current_app, request
from typing import Any, Dict

from trivia import socketio


class SocketIOPublisher:
    """Delivers room broadcasts to each participant's own Socket.IO sid."""

    def __init__(self, sio, namespace: str = '/'):
        self.sio = sio
        self.namespace = namespace

    def send(self, handle: str, event: str, payload: Dict[str, Any]) -> None:
        self.sio.emit(event, payload, to=handle, namespace=self.namespace)


def _machine():
    return current_app.extensions['trivia']


def _get_sid() -> str:
    return request.sid  # type: ignore


def _payload(data) -> Dict[str, Any]:
    return data if isinstance(data, dict) else {}


def _reply(op, *args) -> Dict[str, Any]:
    try:
        return op(_get_sid(), *args).to_dict()
    except Exception as exc:
        current_app.logger.error(f"[socket-error] op={op.__name__} sid={_get_sid()}: {exc}", exc_info=True)
        return {'ok': False, 'error': 'Internal error', 'code': 'InternalError'}


def handle_connect(auth=None):
    current_app.logger.info(f"[connect] sid={_get_sid()}")


def handle_disconnect(reason=None):
    sid = _get_sid()
    try:
        _machine().disconnect(sid)
    except Exception as exc:
        current_app.logger.error(f"[socket-error] op=disconnect sid={sid}: {exc}", exc_info=True)
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason}")


def handle_create_room(data=None):
    data = _payload(data)
    return _reply(_machine().create_room, data.get('name'))


def handle_join_room(data=None):
    data = _payload(data)
    return _reply(_machine().join_room, data.get('roomId'), data.get('name'))


def handle_leave_room(data=None):
    data = _payload(data)
    return _reply(_machine().leave_room, data.get('roomId'))


def handle_start_game(data=None):
    data = _payload(data)
    return _reply(_machine().start_game, data.get('roomId'), data.get('numQuestions'))


def handle_submit_answer(data=None):
    data = _payload(data)
    return _reply(_machine().submit_answer, data.get('roomId'), data.get('selectedIndex'))


def handle_reveal_answer(data=None):
    data = _payload(data)
    return _reply(_machine().reveal_answer, data.get('roomId'))


def handle_next_question(data=None):
    data = _payload(data)
    return _reply(_machine().next_question, data.get('roomId'))


def handle_end_game(data=None):
    data = _payload(data)
    return _reply(_machine().end_game, data.get('roomId'))


EVENT_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'createRoom': handle_create_room,
    'joinRoom': handle_join_room,
    'leaveRoom': handle_leave_room,
    'startGame': handle_start_game,
    'submitAnswer': handle_submit_answer,
    'revealAnswer': handle_reveal_answer,
    'nextQuestion': handle_next_question,
    'endGame': handle_end_game,
}


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    for event, handler in EVENT_HANDLERS.items():
        socketio.on_event(event, handler, namespace=namespace)
