"""Room session machine.

Owns every state transition of a room::

    lobby -> question -> reveal -> question -> ... -> finished

``finished`` can also be forced by the host with ``end_game``. Each
operation validates authority and state, mutates the room, publishes the
resulting broadcast to every participant and finally returns an ``Ack``
for the caller. Validation, mutation and publishing all happen while
holding the room's lock, so two requests against the same room never
interleave.

Moving a connection between rooms (create, join, leave, disconnect) is
serialized per connection handle as well. The handle lock is always taken
before any room lock and never while a room lock is held.
"""

import logging
import random
import threading
from collections import OrderedDict
from contextlib import contextmanager
from functools import wraps
from typing import Any, Dict, Optional, Protocol

from trivia.errors import (
    AlreadyAnswered,
    InvalidState,
    NotAcceptingAnswers,
    NotAuthorized,
    NotInRoom,
    RoomNotFound,
    TriviaError,
)
from trivia.models import FINISHED, LOBBY, QUESTION, REVEAL, Room
from trivia.questions import QuestionBank, sample_questions
from trivia.registry import RoomRegistry

logger = logging.getLogger(__name__)

CORRECT_ANSWER_POINTS = 1000
DEFAULT_HOST_NAME = 'Host'
DEFAULT_PLAYER_NAME = 'Player'
# How many disconnected handles are remembered to reject requests still in flight
CLOSED_HANDLE_MEMORY = 4096


class Publisher(Protocol):
    def send(self, handle: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class Ack:
    """Direct answer to the participant who made a request."""

    def __init__(self, ok: bool, data: Optional[Dict[str, Any]] = None, error: Optional[TriviaError] = None):
        self.ok = ok
        self.data = data or {}
        self.error = error

    @classmethod
    def success(cls, **data) -> 'Ack':
        return cls(True, data)

    @classmethod
    def failure(cls, error: TriviaError) -> 'Ack':
        return cls(False, error=error)

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def to_dict(self):
        if not self.ok:
            return self.error.to_dict()
        return {'ok': True, **self.data}

    def __repr__(self):
        return f"Ack(ok={self.ok}, data={self.data!r}, code={self.code!r})"


def acknowledged(func):
    """Turn a TriviaError raised by an operation into a failure Ack.

    Anything else is logged and re-raised for the transport layer to deal
    with.
    """
    @wraps(func)
    def wrapper(self, handle, *args, **kwargs):
        try:
            return func(self, handle, *args, **kwargs)
        except TriviaError as err:
            logger.info(f"[rejected] op={func.__name__} sid={handle} code={err.code}")
            return Ack.failure(err)
        except Exception as e:
            logger.error(f"Room operation {func.__name__} failed: {e}", exc_info=True)
            raise

    return wrapper


def clean_name(name, default: str) -> str:
    if name is None:
        return default
    cleaned = str(name).strip()
    return cleaned or default


def coerce_index(value) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class SessionMachine:
    def __init__(self, registry: RoomRegistry, bank: QuestionBank, publisher: Publisher,
                 rng: Optional[random.Random] = None, default_num_questions: int = 10):
        self.registry = registry
        self.bank = bank
        self.publisher = publisher
        self.rng = rng or random.Random()
        self.default_num_questions = default_num_questions
        self._handle_locks: Dict[str, threading.RLock] = {}
        self._closed_handles: 'OrderedDict[str, None]' = OrderedDict()
        self._handles_guard = threading.Lock()

    # ---- helpers ----

    @contextmanager
    def _holding(self, handle):
        """Serialize room membership changes of one connection handle."""
        with self._handles_guard:
            lock = self._handle_locks.setdefault(handle, threading.RLock())
        with lock:
            yield

    def _require_connected(self, handle) -> None:
        with self._handles_guard:
            closed = handle in self._closed_handles
        if closed:
            raise InvalidState('Connection closed')

    def _mark_closed(self, handle) -> None:
        with self._handles_guard:
            self._closed_handles[handle] = None
            self._closed_handles.move_to_end(handle)
            while len(self._closed_handles) > CLOSED_HANDLE_MEMORY:
                self._closed_handles.popitem(last=False)

    def _drop_handle_lock(self, handle) -> None:
        # Requests still waiting on the old lock see the handle as closed
        with self._handles_guard:
            self._handle_locks.pop(handle, None)

    def _broadcast(self, room: Room, event: str, payload: Dict[str, Any]) -> None:
        for handle in list(room.participants):
            self.publisher.send(handle, event, payload)

    def _room(self, code) -> Room:
        room = self.registry.get(code)
        if room is None:
            raise RoomNotFound()
        return room

    @staticmethod
    def _require_open(room: Room) -> None:
        # Emptied between lookup and lock
        if room.closed:
            raise RoomNotFound()

    @staticmethod
    def _require_host(room: Room, handle) -> None:
        if not room.is_host(handle):
            raise NotAuthorized()

    def _lobby_payload(self, room: Room):
        return {
            'roomId': room.code,
            'hostSocketId': room.host,
            'players': [p.to_dict() for p in room.participants.values()],
        }

    def _question_payload(self, room: Room):
        payload = {
            'roomId': room.code,
            'index': room.current_index + 1,
            'total': len(room.questions),
        }
        payload.update(room.current_question.to_public_dict())
        return payload

    def _final_scoreboard(self, room: Room):
        return [p.to_dict() for p in room.ranked_participants()]

    def _finish(self, room: Room) -> None:
        room.state = FINISHED
        self._broadcast(room, 'gameOver', {'roomId': room.code, 'scoreboard': self._final_scoreboard(room)})
        logger.info(f"[finish] room={room.code} players={len(room.participants)}")

    def _leave(self, room: Optional[Room], handle) -> None:
        """Remove ``handle`` from ``room`` if it is still there. Caller holds the handle lock."""
        if room is None:
            return
        with room.lock:
            if room.closed or handle not in room.participants:
                return
            self._remove_participant(room, handle)

    def _remove_participant(self, room: Room, handle) -> None:
        was_host = room.is_host(handle)
        room.remove_participant(handle)
        if not room.participants:
            room.closed = True
            room.host = None
            self.registry.remove(room.code)
            return
        if was_host:
            logger.info(f"[host-promoted] room={room.code} host={room.host}")
        self._broadcast(room, 'lobbyUpdate', self._lobby_payload(room))

    # ---- operations ----

    @acknowledged
    def create_room(self, handle, name=None) -> Ack:
        with self._holding(handle):
            self._require_connected(handle)
            previous = self.registry.find_by_participant(handle)
            room = self.registry.create_room()
            with room.lock:
                room.add_participant(handle, clean_name(name, DEFAULT_HOST_NAME))
                room.host = handle
                self._broadcast(room, 'lobbyUpdate', self._lobby_payload(room))
            # Old room is left only once the new one holds the handle
            self._leave(previous, handle)
        return Ack.success(roomId=room.code, isHost=True)

    @acknowledged
    def join_room(self, handle, code, name=None) -> Ack:
        room = self._room(code)
        with self._holding(handle):
            self._require_connected(handle)
            previous = self.registry.find_by_participant(handle)
            with room.lock:
                self._require_open(room)
                existing = room.participants.get(handle)
                if existing is not None:
                    # Re-join keeps score and answer state
                    existing.name = clean_name(name, DEFAULT_PLAYER_NAME)
                else:
                    room.add_participant(handle, clean_name(name, DEFAULT_PLAYER_NAME))
                logger.info(f"[join] room={room.code} sid={handle} players={len(room.participants)}")
                self._broadcast(room, 'lobbyUpdate', self._lobby_payload(room))
                ack = Ack.success(roomId=room.code, isHost=room.is_host(handle))
            if previous is not room:
                self._leave(previous, handle)
        return ack

    @acknowledged
    def leave_room(self, handle, code) -> Ack:
        room = self._room(code)
        with self._holding(handle):
            with room.lock:
                self._require_open(room)
                if handle not in room.participants:
                    raise NotInRoom()
                self._remove_participant(room, handle)
        return Ack.success()

    @acknowledged
    def start_game(self, handle, code, num_questions=None) -> Ack:
        room = self._room(code)
        with room.lock:
            self._require_open(room)
            self._require_host(room, handle)
            if room.state != LOBBY:
                raise InvalidState('Game has already started')
            if not len(self.bank):
                raise InvalidState('Question bank is empty')
            count = coerce_index(num_questions)
            if count is None:
                count = self.default_num_questions
            room.questions = sample_questions(self.bank.all_questions(), count, self.rng)
            room.current_index = 0
            room.reset_answers()
            room.state = QUESTION
            logger.info(f"[start] room={room.code} questions={len(room.questions)}")
            self._broadcast(room, 'gameStarted', {'roomId': room.code, 'total': len(room.questions)})
            self._broadcast(room, 'question', self._question_payload(room))
        return Ack.success()

    @acknowledged
    def submit_answer(self, handle, code, selected_index=None) -> Ack:
        room = self._room(code)
        with room.lock:
            self._require_open(room)
            if room.state != QUESTION:
                raise NotAcceptingAnswers()
            participant = room.participants.get(handle)
            if participant is None:
                raise NotInRoom()
            if participant.has_answered:
                raise AlreadyAnswered()
            participant.has_answered = True
            participant.selected_index = coerce_index(selected_index)
            self._broadcast(room, 'answersProgress', {
                'answered': room.answered_count(),
                'total': len(room.participants),
            })
        return Ack.success()

    @acknowledged
    def reveal_answer(self, handle, code) -> Ack:
        room = self._room(code)
        with room.lock:
            self._require_open(room)
            self._require_host(room, handle)
            if room.state != QUESTION:
                raise InvalidState()
            question = room.current_question
            for participant in room.participants.values():
                if participant.selected_index == question.correct_index:
                    participant.score += CORRECT_ANSWER_POINTS
            room.state = REVEAL
            scoreboard = [
                {**p.to_dict(), 'selectedIndex': p.selected_index}
                for p in room.ranked_participants()
            ]
            self._broadcast(room, 'reveal', {
                'roomId': room.code,
                'index': room.current_index + 1,
                'total': len(room.questions),
                'correctIndex': question.correct_index,
                'scoreboard': scoreboard,
            })
        return Ack.success()

    @acknowledged
    def next_question(self, handle, code) -> Ack:
        room = self._room(code)
        with room.lock:
            self._require_open(room)
            self._require_host(room, handle)
            if room.state != REVEAL:
                raise InvalidState()
            if room.current_index + 1 >= len(room.questions):
                self._finish(room)
                return Ack.success()
            room.current_index += 1
            room.reset_answers()
            room.state = QUESTION
            logger.info(f"[next] room={room.code} index={room.current_index + 1}/{len(room.questions)}")
            self._broadcast(room, 'question', self._question_payload(room))
        return Ack.success()

    @acknowledged
    def end_game(self, handle, code) -> Ack:
        room = self._room(code)
        with room.lock:
            self._require_open(room)
            self._require_host(room, handle)
            self._finish(room)
        return Ack.success()

    def disconnect(self, handle) -> None:
        """Drop ``handle`` from its room. A no-op for handles in no room."""
        with self._holding(handle):
            self._mark_closed(handle)
            self._leave(self.registry.find_by_participant(handle), handle)
        self._drop_handle_lock(handle)

    def room_snapshot(self, code) -> Optional[Dict[str, Any]]:
        room = self.registry.get(code)
        if room is None:
            return None
        with room.lock:
            return room.to_dict()
