import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


LOBBY = 'lobby'
QUESTION = 'question'
REVEAL = 'reveal'
FINISHED = 'finished'


@dataclass(frozen=True)
class Question:
    prompt: str
    choices: Tuple[str, ...]
    correct_index: int
    id: Optional[str] = None

    def to_public_dict(self):
        """Prompt and choices only; the correct index stays on the server."""
        return {
            'prompt': self.prompt,
            'choices': list(self.choices),
        }


class Participant:
    def __init__(self, handle: str, name: str):
        self.handle = handle
        self.name = name
        self.score = 0
        self.has_answered = False
        self.selected_index: Optional[int] = None

    def reset_answer(self) -> None:
        self.has_answered = False
        self.selected_index = None

    def to_dict(self):
        return {
            'socketId': self.handle,
            'name': self.name,
            'score': self.score,
        }


@dataclass
class Room:
    code: str
    state: str = LOBBY
    host: Optional[str] = None
    # Insertion ordered; host succession relies on it
    participants: Dict[str, Participant] = field(default_factory=dict)
    questions: List[Question] = field(default_factory=list)
    current_index: int = 0
    # Set once the last participant leaves; the room is then unusable
    closed: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def current_question(self) -> Optional[Question]:
        if self.state in (QUESTION, REVEAL) and 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def is_host(self, handle) -> bool:
        return self.host is not None and self.host == handle

    def add_participant(self, handle: str, name: str) -> Participant:
        participant = Participant(handle, name)
        self.participants[handle] = participant
        return participant

    def remove_participant(self, handle: str) -> Optional[Participant]:
        """Remove a participant, promoting the earliest-joined remaining one if the host left."""
        participant = self.participants.pop(handle, None)
        if participant is None:
            return None
        if self.host == handle:
            self.host = next(iter(self.participants), None)
        return participant

    def reset_answers(self) -> None:
        for participant in self.participants.values():
            participant.reset_answer()

    def answered_count(self) -> int:
        return sum(1 for p in self.participants.values() if p.has_answered)

    def ranked_participants(self) -> List[Participant]:
        # sorted() is stable, ties keep roster order
        return sorted(self.participants.values(), key=lambda p: p.score, reverse=True)

    def to_dict(self):
        return {
            'roomId': self.code,
            'state': self.state,
            'hostSocketId': self.host,
            'players': [p.to_dict() for p in self.participants.values()],
            'index': self.current_index + 1 if self.questions else 0,
            'total': len(self.questions),
        }
