"""Question bank loading and per-session sampling."""

import json
import logging
import random
from typing import List, Sequence

from trivia.errors import QuestionBankError
from trivia.models import Question

logger = logging.getLogger(__name__)


def parse_question(raw, position: int) -> Question:
    if not isinstance(raw, dict):
        raise QuestionBankError(f"Question #{position} is not an object")
    prompt = raw.get('prompt')
    choices = raw.get('choices')
    correct_index = raw.get('correctIndex')
    if not isinstance(prompt, str) or not prompt.strip():
        raise QuestionBankError(f"Question #{position} has no prompt")
    if not isinstance(choices, list) or len(choices) < 2 or not all(isinstance(c, str) for c in choices):
        raise QuestionBankError(f"Question #{position} needs at least two string choices")
    if isinstance(correct_index, bool) or not isinstance(correct_index, int) or not 0 <= correct_index < len(choices):
        raise QuestionBankError(f"Question #{position} has an invalid correctIndex")
    qid = raw.get('id')
    return Question(
        prompt=prompt,
        choices=tuple(choices),
        correct_index=correct_index,
        id=str(qid) if qid is not None else None,
    )


def load_questions(path: str) -> List[Question]:
    try:
        with open(path, encoding='utf-8') as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise QuestionBankError(f"Cannot read question bank {path}: {exc}") from exc
    if not isinstance(data, list):
        raise QuestionBankError(f"Question bank {path} must be a JSON list")
    return [parse_question(raw, i) for i, raw in enumerate(data, start=1)]


class QuestionBank:
    """Read-only ordered collection of questions, loaded once at startup."""

    def __init__(self, questions: Sequence[Question]):
        self._questions = tuple(questions)

    @classmethod
    def from_file(cls, path: str) -> 'QuestionBank':
        bank = cls(load_questions(path))
        logger.info(f"[questions-loaded] path={path} count={len(bank)}")
        return bank

    def all_questions(self) -> Sequence[Question]:
        return self._questions

    def __len__(self) -> int:
        return len(self._questions)


def sample_questions(questions: Sequence[Question], count: int, rng=None) -> List[Question]:
    """Shuffle a copy of the whole bank, then keep a prefix of ``count`` items.

    ``count`` is clamped to ``[1, len(questions)]``. ``random.shuffle`` is a
    Fisher-Yates shuffle, so every ordering is equally likely and no question
    repeats within a session.
    """
    rng = rng or random
    pool = list(questions)
    rng.shuffle(pool)
    return pool[:max(1, min(len(pool), count))]
