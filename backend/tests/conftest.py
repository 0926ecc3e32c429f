import os
import random
import sys
import pytest

# Ensure the backend root (containing the `trivia` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from trivia import create_app, socketio
from trivia.models import Question
from trivia.questions import QuestionBank
from trivia.registry import RoomRegistry
from trivia.session import SessionMachine


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    QUESTIONS_PATH = os.path.join(BACKEND_ROOT, 'trivia', 'data', 'questions.json')
    DEFAULT_NUM_QUESTIONS = 10
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/'
    STATIC_DIR = None


QUESTIONS = [
    Question(prompt='2 + 2?', choices=('3', '4', '5'), correct_index=1, id='t1'),
    Question(prompt='Capital of France?', choices=('Paris', 'Rome', 'Madrid'), correct_index=0, id='t2'),
    Question(prompt='Largest planet?', choices=('Mars', 'Earth', 'Jupiter'), correct_index=2, id='t3'),
]


class RecordingPublisher:
    """Collects everything the session machine sends, in order."""

    def __init__(self):
        self.sent = []

    def send(self, handle, event, payload):
        self.sent.append((handle, event, payload))

    def events(self, name, handle=None):
        return [p for h, e, p in self.sent if e == name and (handle is None or h == handle)]

    def last(self, name, handle=None):
        found = self.events(name, handle)
        return found[-1] if found else None

    def clear(self):
        self.sent.clear()


@pytest.fixture()
def config_class():
    return TestConfig


@pytest.fixture()
def bank():
    return QuestionBank(QUESTIONS)


@pytest.fixture()
def registry():
    reg = RoomRegistry(rng=random.Random(7))
    yield reg
    reg.clear()


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def machine(registry, bank, publisher):
    return SessionMachine(registry, bank, publisher, rng=random.Random(42), default_num_questions=10)


@pytest.fixture()
def correct_answer(machine):
    """Correct choice index of the room's current question."""
    def _correct(code):
        room = machine.registry.get(code)
        return room.current_question.correct_index
    return _correct


@pytest.fixture()
def flask_app(bank, config_class):
    application = create_app(config_class, question_bank=bank, rng=random.Random(42))
    yield application
    application.extensions['trivia'].registry.clear()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_sio_client(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass
