from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
import random
from trivia.config import Config

socketio = SocketIO(async_mode=None)


def _allowed_origins(raw):
    if not raw or raw.strip() == '*':
        return '*'
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


def create_app(config_class=Config, question_bank=None, rng=None):
    flask_app = Flask(__name__, static_folder=None)
    flask_app.config.from_object(config_class)
    allowed_origins = _allowed_origins(flask_app.config.get('CORS_ORIGINS'))
    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/')

    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from trivia.questions import QuestionBank
    from trivia.registry import RoomRegistry
    from trivia.session import SessionMachine
    from trivia.socketio_events import SocketIOPublisher, register_socketio_handlers

    if question_bank is None:
        question_bank = QuestionBank.from_file(flask_app.config['QUESTIONS_PATH'])
    rng = rng or random.Random()
    # One registry per app; tests get a fresh one with every app they build
    registry = RoomRegistry(rng=rng)
    flask_app.extensions['trivia'] = SessionMachine(
        registry,
        question_bank,
        SocketIOPublisher(socketio, namespace),
        rng=rng,
        default_num_questions=int(flask_app.config.get('DEFAULT_NUM_QUESTIONS', 10)),
    )
    flask_app.logger.info(f"[startup] questions={len(question_bank)} namespace={namespace}")

    from trivia.main import main
    flask_app.register_blueprint(main)

    register_socketio_handlers(namespace)

    @click.command('questions-check')
    @click.option('--path', default=None, help='Question bank file; defaults to QUESTIONS_PATH.')
    def questions_check_command(path):
        """Validates the question bank and prints its size."""
        from trivia.errors import QuestionBankError
        target = path or flask_app.config['QUESTIONS_PATH']
        try:
            bank = QuestionBank.from_file(target)
        except QuestionBankError as exc:
            raise click.ClickException(str(exc))
        if not len(bank):
            raise click.ClickException(f'{target} contains no questions')
        click.echo(f'{target}: {len(bank)} questions OK')

    @click.command('rooms')
    def rooms_command():
        """Lists live rooms with their state and player count."""
        machine = flask_app.extensions['trivia']
        codes = machine.registry.codes()
        if not codes:
            click.echo('No live rooms.')
            return
        for code in codes:
            snapshot = machine.room_snapshot(code)
            if snapshot is None:
                continue
            click.echo(f"{code}  {snapshot['state']:<9} players={len(snapshot['players'])} host={snapshot['hostSocketId']}")

    flask_app.cli.add_command(questions_check_command)
    flask_app.cli.add_command(rooms_command)

    return flask_app
