import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Question bank loaded once at startup
    QUESTIONS_PATH = os.environ.get('QUESTIONS_PATH') or os.path.join(BASE_DIR, 'data', 'questions.json')
    # Used when startGame omits numQuestions
    DEFAULT_NUM_QUESTIONS = int(os.environ.get('DEFAULT_NUM_QUESTIONS', '10'))
    # Comma separated; "*" allows any origin
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    # Optional folder holding the browser client (index.html and assets)
    STATIC_DIR = os.environ.get('STATIC_DIR') or os.path.join(os.path.dirname(BASE_DIR), 'public')
