def _events(sio_client, name):
    return [pkt['args'][0] for pkt in sio_client.get_received() if pkt['name'] == name]


def _drain(*clients):
    for c in clients:
        c.get_received()


def _create(sio_client, name='A'):
    ack = sio_client.emit('createRoom', {'name': name}, callback=True)
    assert ack['ok'] is True
    return ack['roomId']


def test_socket_connect_and_create_room(make_sio_client):
    host = make_sio_client()
    assert host.is_connected()

    ack = host.emit('createRoom', {'name': 'Alice'}, callback=True)
    assert ack['ok'] is True
    assert ack['isHost'] is True
    assert len(ack['roomId']) == 5

    lobby = _events(host, 'lobbyUpdate')[-1]
    assert lobby['roomId'] == ack['roomId']
    assert [p['name'] for p in lobby['players']] == ['Alice']
    assert lobby['hostSocketId'] == lobby['players'][0]['socketId']


def test_join_unknown_room_acks_failure(make_sio_client):
    guest = make_sio_client()
    ack = guest.emit('joinRoom', {'roomId': 'ZZZZZ', 'name': 'Bob'}, callback=True)
    assert ack == {'ok': False, 'error': 'Room not found', 'code': 'RoomNotFound'}
    assert guest.get_received() == []


def test_malformed_payloads_never_crash(make_sio_client):
    sio_client = make_sio_client()
    assert sio_client.emit('joinRoom', callback=True)['code'] == 'RoomNotFound'
    assert sio_client.emit('startGame', 'garbage', callback=True)['code'] == 'RoomNotFound'
    assert sio_client.emit('submitAnswer', ['x'], callback=True)['code'] == 'RoomNotFound'
    assert sio_client.emit('revealAnswer', {'roomId': 42}, callback=True)['ok'] is False
    # Still usable afterwards
    assert _create(sio_client)


def test_guest_cannot_drive_the_game(make_sio_client):
    host, guest = make_sio_client(), make_sio_client()
    code = _create(host)
    guest.emit('joinRoom', {'roomId': code, 'name': 'B'}, callback=True)
    _drain(host, guest)

    for event in ('startGame', 'revealAnswer', 'nextQuestion', 'endGame'):
        ack = guest.emit(event, {'roomId': code}, callback=True)
        assert ack['ok'] is False
        assert ack['code'] == 'NotAuthorized'
    assert host.get_received() == []


def test_full_game_over_socketio(flask_app, make_sio_client):
    host, guest = make_sio_client(), make_sio_client()
    code = _create(host, 'A')
    ack = guest.emit('joinRoom', {'roomId': code.lower(), 'name': 'B'}, callback=True)
    assert ack == {'ok': True, 'roomId': code, 'isHost': False}
    lobby = _events(host, 'lobbyUpdate')[-1]
    assert [p['name'] for p in lobby['players']] == ['A', 'B']
    _drain(guest)

    assert host.emit('startGame', {'roomId': code, 'numQuestions': 2}, callback=True) == {'ok': True}
    received = guest.get_received()
    assert [pkt['name'] for pkt in received] == ['gameStarted', 'question']
    assert received[0]['args'][0] == {'roomId': code, 'total': 2}
    question = received[1]['args'][0]
    assert question['index'] == 1 and question['total'] == 2
    assert 'correctIndex' not in question
    _drain(host)

    room = flask_app.extensions['trivia'].registry.get(code)
    for expected_index in (1, 2):
        correct = room.current_question.correct_index
        assert host.emit('submitAnswer', {'roomId': code, 'selectedIndex': correct}, callback=True) == {'ok': True}
        assert guest.emit('submitAnswer', {'roomId': code, 'selectedIndex': None}, callback=True) == {'ok': True}
        again = guest.emit('submitAnswer', {'roomId': code, 'selectedIndex': correct}, callback=True)
        assert again['code'] == 'AlreadyAnswered'
        progress = _events(guest, 'answersProgress')
        assert progress[-1] == {'answered': 2, 'total': 2}

        assert host.emit('revealAnswer', {'roomId': code}, callback=True) == {'ok': True}
        reveal = _events(guest, 'reveal')[-1]
        assert reveal['index'] == expected_index
        assert reveal['correctIndex'] == correct
        assert [(r['name'], r['score']) for r in reveal['scoreboard']] == [('A', 1000 * expected_index), ('B', 0)]
        assert reveal['scoreboard'][1]['selectedIndex'] is None
        _drain(host)

        assert host.emit('nextQuestion', {'roomId': code}, callback=True) == {'ok': True}

    over = _events(guest, 'gameOver')
    assert over == [{
        'roomId': code,
        'scoreboard': [
            {'socketId': over[0]['scoreboard'][0]['socketId'], 'name': 'A', 'score': 2000},
            {'socketId': over[0]['scoreboard'][1]['socketId'], 'name': 'B', 'score': 0},
        ],
    }]
    assert host.emit('nextQuestion', {'roomId': code}, callback=True)['ok'] is False
    assert host.emit('revealAnswer', {'roomId': code}, callback=True)['ok'] is False
    # endGame stays successful once finished
    assert host.emit('endGame', {'roomId': code}, callback=True) == {'ok': True}
    assert host.emit('endGame', {'roomId': code}, callback=True) == {'ok': True}


def test_host_disconnect_promotes_guest(make_sio_client):
    host, guest = make_sio_client(), make_sio_client()
    code = _create(host)
    guest.emit('joinRoom', {'roomId': code, 'name': 'B'}, callback=True)
    _drain(guest)

    host.disconnect()
    lobby = _events(guest, 'lobbyUpdate')[-1]
    assert [p['name'] for p in lobby['players']] == ['B']
    assert lobby['hostSocketId'] == lobby['players'][0]['socketId']
    assert guest.emit('startGame', {'roomId': code, 'numQuestions': 1}, callback=True) == {'ok': True}


def test_last_disconnect_removes_room(flask_app, make_sio_client):
    host = make_sio_client()
    code = _create(host)
    host.disconnect()
    assert code not in flask_app.extensions['trivia'].registry

    late = make_sio_client()
    ack = late.emit('joinRoom', {'roomId': code, 'name': 'C'}, callback=True)
    assert ack['code'] == 'RoomNotFound'


def test_leave_room_event(make_sio_client):
    host, guest = make_sio_client(), make_sio_client()
    code = _create(host)
    guest.emit('joinRoom', {'roomId': code, 'name': 'B'}, callback=True)
    _drain(host)
    assert guest.emit('leaveRoom', {'roomId': code}, callback=True) == {'ok': True}
    lobby = _events(host, 'lobbyUpdate')[-1]
    assert [p['name'] for p in lobby['players']] == ['A']
    assert guest.emit('leaveRoom', {'roomId': code}, callback=True)['code'] == 'NotInRoom'


def test_unexpected_error_is_acknowledged(flask_app, make_sio_client, monkeypatch):
    sio_client = make_sio_client()
    machine = flask_app.extensions['trivia']

    def broken(*args, **kwargs):
        raise RuntimeError('boom')

    monkeypatch.setattr(machine.registry, 'create_room', broken)
    ack = sio_client.emit('createRoom', {'name': 'A'}, callback=True)
    assert ack == {'ok': False, 'error': 'Internal error', 'code': 'InternalError'}
    assert sio_client.is_connected()
