from test_api import SCORER, create_match, post


def _connected(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    # Flush any initial events
    sio_client.get_received('/ws')
    return sio_client


def test_socket_connect_and_join(sio_client):
    sio = _connected(sio_client)
    sio.emit('join_match', {'match_id': 1}, namespace='/ws')
    received = sio.get_received('/ws')
    assert any(pkt['name'] == 'joined' and pkt['args'][0]['room'] == 'match:1' for pkt in received)


def test_join_requires_match_id(sio_client):
    sio = _connected(sio_client)
    sio.emit('join_match', {}, namespace='/ws')
    received = sio.get_received('/ws')
    assert any(pkt['name'] == 'error' for pkt in received)


def test_state_update_pushed_to_room(sio_client, client):
    match = create_match(client)
    mid = match['id']
    sio = _connected(sio_client)
    sio.emit('join_match', {'match_id': mid}, namespace='/ws')
    sio.get_received('/ws')

    post(client, mid, 'start')
    post(client, mid, 'technical', side='A')
    received = sio.get_received('/ws')
    updates = [pkt for pkt in received if pkt['name'] == 'state_update']
    assert updates
    # Payload only says which match changed
    assert all(pkt['args'][0] == {'match_id': mid} for pkt in updates)


def test_left_room_gets_no_updates(sio_client, client):
    match = create_match(client)
    mid = match['id']
    sio = _connected(sio_client)
    sio.emit('join_match', {'match_id': mid}, namespace='/ws')
    sio.emit('leave_match', {'match_id': mid}, namespace='/ws')
    sio.get_received('/ws')

    post(client, mid, 'start')
    assert not any(pkt['name'] == 'state_update' for pkt in sio.get_received('/ws'))


def test_fetch_state_returns_reconstruction(sio_client, client):
    match = create_match(client)
    mid = match['id']
    post(client, mid, 'start')
    post(client, mid, 'technical', side='B', points=2, scorer_id=SCORER)

    sio = _connected(sio_client)
    sio.emit('fetch_state', {'match_id': mid}, namespace='/ws')
    states = [pkt for pkt in sio.get_received('/ws') if pkt['name'] == 'match_state']
    assert states
    body = states[0]['args'][0]
    assert body['scores'] == {'A': 0, 'B': 2}
    assert body['match']['id'] == mid


def test_ping_pong(sio_client):
    sio = _connected(sio_client)
    sio.emit('ping', {'n': 1}, namespace='/ws')
    assert any(pkt['name'] == 'pong' for pkt in sio.get_received('/ws'))
