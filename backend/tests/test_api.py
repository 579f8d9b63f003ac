SCORER = 42


def create_match(client, **extra):
    body = {
        'name': 'Final',
        'scorer_id': SCORER,
        'team_a': {'name': 'Red Raiders', 'players': [{'name': f'Red {i}', 'jersey_number': i} for i in range(1, 8)]},
        'team_b': {'name': 'Blue Bulls', 'players': [{'name': f'Blue {i}', 'jersey_number': i} for i in range(1, 8)]},
    }
    body.update(extra)
    res = client.post('/api/matches', json=body)
    assert res.status_code == 201
    return res.get_json()


def post(client, match_id, path, **body):
    body.setdefault('scorer_id', SCORER)
    return client.post(f'/api/matches/{match_id}/{path}', json=body)


def started_match(client, **extra):
    match = create_match(client, **extra)
    res = post(client, match['id'], 'start')
    assert res.status_code == 200
    return match


def test_create_match(client):
    match = create_match(client)
    assert match['status'] == 'upcoming'
    assert match['team_a']['name'] == 'Red Raiders'
    assert len(match['players_a']) == 7
    assert match['settings']['half_duration'] == 1200


def test_create_match_requires_two_teams(client):
    res = client.post('/api/matches', json={'team_a': {'name': 'Solo'}})
    assert res.status_code == 400


def test_create_match_rejects_bad_settings(client):
    res = client.post('/api/matches', json={
        'team_a': {'name': 'X'}, 'team_b': {'name': 'Y'}, 'settings': {'raid_duration': 'soon'},
    })
    assert res.status_code == 400


def test_start_match_opens_first_half(client):
    match = create_match(client)
    res = post(client, match['id'], 'start')
    body = res.get_json()
    assert body['state'] == 'IDLE'
    assert body['live']['half_started'] is True
    assert body['match']['status'] == 'live'


def test_only_the_assigned_scorer_can_act(client):
    match = create_match(client)
    res = post(client, match['id'], 'start', scorer_id=7)
    assert res.status_code == 403
    res = client.get(f"/api/matches/{match['id']}/session?scorer_id=7")
    assert res.status_code == 403


def test_full_raid_updates_spectator_state(client):
    match = started_match(client)
    mid = match['id']
    raider = match['players_a'][0]['id']
    defender = match['players_b'][0]['id']

    res = post(client, mid, 'raid/start', raider_id=raider)
    assert res.status_code == 200
    assert res.get_json()['state'] == 'RAIDING'

    spectator = client.get(f'/api/matches/{mid}/state').get_json()
    assert spectator['raid_in_progress'] is True
    assert spectator['active_raid']['raider_id'] == raider

    res = post(client, mid, 'raid/declare', outcome='success', touch_points=1, bonus_point=True, defenders_out=[defender])
    assert res.status_code == 200
    body = res.get_json()
    assert body['state'] == 'CONFIRM'
    assert body['pending_result']['points'] == 2

    res = post(client, mid, 'raid/confirm')
    assert res.status_code == 200
    assert res.get_json()['event']['event_type'] == 'raid'

    spectator = client.get(f'/api/matches/{mid}/state').get_json()
    assert spectator['scores'] == {'A': 2, 'B': 0}
    assert spectator['active_side'] == 'B'
    assert spectator['out_player_ids'] == [defender]
    assert spectator['raid_in_progress'] is False
    assert spectator['timeline'][-1]['label'] == '1 touch + bonus'
    assert spectator['match']['team_a_score'] == 2
    assert spectator['match']['out_player_ids'] == [defender]


def test_out_player_cannot_raid(client):
    match = started_match(client)
    mid = match['id']
    defender = match['players_b'][0]['id']
    post(client, mid, 'raid/start', raider_id=match['players_a'][0]['id'])
    post(client, mid, 'raid/declare', outcome='success', touch_points=1, defenders_out=[defender])
    post(client, mid, 'raid/confirm')

    res = post(client, mid, 'raid/start', raider_id=defender)
    assert res.status_code == 400
    assert 'already out' in res.get_json()['error']


def test_unknown_player_is_not_found(client):
    match = started_match(client)
    res = post(client, match['id'], 'raid/start', raider_id=9999)
    assert res.status_code == 404
    assert res.get_json()['kind'] == 'StaleReference'


def test_out_of_order_action_is_rejected(client):
    match = started_match(client)
    res = post(client, match['id'], 'raid/confirm')
    assert res.status_code == 400
    assert res.get_json()['kind'] == 'IllegalTransition'


def test_fail_without_tackler_is_rejected(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'raid/start', raider_id=match['players_a'][0]['id'])
    res = post(client, mid, 'raid/declare', outcome='fail')
    assert res.status_code == 400
    assert client.get(f'/api/matches/{mid}/session?scorer_id={SCORER}').get_json()['state'] == 'RAIDING'


def test_undo_is_local_until_next_forward_action(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'technical', side='B', points=1)

    res = post(client, mid, 'undo')
    assert res.status_code == 200
    body = res.get_json()
    assert body['live']['scores'] == {'A': 0, 'B': 0}
    assert body['can_redo'] is True
    # Spectators still see the technical point
    assert client.get(f'/api/matches/{mid}/state').get_json()['scores'] == {'A': 0, 'B': 1}

    res = post(client, mid, 'redo')
    assert res.get_json()['live']['scores'] == {'A': 0, 'B': 1}

    post(client, mid, 'undo')
    res = post(client, mid, 'timeout', side='A')
    assert res.status_code == 200
    spectator = client.get(f'/api/matches/{mid}/state').get_json()
    assert spectator['scores'] == {'A': 0, 'B': 0}
    assert spectator['timeouts_used'] == {'A': 1, 'B': 0}
    types = [e['event_type'] for e in client.get(f'/api/matches/{mid}/events').get_json()]
    assert types == ['half_start', 'timeout']


def test_redo_conflict_after_another_write(client):
    from raidscore import sessions

    match = started_match(client)
    mid = match['id']
    post(client, mid, 'technical', side='A')
    post(client, mid, 'undo')
    # A second scorer device appends; drop the first device's session to simulate it.
    stale = sessions._sessions.pop(mid)
    post(client, mid, 'technical', side='B')
    sessions._sessions[mid] = stale

    res = post(client, mid, 'redo')
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'RedoConflict'


def test_cancelled_raid_scores_nothing(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'raid/start', raider_id=match['players_a'][0]['id'])
    res = post(client, mid, 'raid/cancel')
    assert res.get_json()['state'] == 'IDLE'
    res = post(client, mid, 'raid/start', raider_id=match['players_a'][1]['id'])
    assert res.status_code == 200
    spectator = client.get(f'/api/matches/{mid}/state').get_json()
    assert spectator['active_raid']['raider_id'] == match['players_a'][1]['id']
    assert spectator['scores'] == {'A': 0, 'B': 0}


def test_next_half(client):
    match = started_match(client)
    mid = match['id']
    res = post(client, mid, 'halves/next')
    assert res.get_json()['live']['current_half'] == 2
    res = post(client, mid, 'halves/next')
    assert res.status_code == 400


def test_completed_match_rejects_raids(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'technical', side='A', points=2)
    res = post(client, mid, 'end')
    assert res.status_code == 200
    body = res.get_json()
    assert body['match']['status'] == 'completed'
    assert body['winner'] == 'A'

    res = post(client, mid, 'raid/start', raider_id=match['players_a'][0]['id'])
    assert res.status_code == 403
    assert post(client, mid, 'start').status_code == 403


def test_shootout_requires_level_scores(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'technical', side='A')
    res = post(client, mid, 'shootout/setup')
    assert res.status_code == 400


def test_shootout_flow(client):
    match = started_match(client)
    mid = match['id']
    res = post(client, mid, 'shootout/setup')
    assert res.get_json()['setup']['step'] == 'players_a'

    for side, players in (('A', match['players_a']), ('B', match['players_b'])):
        for p in players:
            post(client, mid, 'shootout/players', side=side, player_id=p['id'])
        assert post(client, mid, 'shootout/next').status_code == 200
    for side, players in (('A', match['players_a']), ('B', match['players_b'])):
        for p in players[:5]:
            post(client, mid, 'shootout/raiders', side=side, player_id=p['id'])
        assert post(client, mid, 'shootout/next').status_code == 200

    winner = post(client, mid, 'shootout/toss').get_json()['setup']['toss_winner']
    setup = post(client, mid, 'shootout/choice', choice='defend').get_json()['setup']
    assert setup['first_raiding_side'] == ('B' if winner == 'A' else 'A')

    shootout = post(client, mid, 'shootout/start').get_json()['shootout']
    assert shootout['total_raids'] == 10
    assert shootout['current_side'] == setup['first_raiding_side']

    for i in range(10):
        points = 1 if i == 0 else 0
        shootout = post(client, mid, 'shootout/raid', points=points).get_json()['shootout']
    assert shootout['phase'] == 'complete'
    assert shootout['winner'] == setup['first_raiding_side']

    stored = client.get(f'/api/matches/{mid}').get_json()
    assert stored['shootout']['winner'] == shootout['winner']


def test_end_applies_a_pending_undo(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'technical', side='A')
    post(client, mid, 'undo')

    res = post(client, mid, 'end')
    body = res.get_json()
    assert body['winner'] is None
    assert body['scores'] == {'A': 0, 'B': 0}
    assert body['match']['team_a_score'] == 0
    types = [e['event_type'] for e in client.get(f'/api/matches/{mid}/events').get_json()]
    assert types == ['half_start']


def test_shootout_setup_sees_a_pending_undo(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'technical', side='A')
    post(client, mid, 'undo')
    res = post(client, mid, 'shootout/setup')
    assert res.status_code == 200
    assert res.get_json()['setup']['step'] == 'players_a'


def test_shootout_setup_back(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'shootout/setup')
    assert post(client, mid, 'shootout/back').status_code == 400
    for p in match['players_a']:
        post(client, mid, 'shootout/players', side='A', player_id=p['id'])
    post(client, mid, 'shootout/next')
    res = post(client, mid, 'shootout/back')
    assert res.get_json()['setup']['step'] == 'players_a'


def _squad(name, size):
    return {'name': name, 'players': [{'name': f'{name} {i}', 'jersey_number': i} for i in range(1, size + 1)]}


def test_substitution_brings_a_bench_player_on(client):
    match = started_match(client, team_a=_squad('Red', 10), team_b=_squad('Blue', 10))
    mid = match['id']
    starter, sub = match['players_a'][0]['id'], match['players_a'][7]['id']

    res = post(client, mid, 'raid/start', raider_id=sub)
    assert res.status_code == 400

    res = post(client, mid, 'substitution', side='A', player_out=starter, player_in=sub)
    assert res.status_code == 200
    body = res.get_json()
    assert sub in body['on_court']['A']
    assert starter in body['bench']['A']

    spectator = client.get(f'/api/matches/{mid}/state').get_json()
    assert spectator['on_court']['A'][0] == sub
    assert len(spectator['on_court']['B']) == 7
    assert post(client, mid, 'raid/start', raider_id=sub).status_code == 200


def test_declare_rejects_string_flags(client):
    match = started_match(client)
    mid = match['id']
    post(client, mid, 'raid/start', raider_id=match['players_a'][0]['id'])
    res = post(client, mid, 'raid/declare', outcome='success', bonus_point='false')
    assert res.status_code == 400
