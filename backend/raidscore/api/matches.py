from flask import Blueprint, jsonify, request, current_app
from raidscore import db
from raidscore.models import Match, Player, Team
from raidscore.services.scoring import (
    IllegalTransition, InvalidInput, MatchNotLive, RaidAction, RedoConflict, ScoringError, StaleReference,
)
from raidscore.sessions import court_roster, drop_session, get_session
from raidscore.store import apply_commit, materialize, notify_match_changed, save_shootout, set_status
import time


matches = Blueprint('matches', __name__)

_ERROR_STATUS = {
    InvalidInput: 400,
    IllegalTransition: 400,
    StaleReference: 404,
    MatchNotLive: 403,
    RedoConflict: 409,
}


@matches.errorhandler(ScoringError)
def handle_scoring_error(err):
    code = next((c for kind, c in _ERROR_STATUS.items() if isinstance(err, kind)), 400)
    current_app.logger.info(f"[rejected] {type(err).__name__}: {err}")
    return jsonify({'error': str(err), 'kind': type(err).__name__}), code


def _as_id(value):
    """Player/team ids arrive as ints or numeric strings from the client."""
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f'Invalid id: {value!r}')


def _as_side(value):
    side = (value or '').upper() if isinstance(value, str) else value
    if side not in ('A', 'B'):
        raise InvalidInput(f'Side must be A or B, got {value!r}')
    return side


def _check_scorer(match: Match, data):
    if match.scorer_id is None:
        return None
    try:
        scorer_id = int(data.get('scorer_id'))
    except (TypeError, ValueError):
        scorer_id = None
    if scorer_id != match.scorer_id:
        return jsonify({'error': 'Only the assigned scorer may do that'}), 403
    return None


def _scorer_response(match: Match, session, **extra):
    body = session.machine.to_dict()
    body['match'] = match.to_dict(include_players=False)
    body.update(extra)
    return jsonify(body)


def _team_from_payload(data, key):
    """Use an existing team by id, or create one with its squad inline."""
    team_id = data.get(f'{key}_id')
    if team_id is not None:
        return db.session.get(Team, _as_id(team_id))
    spec = data.get(key) or {}
    name = (spec.get('name') or '').strip()
    if not name:
        return None
    team = Team(name=name, emblem_url=spec.get('emblem_url'))
    db.session.add(team)
    db.session.flush()
    for entry in spec.get('players') or []:
        if isinstance(entry, str):
            entry = {'name': entry}
        db.session.add(Player(name=entry.get('name') or 'Player', jersey_number=entry.get('jersey_number'), team_id=team.id))
    return team


@matches.route('', methods=['POST'])
def create_match():
    data = request.get_json(silent=True) or {}
    team_a = _team_from_payload(data, 'team_a')
    team_b = _team_from_payload(data, 'team_b')
    if not team_a or not team_b:
        db.session.rollback()
        return jsonify({'error': 'Two teams are required'}), 400
    if team_a.id == team_b.id:
        db.session.rollback()
        return jsonify({'error': 'A team cannot play itself'}), 400

    settings = data.get('settings') or {}
    overrides = {}
    for key in ('half_duration', 'halves', 'raid_duration', 'halftime_break', 'max_timeouts_per_half', 'timeout_duration'):
        if settings.get(key) is None:
            continue
        try:
            value = int(settings[key])
        except (TypeError, ValueError):
            value = -1
        if value < 0 or (key in ('halves', 'half_duration', 'raid_duration') and value == 0):
            db.session.rollback()
            return jsonify({'error': f'Invalid setting {key}'}), 400
        overrides[key] = value

    first_side = (data.get('first_raiding_side') or 'A').upper()
    if first_side not in ('A', 'B'):
        db.session.rollback()
        return jsonify({'error': 'first_raiding_side must be A or B'}), 400

    match = Match.from_config(
        current_app.config,
        name=(data.get('name') or f'{team_a.name} vs {team_b.name}'),
        team_a_id=team_a.id,
        team_b_id=team_b.id,
        scorer_id=_as_id(data.get('scorer_id')),
        first_raiding_side=first_side,
        active_side=first_side,
        **overrides,
    )
    db.session.add(match)
    db.session.commit()
    drop_session(match.id)
    current_app.logger.info(f"[create] match={match.id} {team_a.name} vs {team_b.name} scorer={match.scorer_id}")
    return jsonify(match.to_dict()), 201


@matches.route('/<int:match_id>', methods=['GET'])
def get_match(match_id):
    match = Match.query.filter_by(id=match_id).first_or_404()
    return jsonify(match.to_dict())


@matches.route('/<int:match_id>/events', methods=['GET'])
def list_events(match_id):
    match = Match.query.filter_by(id=match_id).first_or_404()
    return jsonify([e.to_dict() for e in match.events])


@matches.route('/<int:match_id>/state', methods=['GET'])
def get_match_state(match_id):
    """Spectator view: full reconstruction over the stored log."""
    match = Match.query.filter_by(id=match_id).first_or_404()
    state = materialize(match, now=time.time())
    settings = match.settings(current_app.config)
    body = state.to_dict(settings)
    body['match'] = match.to_dict()
    court = court_roster(match).with_lineups(state.lineups)
    body['on_court'] = {side: list(court.lineup(side)) for side in ('A', 'B')}
    body['settings'] = settings.to_dict()
    body['server_time'] = time.time()
    return jsonify(body)


@matches.route('/<int:match_id>/start', methods=['POST'])
def start_match(match_id):
    data = request.get_json(silent=True) or {}
    match = Match.query.filter_by(id=match_id).first_or_404()
    denied = _check_scorer(match, data)
    if denied:
        return denied
    if match.status == 'completed':
        return jsonify({'error': 'This match is already completed'}), 403
    if match.status == 'live':
        # Idempotent: a second start just returns the session.
        return _scorer_response(match, get_session(match))
    set_status(match, 'live')
    session = get_session(match)
    apply_commit(match, session.machine.start_half())
    current_app.logger.info(f"[start] match={match.id} first_raiding_side={match.first_raiding_side}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/end', methods=['POST'])
def end_match(match_id):
    data = request.get_json(silent=True) or {}
    match = Match.query.filter_by(id=match_id).first_or_404()
    denied = _check_scorer(match, data)
    if denied:
        return denied
    if match.status != 'completed':
        # A pending local undo is final once the match ends.
        settled = get_session(match).machine.settle()
        apply_commit(match, settled)
        if settled:
            current_app.logger.info(f"[end] match={match.id} retracted {len(settled.retract)} undone event(s)")
        match.ended_at = time.time()
        set_status(match, 'completed')
    drop_session(match.id)
    state = materialize(match)
    return jsonify({'match': match.to_dict(), 'winner': state.leader, 'scores': state.scores})


@matches.route('/<int:match_id>/session', methods=['GET'])
def get_scorer_session(match_id):
    match = Match.query.filter_by(id=match_id).first_or_404()
    denied = _check_scorer(match, request.args)
    if denied:
        return denied
    return _scorer_response(match, get_session(match))


def _scorer_action(match_id):
    """Load match + session for a scorer write; returns (match, session, data, denied)."""
    data = request.get_json(silent=True) or {}
    match = Match.query.filter_by(id=match_id).first_or_404()
    denied = _check_scorer(match, data)
    if denied:
        return match, None, data, denied
    return match, get_session(match), data, None


@matches.route('/<int:match_id>/raid/start', methods=['POST'])
def start_raid(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    raider_id = _as_id(data.get('raider_id'))
    if raider_id is None:
        return jsonify({'error': 'Raider ID is required'}), 400
    apply_commit(match, session.machine.start_raid(raider_id))
    current_app.logger.info(f"[raid-start] match={match.id} raider={raider_id} side={session.machine.raiding_side}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/raid/outcome', methods=['POST'])
def choose_outcome(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    session.machine.choose_outcome(data.get('outcome'))
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/raid/declare', methods=['POST'])
def declare_raid(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    fields = dict(data)
    fields['defenders_out'] = [_as_id(p) for p in data.get('defenders_out') or []]
    fields['tackler_id'] = _as_id(data.get('tackler_id'))
    fields['raider_id'] = _as_id(data.get('raider_id'))
    fields['outcome'] = data.get('outcome') or session.machine.outcome
    action = RaidAction.from_dict(fields, raider_id=session.machine.raider_id)
    result = session.machine.declare(action)
    current_app.logger.info(f"[raid-declare] match={match.id} outcome={action.outcome} points={result.points} type={result.event_type}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/raid/revise', methods=['POST'])
def revise_raid(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    session.machine.revise()
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/raid/confirm', methods=['POST'])
def confirm_raid(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    next_side = data.get('next_side')
    commit = session.machine.confirm(_as_side(next_side) if next_side else None)
    apply_commit(match, commit)
    event = commit.append[-1]
    current_app.logger.info(f"[raid-confirm] match={match.id} type={event.event_type} points={event.points_awarded}")
    return _scorer_response(match, session, event=event.to_dict())


@matches.route('/<int:match_id>/raid/cancel', methods=['POST'])
def cancel_raid(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    session.machine.cancel()
    # The raid_start stays in the log; spectators re-derive "no raid" once the next event lands.
    notify_match_changed(match)
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/technical', methods=['POST'])
def technical_point(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    try:
        points = int(data.get('points', 1))
    except (TypeError, ValueError):
        return jsonify({'error': 'Points must be an integer'}), 400
    side = _as_side(data.get('side'))
    apply_commit(match, session.machine.record_technical(side, points))
    current_app.logger.info(f"[technical] match={match.id} side={side} points={points}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/timeout', methods=['POST'])
def call_timeout(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    side = _as_side(data.get('side'))
    apply_commit(match, session.machine.call_timeout(side))
    current_app.logger.info(f"[timeout] match={match.id} side={side}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/substitution', methods=['POST'])
def substitute_player(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    side = _as_side(data.get('side'))
    player_out, player_in = _as_id(data.get('player_out')), _as_id(data.get('player_in'))
    if player_out is None or player_in is None:
        return jsonify({'error': 'player_out and player_in are required'}), 400
    apply_commit(match, session.machine.substitute(side, player_out, player_in))
    current_app.logger.info(f"[substitution] match={match.id} side={side} out={player_out} in={player_in}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/halves/next', methods=['POST'])
def next_half(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    apply_commit(match, session.machine.start_half())
    current_app.logger.info(f"[half] match={match.id} half={session.machine.derive().current_half}")
    return _scorer_response(match, session)


@matches.route('/<int:match_id>/undo', methods=['POST'])
def undo(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    popped = session.machine.undo()
    current_app.logger.info(f"[undo] match={match.id} popped={[e.event_type for e in popped]}")
    return _scorer_response(match, session, popped=[e.to_dict() for e in popped])


@matches.route('/<int:match_id>/redo', methods=['POST'])
def redo(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    redone = session.machine.redo()
    current_app.logger.info(f"[redo] match={match.id} redone={[e.event_type for e in redone]}")
    return _scorer_response(match, session, redone=[e.to_dict() for e in redone])


# ---- tie-breaker ----

def _shootout_body(match: Match, session):
    return jsonify({
        'match_id': match.id,
        'setup': session.setup.to_dict() if session.setup else None,
        'shootout': session.shootout.to_dict() if session.shootout else None,
    })


def _require_setup(session):
    if session.setup is None:
        raise IllegalTransition('No shootout setup in progress')
    return session.setup


@matches.route('/<int:match_id>/shootout', methods=['GET'])
def get_shootout(match_id):
    match = Match.query.filter_by(id=match_id).first_or_404()
    return _shootout_body(match, get_session(match))


@matches.route('/<int:match_id>/shootout/setup', methods=['POST'])
def begin_shootout_setup(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    if match.status != 'live':
        raise MatchNotLive(f'Match is {match.status}')
    if session.shootout is not None:
        raise IllegalTransition('A shootout has already started')
    # Judge from the scorer's view, which reflects any pending undo.
    state = session.machine.derive()
    if state.leader is not None:
        return jsonify({'error': 'A shootout is only played when scores are level'}), 400
    session.begin_setup(match)
    current_app.logger.info(f"[shootout-setup] match={match.id} level at {state.scores['A']}")
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/players', methods=['POST'])
def toggle_shootout_player(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    _require_setup(session).toggle_player(_as_side(data.get('side')), _as_id(data.get('player_id')))
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/raiders', methods=['POST'])
def toggle_shootout_raider(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    _require_setup(session).toggle_raider(_as_side(data.get('side')), _as_id(data.get('player_id')))
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/next', methods=['POST'])
def advance_shootout_setup(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    _require_setup(session).next()
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/back', methods=['POST'])
def rewind_shootout_setup(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    _require_setup(session).back()
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/toss', methods=['POST'])
def shootout_toss(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    winner = _require_setup(session).toss()
    current_app.logger.info(f"[shootout-toss] match={match.id} winner={winner}")
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/choice', methods=['POST'])
def shootout_choice(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    first = _require_setup(session).choose(data.get('choice'))
    current_app.logger.info(f"[shootout-choice] match={match.id} choice={data.get('choice')} first={first}")
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/start', methods=['POST'])
def start_shootout(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    session.shootout = _require_setup(session).start()
    session.setup = None
    save_shootout(match, session.shootout)
    return _shootout_body(match, session)


@matches.route('/<int:match_id>/shootout/raid', methods=['POST'])
def record_shootout_raid(match_id):
    match, session, data, denied = _scorer_action(match_id)
    if denied:
        return denied
    if session.shootout is None:
        raise IllegalTransition('The shootout has not started')
    try:
        points = int(data.get('points', 0))
    except (TypeError, ValueError):
        return jsonify({'error': 'Points must be an integer'}), 400
    raid = session.shootout.record(points, _as_id(data.get('raider_id')))
    save_shootout(match, session.shootout)
    current_app.logger.info(f"[shootout-raid] match={match.id} side={raid['side']} points={points} winner={session.shootout.winner}")
    return _shootout_body(match, session)
