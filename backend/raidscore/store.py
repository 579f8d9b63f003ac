"""Event store, match record and roster collaborators backed by SQLAlchemy.

The engine only hands over ``Commit`` objects; this module persists them,
refreshes the cached fields on the match record and tells subscribers that
something changed. The push never carries state: clients re-fetch.
"""
from flask import current_app
from raidscore import db, socketio
from raidscore.models import EventRecord, Match
from raidscore.services.scoring import Commit, MatchState, reconstruct
import json


def load_events(match_id):
    rows = EventRecord.query.filter_by(match_id=match_id).order_by(EventRecord.seq).all()
    return [r.to_event() for r in rows]


def materialize(match: Match, now=None) -> MatchState:
    return reconstruct(
        load_events(match.id),
        match.team_a_id,
        match.team_b_id,
        match.settings(current_app.config),
        now=now,
        first_raiding_side=match.first_raiding_side,
    )


def refresh_match_cache(match: Match, state: MatchState = None) -> MatchState:
    state = state or materialize(match)
    match.team_a_score = state.scores['A']
    match.team_b_score = state.scores['B']
    match.current_half = state.current_half
    match.active_side = state.active_side
    match.out_player_ids = json.dumps(sorted(state.out_ids, key=str))
    db.session.add(match)
    return state


def apply_commit(match: Match, commit: Commit) -> None:
    """Retract undone events, append new ones, refresh the cache, notify."""
    if not commit:
        return
    try:
        for event in commit.retract:
            EventRecord.query.filter_by(event_id=event.id).delete()
        for event in commit.append:
            db.session.add(EventRecord.from_event(event))
        db.session.flush()
        refresh_match_cache(match)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(
        f"[commit] match={match.id} retracted={len(commit.retract)} appended={[e.event_type for e in commit.append]}"
    )
    notify_match_changed(match)


def save_shootout(match: Match, shootout) -> None:
    match.shootout_state = json.dumps(shootout.to_dict()) if shootout else None
    db.session.add(match)
    db.session.commit()
    notify_match_changed(match)


def set_status(match: Match, status: str) -> None:
    match.status = status
    db.session.add(match)
    db.session.commit()
    current_app.logger.info(f"[status] match={match.id} status={status}")
    notify_match_changed(match)


def notify_match_changed(match: Match) -> None:
    socketio.emit('state_update', {'match_id': match.id}, to=f"match:{match.id}", namespace='/ws')
