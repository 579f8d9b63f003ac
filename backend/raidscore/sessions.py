"""Per-match scorer sessions (raid machine, local undo/redo, shootout wizard).

Runtime-only, like the rest of the in-process bookkeeping: a restart drops
local undo history, and the next request rebuilds the session from the store.
"""
import json
from typing import Dict, Optional

from flask import current_app

from raidscore.models import Match
from raidscore.services.scoring import RaidStateMachine, Shootout, ShootoutSetup
from raidscore.store import load_events


def court_roster(match: Match):
    return match.roster(court_size=int(current_app.config.get('PLAYERS_ON_COURT', 7)))


class ScorerSession:
    def __init__(self, match: Match):
        self.match_id = match.id
        self.machine = RaidStateMachine(
            match.id,
            court_roster(match),
            match.settings(current_app.config),
            events=load_events(match.id),
            first_raiding_side=match.first_raiding_side,
            status=match.status,
        )
        self.setup: Optional[ShootoutSetup] = None
        self.shootout: Optional[Shootout] = None
        if match.shootout_state:
            try:
                self.shootout = Shootout.from_dict(json.loads(match.shootout_state))
            except (ValueError, KeyError):
                current_app.logger.warning(f"[session] match={match.id} unreadable shootout_state ignored")

    def begin_setup(self, match: Match) -> ShootoutSetup:
        cfg = current_app.config
        self.setup = ShootoutSetup(
            match.roster(),
            squad_size=int(cfg.get('SHOOTOUT_SQUAD_SIZE', 7)),
            raider_count=int(cfg.get('SHOOTOUT_RAIDERS', 5)),
        )
        return self.setup


_sessions: Dict[int, ScorerSession] = {}


def get_session(match: Match) -> ScorerSession:
    """Session for ``match``, re-synced with the store on every call."""
    session = _sessions.get(match.id)
    if session is None:
        session = ScorerSession(match)
        _sessions[match.id] = session
        current_app.logger.info(f"[session] match={match.id} created state={session.machine.state}")
        return session
    if session.machine.sync(load_events(match.id), status=match.status, roster=court_roster(match)):
        current_app.logger.info(f"[session] match={match.id} log replaced from store")
    return session


def drop_session(match_id: int) -> None:
    _sessions.pop(match_id, None)
