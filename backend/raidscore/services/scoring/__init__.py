"""Raid scoring engine.

Pure domain logic: roster snapshots, point rules, the scorer's raid state
machine, event-log reconstruction and the tie-breaker. HTTP routes and socket
handlers import from here; nothing in this package touches Flask or the
database.
"""
from .errors import IllegalTransition, InvalidInput, MatchNotLive, RedoConflict, ScoringError, StaleReference
from .events import EventLog, MatchEvent
from .raid_machine import Commit, RaidStateMachine
from .reconstruction import MatchState, describe_event, reconstruct
from .roster import Roster, RosterPlayer
from .rules import RaidAction, RaidContext, RaidResult, resolve_raid
from .settings import MatchSettings
from .shootout import Shootout, ShootoutSetup
