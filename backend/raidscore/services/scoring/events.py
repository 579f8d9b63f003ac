"""Match events and the scorer's append-only event log.

The log is the single source of truth for a match. Undo and redo never edit
events; they only move a cursor over the list, and derived state is always
recomputed from ``events[:head]``.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import InvalidInput, RedoConflict

logger = logging.getLogger(__name__)

RAID_START = 'raid_start'
RAID = 'raid'
TACKLE = 'tackle'
ALL_OUT = 'all_out'
TECHNICAL = 'technical'
TIMEOUT = 'timeout'
HALF_START = 'half_start'
SUBSTITUTION = 'substitution'

SCORING_TYPES = (RAID, TACKLE, ALL_OUT, TECHNICAL)
RAID_TYPES = (RAID, TACKLE, ALL_OUT)


@dataclass(frozen=True)
class MatchEvent:
    id: str
    match_id: Any
    event_type: str
    team_id: Any
    player_id: Any = None
    points_awarded: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'event_type': self.event_type,
            'team_id': self.team_id,
            'player_id': self.player_id,
            'points_awarded': self.points_awarded,
            'payload': dict(self.payload),
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            match_id=data.get('match_id'),
            event_type=data['event_type'],
            team_id=data.get('team_id'),
            player_id=data.get('player_id'),
            points_awarded=int(data.get('points_awarded') or 0),
            payload=dict(data.get('payload') or {}),
            created_at=float(data.get('created_at') or 0.0),
        )


class EventLog:
    """Ordered events plus a head cursor.

    ``events`` is what the scorer currently sees. Anything past the head has
    been undone locally and is still present in the shared store until the
    next forward action retracts it.
    """

    def __init__(self, events: Sequence[MatchEvent] = ()):
        self._events: List[MatchEvent] = list(events)
        self._head = len(self._events)
        self._conflict = False

    def __len__(self):
        return self._head

    @property
    def events(self) -> Tuple[MatchEvent, ...]:
        return tuple(self._events[:self._head])

    @property
    def undone(self) -> Tuple[MatchEvent, ...]:
        return tuple(self._events[self._head:])

    @property
    def known_ids(self) -> List[str]:
        return [e.id for e in self._events]

    @property
    def last(self) -> Optional[MatchEvent]:
        return self._events[self._head - 1] if self._head else None

    @property
    def can_undo(self) -> bool:
        return self._head > 0

    @property
    def can_redo(self) -> bool:
        return bool(self.undone) and not self._conflict

    def materialize(self, index: Optional[int] = None) -> Tuple[MatchEvent, ...]:
        """Events as of position ``index`` (defaults to the head)."""
        if index is None:
            index = self._head
        if index < 0 or index > self._head:
            raise IndexError(f'index {index} outside 0..{self._head}')
        return tuple(self._events[:index])

    def append(self, event: MatchEvent) -> List[MatchEvent]:
        """Append ``event`` after the head; return the undone events it discards."""
        discarded = self._events[self._head:]
        del self._events[self._head:]
        self._events.append(event)
        self._head = len(self._events)
        self._conflict = False
        return discarded

    def _unit_end(self, start: int) -> int:
        # A raid_start and the scoring event that resolved it move together.
        first = self._events[start]
        nxt = start + 1
        if first.event_type == RAID_START and nxt < len(self._events):
            candidate = self._events[nxt]
            if candidate.payload.get('raid_start_id') == first.id:
                return nxt + 1
        return nxt

    def undo(self) -> Tuple[MatchEvent, ...]:
        if not self.can_undo:
            raise InvalidInput('Nothing to undo')
        start = self._head - 1
        last = self._events[start]
        start_id = last.payload.get('raid_start_id')
        if start_id and start > 0 and self._events[start - 1].id == start_id:
            start -= 1
        popped = tuple(self._events[start:self._head])
        self._head = start
        self._conflict = False
        return popped

    def redo(self) -> Tuple[MatchEvent, ...]:
        if self._conflict:
            raise RedoConflict('The match log changed since the undo; redo is no longer possible')
        if not self.undone:
            raise InvalidInput('Nothing to redo')
        end = self._unit_end(self._head)
        redone = tuple(self._events[self._head:end])
        self._head = end
        return redone

    def discard_undone(self) -> Tuple[MatchEvent, ...]:
        """Drop everything past the head; redo is no longer possible."""
        discarded = self.undone
        del self._events[self._head:]
        self._conflict = False
        return discarded

    def rebase(self, stored: Sequence[MatchEvent]) -> bool:
        """Adopt the store's list when it differs from what this log knows.

        Returns True when the log was replaced. Pending undone events are
        dropped in that case and a later redo raises RedoConflict.
        """
        if [e.id for e in stored] == self.known_ids:
            return False
        if self.undone:
            self._conflict = True
            logger.info('[log-rebase] store advanced with %d undone event(s) pending', len(self.undone))
        self._events = list(stored)
        self._head = len(self._events)
        return True
