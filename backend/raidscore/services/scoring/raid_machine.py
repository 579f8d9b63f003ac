"""Scorer-side raid lifecycle.

IDLE -> RAIDING -> OUTCOME -> CONFIRM -> IDLE, plus cancel, technical points,
timeouts, half changes and undo/redo. Every forward action returns a
``Commit`` describing what the store must retract and append; the machine
itself never talks to persistence.
"""
import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence, Tuple

from .errors import IllegalTransition, InvalidInput, MatchNotLive
from .events import HALF_START, RAID_START, SUBSTITUTION, TECHNICAL, TIMEOUT, EventLog, MatchEvent
from .reconstruction import MatchState, reconstruct
from .roster import SIDES, Roster, other_side
from .rules import EMPTY, OUTCOMES, RaidAction, RaidContext, RaidResult, resolve_raid, technical_point, validate_raider
from .settings import MatchSettings

logger = logging.getLogger(__name__)

IDLE = 'IDLE'
RAIDING = 'RAIDING'
OUTCOME = 'OUTCOME'
CONFIRM = 'CONFIRM'


@dataclass(frozen=True)
class Commit:
    """Events to retract from and append to the shared store, in that order."""

    retract: Tuple[MatchEvent, ...] = ()
    append: Tuple[MatchEvent, ...] = ()

    def __bool__(self):
        return bool(self.retract or self.append)


class RaidStateMachine:
    def __init__(
        self,
        match_id,
        roster: Roster,
        settings: Optional[MatchSettings] = None,
        events: Sequence[MatchEvent] = (),
        first_raiding_side: str = 'A',
        status: str = 'live',
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = None,
    ):
        self.match_id = match_id
        self.roster = roster
        self.settings = settings or MatchSettings()
        self.first_raiding_side = first_raiding_side
        self.status = status
        self.clock = clock
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.log = EventLog(events)
        self._cancelled = set()
        self._reset()
        self._resume()

    # ---- derived state ----

    def now(self) -> float:
        # Keep timestamps strictly increasing so "newer" is never ambiguous.
        now = self.clock()
        last = self.log.last
        if last is not None and now <= last.created_at:
            now = last.created_at + 1e-6
        return now

    def derive(self, now: Optional[float] = None, index: Optional[int] = None) -> MatchState:
        return reconstruct(
            self.log.materialize(index),
            self.roster.team_a_id,
            self.roster.team_b_id,
            self.settings,
            now=self.clock() if now is None else now,
            first_raiding_side=self.first_raiding_side,
        )

    def court(self, state: MatchState) -> Roster:
        """The roster with the lineups substitutions have produced so far."""
        return self.roster.with_lineups(state.lineups)

    def context(self, state: Optional[MatchState] = None) -> RaidContext:
        state = state or self.derive()
        side = self.raiding_side or state.active_side
        return RaidContext(
            roster=self.court(state),
            raiding_side=side,
            out_ids=state.out_ids,
            empty_streak=state.empty_streaks.get(side, 0),
            settings=self.settings,
        )

    def remaining(self, now: Optional[float] = None) -> float:
        if self.raid_start is None:
            return 0.0
        now = self.clock() if now is None else now
        duration = self.raid_start.payload.get('raid_duration', self.settings.raid_duration)
        return max(0.0, duration - (now - self.raid_start.created_at))

    # ---- helpers ----

    def _reset(self) -> None:
        self.state = IDLE
        self.raider_id = None
        self.raiding_side = None
        self.raid_start: Optional[MatchEvent] = None
        self.outcome = None
        self.expired = False
        self.pending_action: Optional[RaidAction] = None
        self.pending_result: Optional[RaidResult] = None

    def _resume(self) -> None:
        """Pick up a raid left running by an earlier session (page reload)."""
        if self.status != 'live':
            return
        active = self.derive().active_raid
        if active is None or active.start_id in self._cancelled:
            return
        start = next((e for e in reversed(self.log.events) if e.id == active.start_id), None)
        if start is None:
            return
        self.state = RAIDING
        self.raider_id = active.raider_id
        self.raiding_side = active.side
        self.raid_start = start
        logger.debug('[raid-resume] match=%s raider=%s remaining=%.1f', self.match_id, self.raider_id, active.remaining)
        self.poll()

    def _require(self, *states: str) -> None:
        if self.state not in states:
            raise IllegalTransition(f'Cannot do that while {self.state}; expected {" or ".join(states)}')

    def _require_live(self) -> None:
        if self.status != 'live':
            raise MatchNotLive(f'Match is {self.status}')

    def _event(self, event_type, side, player_id=None, points=0, payload=None, now=None) -> MatchEvent:
        return MatchEvent(
            id=self.id_factory(),
            match_id=self.match_id,
            event_type=event_type,
            team_id=self.roster.team_id(side) if side in SIDES else None,
            player_id=player_id,
            points_awarded=points,
            payload=payload or {},
            created_at=self.now() if now is None else now,
        )

    def _commit(self, *events: MatchEvent) -> Commit:
        retract = []
        for event in events:
            retract.extend(self.log.append(event))
        return Commit(retract=tuple(retract), append=tuple(events))

    def _next_side(self, raiding_side: str, requested: Optional[str]) -> str:
        if self.settings.turn_policy == 'manual':
            if requested is not None and requested not in SIDES:
                raise InvalidInput(f'Unknown side: {requested}')
            return requested or raiding_side
        return other_side(raiding_side)

    # ---- raid lifecycle ----

    def start_raid(self, raider_id) -> Commit:
        self._require_live()
        self._require(IDLE)
        now = self.now()
        state = self.derive(now)
        if not state.half_started:
            raise InvalidInput('The match clock has not been started')
        if state.timeout_side is not None:
            raise InvalidInput('A timeout is in progress')
        side = state.active_side
        ctx = RaidContext(self.court(state), side, state.out_ids, state.empty_streaks[side], self.settings)
        validate_raider(raider_id, ctx)

        event = self._event(RAID_START, side, player_id=raider_id, now=now, payload={
            'raider_id': raider_id,
            'raiding_side': side,
            'half': state.current_half,
            'raid_duration': self.settings.raid_duration,
            'do_or_die': ctx.do_or_die,
        })
        commit = self._commit(event)
        self.state = RAIDING
        self.raider_id = raider_id
        self.raiding_side = side
        self.raid_start = event
        logger.debug('[raid-start] match=%s side=%s raider=%s do_or_die=%s', self.match_id, side, raider_id, ctx.do_or_die)
        return commit

    def poll(self, now: Optional[float] = None) -> bool:
        """Move an expired raid to OUTCOME with an empty result preselected."""
        if self.state != RAIDING or self.remaining(now) > 0:
            return False
        self.state = OUTCOME
        self.outcome = EMPTY
        self.expired = True
        logger.debug('[raid-expired] match=%s raider=%s', self.match_id, self.raider_id)
        return True

    def choose_outcome(self, outcome: str) -> None:
        self._require(RAIDING, OUTCOME)
        if outcome not in OUTCOMES:
            raise InvalidInput(f'Unknown outcome: {outcome}')
        self.outcome = outcome
        self.state = OUTCOME

    def declare(self, action: RaidAction) -> RaidResult:
        self._require(RAIDING, OUTCOME)
        if action.raider_id is None:
            action = replace(action, raider_id=self.raider_id)
        if action.raider_id != self.raider_id:
            raise InvalidInput('Outcome raider does not match the raider on court')
        result = resolve_raid(action, self.context())
        self.outcome = action.outcome
        self.pending_action = action
        self.pending_result = result
        self.state = CONFIRM
        return result

    def revise(self) -> None:
        self._require(CONFIRM)
        self.pending_action = None
        self.pending_result = None
        self.state = OUTCOME

    def confirm(self, next_side: Optional[str] = None) -> Commit:
        self._require_live()
        self._require(CONFIRM)
        result = self.pending_result
        now = self.now()
        state = self.derive(now)
        payload = result.to_payload()
        payload.update({
            'half': state.current_half,
            'outcome': self.pending_action.outcome,
            'raid_start_id': self.raid_start.id if self.raid_start else None,
            'raid_duration': self.raid_start.payload.get('raid_duration') if self.raid_start else None,
            'raid_elapsed': round(now - self.raid_start.created_at, 3) if self.raid_start else None,
            'next_raiding_side': self._next_side(result.raiding_side, next_side),
        })
        player_id = result.tackler_id if result.scoring_side != result.raiding_side else result.raider_id
        event = self._event(result.event_type, result.scoring_side, player_id, result.points, payload, now=now)
        commit = self._commit(event)
        logger.debug('[raid-confirm] match=%s type=%s side=%s points=%d', self.match_id, event.event_type, result.scoring_side, result.points)
        self._reset()
        return commit

    def cancel(self) -> None:
        self._require(RAIDING, OUTCOME, CONFIRM)
        if self.raid_start is not None:
            self._cancelled.add(self.raid_start.id)
        logger.debug('[raid-cancel] match=%s raider=%s', self.match_id, self.raider_id)
        self._reset()

    # ---- other scorer actions ----

    def record_technical(self, side: str, points: int = 1) -> Commit:
        self._require_live()
        self._require(IDLE)
        result = technical_point(side, points)
        now = self.now()
        state = self.derive(now)
        event = self._event(TECHNICAL, side, points=result.points, now=now, payload={'half': state.current_half})
        return self._commit(event)

    def call_timeout(self, side: str) -> Commit:
        self._require_live()
        self._require(IDLE)
        if side not in SIDES:
            raise InvalidInput(f'Unknown side: {side}')
        now = self.now()
        state = self.derive(now)
        if state.timeout_side is not None:
            raise InvalidInput('A timeout is already running')
        if state.timeouts_used[side] >= self.settings.max_timeouts_per_half:
            raise InvalidInput(f'No timeouts left this half (max {self.settings.max_timeouts_per_half})')
        event = self._event(TIMEOUT, side, now=now, payload={
            'half': state.current_half,
            'duration': self.settings.timeout_duration,
        })
        return self._commit(event)

    def substitute(self, side: str, player_out, player_in) -> Commit:
        """Swap an on-court player for a bench player of the same team."""
        self._require_live()
        self._require(IDLE)
        if side not in SIDES:
            raise InvalidInput(f'Unknown side: {side}')
        now = self.now()
        state = self.derive(now)
        court = self.court(state)
        for pid in (player_out, player_in):
            if court.side_of(pid) != side:
                raise InvalidInput('Both players must belong to the substituting team')
        lineup = list(court.lineup(side))
        if player_out not in lineup:
            raise InvalidInput('Player leaving is not on court')
        if player_in in lineup:
            raise InvalidInput('Player coming in is already on court')
        if player_out in state.out_ids:
            raise InvalidInput('An out player cannot be substituted')
        lineup[lineup.index(player_out)] = player_in
        event = self._event(SUBSTITUTION, side, player_id=player_in, now=now, payload={
            'half': state.current_half,
            'player_out': player_out,
            'player_in': player_in,
            'lineup': lineup,
        })
        logger.debug('[substitution] match=%s side=%s out=%s in=%s', self.match_id, side, player_out, player_in)
        return self._commit(event)

    def start_half(self) -> Commit:
        self._require_live()
        self._require(IDLE)
        now = self.now()
        state = self.derive(now)
        if not state.half_started:
            half, side = 1, self.first_raiding_side
        else:
            if state.current_half >= self.settings.halves:
                raise InvalidInput('No halves remain')
            half = state.current_half + 1
            # Teams swap who opens the raiding each half.
            side = self.first_raiding_side if half % 2 else other_side(self.first_raiding_side)
        event = self._event(HALF_START, None, now=now, payload={'half': half, 'raiding_side': side})
        return self._commit(event)

    # ---- undo / redo ----

    def undo(self) -> Tuple[MatchEvent, ...]:
        popped = self.log.undo()
        self._reset()
        self._resume()
        return popped

    def redo(self) -> Tuple[MatchEvent, ...]:
        self._require(IDLE)
        redone = self.log.redo()
        self._resume()
        return redone

    def settle(self) -> Commit:
        """Retract locally undone events from the store without appending anything."""
        return Commit(retract=self.log.discard_undone())

    def sync(self, stored: Sequence[MatchEvent], status: Optional[str] = None, roster: Optional[Roster] = None) -> bool:
        """Refresh from the store; returns True when the log was replaced."""
        if status is not None:
            self.status = status
        if roster is not None and self.state == IDLE:
            self.roster = roster
        changed = self.log.rebase(stored)
        if changed:
            self._reset()
            self._resume()
        else:
            self.poll()
        return changed

    def to_dict(self, now: Optional[float] = None):
        now = self.clock() if now is None else now
        state = self.derive(now)
        court = self.court(state)
        return {
            'state': self.state,
            'raider_id': self.raider_id,
            'raiding_side': self.raiding_side,
            'raid_remaining': self.remaining(now),
            'outcome': self.outcome,
            'expired': self.expired,
            'pending_action': self.pending_action.to_dict() if self.pending_action else None,
            'pending_result': dict(self.pending_result.to_payload(), points=self.pending_result.points,
                                   event_type=self.pending_result.event_type,
                                   scoring_side=self.pending_result.scoring_side) if self.pending_result else None,
            'can_undo': self.log.can_undo,
            'can_redo': self.log.can_redo,
            'undone': len(self.log.undone),
            'on_court': {side: list(court.lineup(side)) for side in SIDES},
            'bench': {side: list(court.bench(side)) for side in SIDES},
            'live': state.to_dict(self.settings),
        }
