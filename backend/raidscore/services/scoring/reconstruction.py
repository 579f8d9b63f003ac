"""Rebuild live match state from the ordered event list.

``reconstruct`` is the only place derived state is computed. The scorer's
raid machine, spectators and the cached fields on the match record all call
it over the full log, so they can never disagree. It never raises on bad
input: malformed events are counted in ``divergences`` and contribute what
they can.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .events import (
    ALL_OUT, HALF_START, RAID, RAID_START, RAID_TYPES, SCORING_TYPES,
    SUBSTITUTION, TACKLE, TECHNICAL, TIMEOUT, MatchEvent,
)
from .roster import SIDES, other_side
from .settings import MatchSettings

logger = logging.getLogger(__name__)


@dataclass
class TeamStats:
    raids: int = 0
    successful_raids: int = 0
    empty_raids: int = 0
    touch_points: int = 0
    bonus_points: int = 0
    tackle_points: int = 0
    tackles: int = 0
    super_tackles: int = 0
    all_outs: int = 0
    technical_points: int = 0
    outs: int = 0

    @property
    def raid_points(self) -> int:
        return self.touch_points + self.bonus_points

    @property
    def raid_success_rate(self) -> float:
        if not self.raids:
            return 0.0
        return round(self.successful_raids * 100.0 / self.raids, 1)

    def to_dict(self):
        return {
            'raids': self.raids,
            'successful_raids': self.successful_raids,
            'empty_raids': self.empty_raids,
            'touch_points': self.touch_points,
            'bonus_points': self.bonus_points,
            'raid_points': self.raid_points,
            'tackle_points': self.tackle_points,
            'tackles': self.tackles,
            'super_tackles': self.super_tackles,
            'all_outs': self.all_outs,
            'technical_points': self.technical_points,
            'outs': self.outs,
            'raid_success_rate': self.raid_success_rate,
        }


@dataclass
class PlayerStats:
    player_id: Any
    side: Optional[str]
    raids: int = 0
    raid_points: int = 0
    tackles: int = 0
    tackle_points: int = 0

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'side': self.side,
            'raids': self.raids,
            'raid_points': self.raid_points,
            'tackles': self.tackles,
            'tackle_points': self.tackle_points,
        }


@dataclass
class ActiveRaid:
    start_id: str
    raider_id: Any
    side: Optional[str]
    started_at: float
    duration: int
    remaining: float
    do_or_die: bool = False

    def to_dict(self):
        return {
            'start_id': self.start_id,
            'raider_id': self.raider_id,
            'side': self.side,
            'started_at': self.started_at,
            'duration': self.duration,
            'remaining': self.remaining,
            'do_or_die': self.do_or_die,
        }


def _side_dict(value=0):
    return {side: value for side in SIDES}


@dataclass
class MatchState:
    scores: Dict[str, int] = field(default_factory=_side_dict)
    team_stats: Dict[str, TeamStats] = field(default_factory=lambda: {s: TeamStats() for s in SIDES})
    player_stats: Dict[Any, PlayerStats] = field(default_factory=dict)
    halves: Dict[int, Dict[str, int]] = field(default_factory=dict)
    current_half: int = 1
    half_started: bool = False
    half_remaining: float = 0.0
    in_break: bool = False
    break_remaining: float = 0.0
    active_side: str = 'A'
    out_ids: frozenset = frozenset()
    empty_streaks: Dict[str, int] = field(default_factory=_side_dict)
    timeouts_used: Dict[str, int] = field(default_factory=_side_dict)
    timeout_side: Optional[str] = None
    timeout_remaining: float = 0.0
    lineups: Dict[str, Tuple[Any, ...]] = field(default_factory=dict)
    active_raid: Optional[ActiveRaid] = None
    last_event_id: Optional[str] = None
    event_count: int = 0
    divergences: int = 0
    timeline: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def raid_in_progress(self) -> bool:
        return self.active_raid is not None

    @property
    def raid_remaining(self) -> float:
        return self.active_raid.remaining if self.active_raid else 0.0

    @property
    def total_points(self) -> int:
        return sum(self.scores.values())

    @property
    def leader(self) -> Optional[str]:
        if self.scores['A'] == self.scores['B']:
            return None
        return 'A' if self.scores['A'] > self.scores['B'] else 'B'

    def top_raider(self):
        return _top(self.player_stats.values(), 'raids', 'raid_points')

    def top_defender(self):
        return _top(self.player_stats.values(), 'tackles', 'tackle_points')

    def is_do_or_die(self, side: str, settings: MatchSettings) -> bool:
        return self.empty_streaks.get(side, 0) >= settings.do_or_die_after

    def to_dict(self, settings: Optional[MatchSettings] = None):
        settings = settings or MatchSettings()
        return {
            'scores': dict(self.scores),
            'leader': self.leader,
            'team_stats': {side: stats.to_dict() for side, stats in self.team_stats.items()},
            'player_stats': [p.to_dict() for p in self.player_stats.values()],
            'top_raider': self.top_raider(),
            'top_defender': self.top_defender(),
            'halves': {str(h): dict(v) for h, v in sorted(self.halves.items())},
            'current_half': self.current_half,
            'half_started': self.half_started,
            'half_remaining': self.half_remaining,
            'in_break': self.in_break,
            'break_remaining': self.break_remaining,
            'active_side': self.active_side,
            'out_player_ids': sorted(self.out_ids, key=str),
            'lineups': {side: list(ids) for side, ids in sorted(self.lineups.items())},
            'empty_streaks': dict(self.empty_streaks),
            'do_or_die': self.is_do_or_die(self.active_side, settings),
            'timeouts_used': dict(self.timeouts_used),
            'timeout_side': self.timeout_side,
            'timeout_remaining': self.timeout_remaining,
            'raid_in_progress': self.raid_in_progress,
            'raid_remaining': self.raid_remaining,
            'active_raid': self.active_raid.to_dict() if self.active_raid else None,
            'last_event_id': self.last_event_id,
            'event_count': self.event_count,
            'divergences': self.divergences,
            'timeline': list(self.timeline),
        }


def _top(players, count_attr: str, points_attr: str):
    # Ties keep the first player encountered in the log.
    best = None
    for p in players:
        if not getattr(p, count_attr):
            continue
        if best is None or getattr(p, points_attr) > getattr(best, points_attr):
            best = p
    return best.player_id if best else None


def _as_int(value, default=0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def describe_event(event: MatchEvent) -> str:
    """Human label for an event, first matching rule wins."""
    p = event.payload or {}
    touch = _as_int(p.get('touch_points'))
    bonus = 1 if p.get('bonus') else 0
    raid_points = touch + bonus

    if p.get('self_out'):
        return 'Raider stepped out'
    if p.get('do_or_die') and raid_points == 0 and event.event_type in RAID_TYPES:
        return 'Do-or-die raid failed'
    if event.event_type == RAID and event.points_awarded == 0:
        return 'Empty raid'
    if raid_points >= 3:
        return f'Super raid: {touch} touch + {bonus} bonus'
    if touch and bonus:
        return f'{touch} touch + bonus'
    if touch:
        return f'{touch} touch point' + ('s' if touch != 1 else '')
    if bonus:
        return 'Bonus point'
    if event.event_type == ALL_OUT or p.get('all_out'):
        return 'All out'
    return event.event_type.replace('_', ' ').capitalize() + f' (+{event.points_awarded})'


def _overlap(window: Tuple[float, float], start: float, end: float) -> float:
    return max(0.0, min(window[1], end) - max(window[0], start))


class _Reconstruction:
    """One pass over the log. Not reused; ``reconstruct`` builds a fresh one each call."""

    def __init__(self, team_a_id, team_b_id, settings: MatchSettings, first_raiding_side: str):
        self.team_ids = {team_a_id: 'A', team_b_id: 'B'}
        self.settings = settings
        self.state = MatchState(active_side=first_raiding_side)
        self.out_ids = set()
        self.last_start: Optional[MatchEvent] = None
        self.open_start = False
        self.half_start_at: Optional[float] = None
        self.timeout_windows: List[Tuple[float, float, str]] = []

    def side_of(self, event: MatchEvent) -> Optional[str]:
        return self.team_ids.get(event.team_id)

    def diverge(self, event: MatchEvent, reason: str) -> None:
        self.state.divergences += 1
        logger.warning('[reconstruct-divergence] event=%s type=%s: %s', event.id, event.event_type, reason)

    def feed(self, event: MatchEvent) -> None:
        state = self.state
        state.event_count += 1
        state.last_event_id = event.id
        kind = event.event_type
        # Any later event closes the most recent raid_start, cancelled or not.
        self.open_start = kind == RAID_START

        if kind == HALF_START:
            self._half_start(event)
        elif kind == RAID_START:
            self.last_start = event
        elif kind == TIMEOUT:
            self._timeout(event)
        elif kind == SUBSTITUTION:
            self._substitution(event)
        elif kind in SCORING_TYPES:
            self._scoring(event)
        else:
            self.diverge(event, 'unknown event type')

    def _half_start(self, event: MatchEvent) -> None:
        state = self.state
        half = _as_int(event.payload.get('half'), state.current_half + (1 if state.half_started else 0))
        state.current_half = half
        state.half_started = True
        state.timeouts_used = _side_dict()
        self.timeout_windows = []
        self.half_start_at = event.created_at
        side = event.payload.get('raiding_side')
        if side in SIDES:
            state.active_side = side
        state.halves.setdefault(half, _side_dict())

    def _timeout(self, event: MatchEvent) -> None:
        side = self.side_of(event)
        if side is None:
            self.diverge(event, 'timeout for unknown team')
            return
        self.state.timeouts_used[side] += 1
        duration = _as_int(event.payload.get('duration'), self.settings.timeout_duration)
        self.timeout_windows.append((event.created_at, event.created_at + duration, side))

    def _substitution(self, event: MatchEvent) -> None:
        # Each substitution carries the full lineup after the swap.
        side = self.side_of(event)
        lineup = (event.payload or {}).get('lineup')
        if side is None or not lineup:
            self.diverge(event, 'substitution without a team lineup')
            return
        self.state.lineups[side] = tuple(lineup)

    def _scoring(self, event: MatchEvent) -> None:
        state = self.state
        p = event.payload or {}
        side = self.side_of(event)
        if side is None:
            self.diverge(event, 'scoring event for unknown team')
            return

        points = event.points_awarded
        if points < 0:
            self.diverge(event, 'negative points')
            points = 0

        if event.event_type in RAID_TYPES and p.get('raider_id') is not None:
            start_id = p.get('raid_start_id')
            if start_id is None or self.last_start is None or self.last_start.id != start_id:
                # Standalone contribution: still scored, but no timing inference.
                self.diverge(event, 'raid without a matching raid_start')

        state.scores[side] += points
        half = _as_int(p.get('half'), state.current_half)
        state.halves.setdefault(half, _side_dict())[side] += points

        self._stats(event, side, points)
        self._court(event, side)

        state.timeline.append({
            'id': event.id,
            'type': event.event_type,
            'side': side,
            'points': points,
            'half': half,
            'label': describe_event(event),
            'created_at': event.created_at,
        })

    def _player(self, player_id, side):
        stats = self.state.player_stats.get(player_id)
        if stats is None:
            stats = PlayerStats(player_id=player_id, side=side)
            self.state.player_stats[player_id] = stats
        return stats

    def _stats(self, event: MatchEvent, side: str, points: int) -> None:
        p = event.payload or {}
        kind = event.event_type
        stats = self.state.team_stats
        if kind == TECHNICAL:
            stats[side].technical_points += points
            return

        raiding = p.get('raiding_side')
        if raiding not in SIDES:
            raiding = other_side(side) if kind == TACKLE else side
        defending = other_side(raiding)
        raider_id = p.get('raider_id')
        touch = _as_int(p.get('touch_points'))
        bonus = 1 if p.get('bonus') else 0
        all_out_bonus = _as_int(p.get('all_out_bonus'))

        if p.get('all_out') or kind == ALL_OUT:
            stats[side].all_outs += 1

        if raider_id is not None:
            raider = self._player(raider_id, raiding)
            raider.raids += 1
            stats[raiding].raids += 1

        if kind in (RAID, ALL_OUT):
            stats[raiding].touch_points += touch
            stats[raiding].bonus_points += bonus
            stats[defending].outs += len(p.get('defenders_out') or ())
            if raider_id is not None:
                self._player(raider_id, raiding).raid_points += touch + bonus
                if points > 0:
                    stats[raiding].successful_raids += 1
                elif p.get('empty') or kind == RAID:
                    stats[raiding].empty_raids += 1
            return

        # tackle
        tackle_points = max(0, points - all_out_bonus)
        stats[side].tackle_points += tackle_points
        if tackle_points >= 2:
            stats[side].super_tackles += 1
        if raider_id is not None:
            stats[raiding].outs += 1
        tackler_id = p.get('tackler_id', event.player_id)
        if tackler_id is not None:
            stats[side].tackles += 1
            tackler = self._player(tackler_id, side)
            tackler.tackles += 1
            tackler.tackle_points += tackle_points

    def _court(self, event: MatchEvent, side: str) -> None:
        p = event.payload or {}
        self.out_ids |= set(p.get('outs') or ())
        self.out_ids -= set(p.get('revived') or ())
        raiding = p.get('raiding_side')
        if raiding in SIDES and event.event_type in RAID_TYPES:
            streak = p.get('empty_streak')
            self.state.empty_streaks[raiding] = _as_int(streak) if streak is not None else 0
        nxt = p.get('next_raiding_side')
        if nxt in SIDES:
            self.state.active_side = nxt

    def finish(self, now: float) -> MatchState:
        state = self.state
        settings = self.settings
        state.out_ids = frozenset(self.out_ids)
        state.active_raid = self._active_raid(now)

        for start, end, side in self.timeout_windows:
            if start <= now < end:
                state.timeout_side = side
                state.timeout_remaining = end - now

        if self.half_start_at is None:
            state.half_remaining = float(settings.half_duration)
            return state

        paused = sum(_overlap((s, e), self.half_start_at, now) for s, e, _ in self.timeout_windows)
        elapsed = now - self.half_start_at - paused
        state.half_remaining = max(0.0, settings.half_duration - elapsed)
        if state.half_remaining == 0 and state.current_half < settings.halves:
            half_end = self.half_start_at + settings.half_duration + paused
            state.in_break = True
            state.break_remaining = max(0.0, settings.halftime_break - (now - half_end))
        return state

    def _active_raid(self, now: float) -> Optional[ActiveRaid]:
        start = self.last_start
        if start is None:
            return None
        if not self.open_start:
            return None
        p = start.payload or {}
        duration = _as_int(p.get('raid_duration'), self.settings.raid_duration)
        return ActiveRaid(
            start_id=start.id,
            raider_id=p.get('raider_id', start.player_id),
            side=p.get('raiding_side') or self.side_of(start),
            started_at=start.created_at,
            duration=duration,
            remaining=max(0.0, duration - (now - start.created_at)),
            do_or_die=bool(p.get('do_or_die')),
        )


def reconstruct(
    events: Sequence[MatchEvent],
    team_a_id,
    team_b_id,
    settings: Optional[MatchSettings] = None,
    now: Optional[float] = None,
    first_raiding_side: str = 'A',
) -> MatchState:
    """Derive the full match state from ``events`` (oldest first).

    Deterministic for a given ``now``: the same list always yields an equal
    ``MatchState``.
    """
    settings = settings or MatchSettings()
    if now is None:
        now = time.time()
    run = _Reconstruction(team_a_id, team_b_id, settings, first_raiding_side)
    for event in events:
        run.feed(event)
    return run.finish(now)
