"""Point computation for a single raid.

Pure functions over a ``RaidContext`` (roster, out-set, empty-raid streak and
settings). Nothing here touches the log; the raid machine turns a
``RaidResult`` into an event.

Scoring summary:

- success: touch points + 1 for a bonus. Touched defenders go out. If that
  leaves the defenders with nobody on court the raiders get the all-out bonus
  and the defending team is revived. A success worth 0 is an empty raid.
- fail: the raider goes out and the defenders score 1, or 2 for a super
  tackle when they had ``super_tackle_threshold`` or fewer players on court.
- empty: nothing happens and the raiding team's empty streak grows. Once the
  streak reaches ``do_or_die_after`` the next zero-point raid puts the raider
  out and gives the defenders 1 point.
- technical: a direct award with no court changes.
"""
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Tuple

from .errors import InvalidInput
from .events import ALL_OUT, RAID, TACKLE, TECHNICAL
from .roster import Roster, other_side
from .settings import MatchSettings

SUCCESS = 'success'
FAIL = 'fail'
EMPTY = 'empty'
OUTCOMES = (SUCCESS, FAIL, EMPTY)


def _flag(data, key) -> bool:
    # JSON booleans only; "false" must not read as true.
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidInput(f'{key} must be true or false')
    return value


@dataclass(frozen=True)
class RaidAction:
    raider_id: Any
    outcome: str
    touch_points: int = 0
    bonus_point: bool = False
    defenders_out: Tuple[Any, ...] = ()
    raider_out: bool = False
    tackler_id: Any = None
    self_out: bool = False

    @classmethod
    def from_dict(cls, data, raider_id=None):
        try:
            touch_points = int(data.get('touch_points') or 0)
        except (TypeError, ValueError):
            raise InvalidInput('touch_points must be an integer')
        return cls(
            raider_id=data.get('raider_id', raider_id),
            outcome=data.get('outcome'),
            touch_points=touch_points,
            bonus_point=_flag(data, 'bonus_point'),
            defenders_out=tuple(data.get('defenders_out') or ()),
            raider_out=_flag(data, 'raider_out'),
            tackler_id=data.get('tackler_id'),
            self_out=_flag(data, 'self_out'),
        )

    def to_dict(self):
        return {
            'raider_id': self.raider_id,
            'outcome': self.outcome,
            'touch_points': self.touch_points,
            'bonus_point': self.bonus_point,
            'defenders_out': list(self.defenders_out),
            'raider_out': self.raider_out,
            'tackler_id': self.tackler_id,
            'self_out': self.self_out,
        }


@dataclass(frozen=True)
class RaidContext:
    roster: Roster
    raiding_side: str
    out_ids: FrozenSet[Any] = frozenset()
    empty_streak: int = 0
    settings: MatchSettings = field(default_factory=MatchSettings)

    @property
    def defending_side(self) -> str:
        return other_side(self.raiding_side)

    @property
    def do_or_die(self) -> bool:
        return self.empty_streak >= self.settings.do_or_die_after


@dataclass(frozen=True)
class RaidResult:
    event_type: str
    scoring_side: str
    points: int
    raiding_side: Optional[str] = None
    raider_id: Any = None
    touch_points: int = 0
    bonus: bool = False
    all_out_bonus: int = 0
    defenders_out: Tuple[Any, ...] = ()
    outs: Tuple[Any, ...] = ()
    revived: Tuple[Any, ...] = ()
    all_out: bool = False
    super_tackle: bool = False
    do_or_die: bool = False
    empty: bool = False
    self_out: bool = False
    tackler_id: Any = None
    empty_streak: int = 0
    defenders_on_court: int = 0

    def apply(self, out_ids) -> FrozenSet[Any]:
        """Out-set after this result."""
        return frozenset((set(out_ids) | set(self.outs)) - set(self.revived))

    def to_payload(self):
        return {
            'raiding_side': self.raiding_side,
            'raider_id': self.raider_id,
            'touch_points': self.touch_points,
            'bonus': self.bonus,
            'all_out_bonus': self.all_out_bonus,
            'defenders_out': list(self.defenders_out),
            'outs': list(self.outs),
            'revived': list(self.revived),
            'all_out': self.all_out,
            'super_tackle': self.super_tackle,
            'do_or_die': self.do_or_die,
            'empty': self.empty,
            'self_out': self.self_out,
            'tackler_id': self.tackler_id,
            'empty_streak': self.empty_streak,
            'defenders_on_court': self.defenders_on_court,
        }


def validate_raider(raider_id, ctx: RaidContext) -> None:
    side = ctx.roster.side_of(raider_id)
    if side != ctx.raiding_side:
        raise InvalidInput('Raider must belong to the raiding team')
    if raider_id not in ctx.roster.lineup(side):
        raise InvalidInput('Raider is on the bench')
    if raider_id in ctx.out_ids:
        raise InvalidInput('Raider is already out')


def _validate_defender(player_id, ctx: RaidContext, role: str) -> None:
    if ctx.roster.side_of(player_id) != ctx.defending_side:
        raise InvalidInput(f'{role.capitalize()} must belong to the defending team')
    if player_id not in ctx.roster.lineup(ctx.defending_side):
        raise InvalidInput(f'{role.capitalize()} is on the bench')
    if player_id in ctx.out_ids:
        raise InvalidInput(f'{role.capitalize()} is already out')


def validate_action(action: RaidAction, ctx: RaidContext) -> None:
    if action.outcome not in OUTCOMES:
        raise InvalidInput(f'Unknown outcome: {action.outcome}')
    if action.raider_id is None:
        raise InvalidInput('A raider must be selected')
    validate_raider(action.raider_id, ctx)
    if action.touch_points < 0:
        raise InvalidInput('touch_points cannot be negative')

    if action.outcome == SUCCESS:
        if len(set(action.defenders_out)) != len(action.defenders_out):
            raise InvalidInput('A defender was selected more than once')
        for pid in action.defenders_out:
            _validate_defender(pid, ctx, 'defender')
        if action.touch_points != len(action.defenders_out):
            raise InvalidInput('touch_points must equal the number of defenders declared out')
        if action.raider_out or action.self_out or action.tackler_id is not None:
            raise InvalidInput('A successful raid cannot put the raider out')
        return

    if action.touch_points or action.defenders_out or action.bonus_point:
        raise InvalidInput(f'A {action.outcome} raid cannot award raid points')

    if action.outcome == FAIL:
        if action.self_out:
            if action.tackler_id is not None:
                raise InvalidInput('A self-out has no tackler')
            return
        if action.tackler_id is None:
            raise InvalidInput('Select the defender who made the tackle')
        _validate_defender(action.tackler_id, ctx, 'tackler')
        return

    if action.raider_out or action.self_out or action.tackler_id is not None:
        raise InvalidInput('An empty raid cannot put the raider out')


def _raider_caught(ctx: RaidContext, raider_id, tackler_id=None, self_out=False, do_or_die=False) -> RaidResult:
    roster, settings = ctx.roster, ctx.settings
    defenders_on_court = len(roster.eligible(ctx.defending_side, ctx.out_ids))
    super_tackle = (
        tackler_id is not None
        and defenders_on_court <= settings.super_tackle_threshold
    )
    points = 2 if super_tackle else 1

    outs = (raider_id,)
    revived = ()
    all_out = False
    after = set(ctx.out_ids) | set(outs)
    if not roster.eligible(ctx.raiding_side, after):
        all_out = True
        revived = roster.out_on_side(ctx.raiding_side, after)

    return RaidResult(
        event_type=TACKLE,
        scoring_side=ctx.defending_side,
        points=points + (settings.all_out_bonus if all_out else 0),
        raiding_side=ctx.raiding_side,
        raider_id=raider_id,
        all_out_bonus=settings.all_out_bonus if all_out else 0,
        outs=outs,
        revived=revived,
        all_out=all_out,
        super_tackle=super_tackle,
        do_or_die=do_or_die,
        self_out=self_out,
        tackler_id=tackler_id,
        empty_streak=0,
        defenders_on_court=defenders_on_court,
    )


def resolve_raid(action: RaidAction, ctx: RaidContext) -> RaidResult:
    validate_action(action, ctx)
    roster, settings = ctx.roster, ctx.settings

    if action.outcome == FAIL:
        return _raider_caught(ctx, action.raider_id, action.tackler_id, self_out=action.self_out, do_or_die=ctx.do_or_die)

    touch = action.touch_points if action.outcome == SUCCESS else 0
    bonus = action.bonus_point and action.outcome == SUCCESS
    raid_points = touch + (1 if bonus else 0)
    defenders_on_court = len(roster.eligible(ctx.defending_side, ctx.out_ids))

    if raid_points == 0:
        if ctx.do_or_die:
            return _raider_caught(ctx, action.raider_id, do_or_die=True)
        return RaidResult(
            event_type=RAID,
            scoring_side=ctx.raiding_side,
            points=0,
            raiding_side=ctx.raiding_side,
            raider_id=action.raider_id,
            empty=True,
            empty_streak=ctx.empty_streak + 1,
            defenders_on_court=defenders_on_court,
        )

    outs = tuple(action.defenders_out)
    after = set(ctx.out_ids) | set(outs)
    all_out = bool(outs) and not roster.eligible(ctx.defending_side, after)
    revived = roster.out_on_side(ctx.defending_side, after) if all_out else ()
    all_out_bonus = settings.all_out_bonus if all_out else 0

    return RaidResult(
        event_type=ALL_OUT if all_out else RAID,
        scoring_side=ctx.raiding_side,
        points=raid_points + all_out_bonus,
        raiding_side=ctx.raiding_side,
        raider_id=action.raider_id,
        touch_points=touch,
        bonus=bonus,
        all_out_bonus=all_out_bonus,
        defenders_out=outs,
        outs=outs,
        revived=revived,
        all_out=all_out,
        do_or_die=ctx.do_or_die,
        empty_streak=0,
        defenders_on_court=defenders_on_court,
    )


def technical_point(side: str, points: int = 1) -> RaidResult:
    if side not in ('A', 'B'):
        raise InvalidInput(f'Unknown side: {side}')
    if points < 1:
        raise InvalidInput('A technical award must be at least 1 point')
    return RaidResult(event_type=TECHNICAL, scoring_side=side, points=points)
