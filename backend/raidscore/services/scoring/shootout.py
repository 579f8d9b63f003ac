"""Tie-breaker: setup wizard and the fixed-order shootout.

The wizard collects a squad and an ordered raider list per team, tosses a
coin and records the winner's choice. The shootout then runs alternating
raids in that order with plain point counting (no outs, no timer). A level
shootout goes to a single golden raid.
"""
import random
from typing import Any, Dict, List, Optional

from .errors import IllegalTransition, InvalidInput
from .roster import SIDES, Roster, other_side

STEPS = ('players_a', 'players_b', 'raiders_a', 'raiders_b', 'toss', 'choice', 'ready')
CHOICES = ('raid', 'defend')

SHOOTOUT = 'shootout'
GOLDEN_RAID = 'golden_raid'
COMPLETE = 'complete'


def first_raiding_side(toss_winner: str, choice: str) -> str:
    """The toss winner raids first only if they chose to."""
    if toss_winner not in SIDES:
        raise InvalidInput(f'Unknown side: {toss_winner}')
    if choice not in CHOICES:
        raise InvalidInput(f'Choice must be one of {CHOICES}')
    return toss_winner if choice == 'raid' else other_side(toss_winner)


class ShootoutSetup:
    def __init__(self, roster: Roster, squad_size: int = 7, raider_count: int = 5, rng: Optional[random.Random] = None):
        self.roster = roster
        self.squad_size = squad_size
        self.raider_count = raider_count
        self.rng = rng or random.Random()
        self.step = STEPS[0]
        self.players: Dict[str, List[Any]] = {side: [] for side in SIDES}
        self.raiders: Dict[str, List[Any]] = {side: [] for side in SIDES}
        self.toss_winner: Optional[str] = None
        self.toss_choice: Optional[str] = None

    def _require(self, *steps: str) -> None:
        if self.step not in steps:
            raise IllegalTransition(f'Setup is at {self.step}; expected {" or ".join(steps)}')

    def toggle_player(self, side: str, player_id) -> List[Any]:
        self._require(f'players_{side.lower()}')
        if self.roster.side_of(player_id) != side:
            raise InvalidInput('Player does not belong to that team')
        picked = self.players[side]
        if player_id in picked:
            picked.remove(player_id)
            # A dropped player cannot stay in the raider order either.
            if player_id in self.raiders[side]:
                self.raiders[side].remove(player_id)
        elif len(picked) >= self.squad_size:
            raise InvalidInput(f'Already selected {self.squad_size} players')
        else:
            picked.append(player_id)
        return list(picked)

    def toggle_raider(self, side: str, player_id) -> List[Any]:
        """Add the player at the next order position, or remove them and close the gap."""
        self._require(f'raiders_{side.lower()}')
        if player_id not in self.players[side]:
            raise InvalidInput('Raiders must come from the selected players')
        order = self.raiders[side]
        if player_id in order:
            order.remove(player_id)
        elif len(order) >= self.raider_count:
            raise InvalidInput(f'Already selected {self.raider_count} raiders')
        else:
            order.append(player_id)
        return list(order)

    def can_proceed(self) -> bool:
        if self.step.startswith('players_'):
            return len(self.players[self.step[-1].upper()]) == self.squad_size
        if self.step.startswith('raiders_'):
            return len(self.raiders[self.step[-1].upper()]) == self.raider_count
        if self.step == 'toss':
            return self.toss_winner is not None
        if self.step == 'choice':
            return self.toss_choice is not None
        return False

    def next(self) -> str:
        if self.step in ('toss', 'choice', 'ready'):
            raise IllegalTransition(f'Use the {self.step} action to continue')
        if not self.can_proceed():
            raise InvalidInput('Selection is incomplete')
        self.step = STEPS[STEPS.index(self.step) + 1]
        return self.step

    def back(self) -> str:
        """Return to the previous selection step; the toss cannot be undone."""
        if self.step not in ('players_b', 'raiders_a', 'raiders_b', 'toss'):
            raise IllegalTransition(f'Cannot go back from {self.step}')
        self.step = STEPS[STEPS.index(self.step) - 1]
        return self.step

    def toss(self) -> str:
        self._require('toss')
        self.toss_winner = self.rng.choice(SIDES)
        self.step = 'choice'
        return self.toss_winner

    def choose(self, choice: str) -> str:
        self._require('choice')
        side = first_raiding_side(self.toss_winner, choice)
        self.toss_choice = choice
        self.step = 'ready'
        return side

    @property
    def first_raiding_side(self) -> Optional[str]:
        if self.toss_winner is None or self.toss_choice is None:
            return None
        return first_raiding_side(self.toss_winner, self.toss_choice)

    def start(self) -> 'Shootout':
        self._require('ready')
        return Shootout(self.raiders['A'], self.raiders['B'], self.first_raiding_side, rng=self.rng)

    def to_dict(self):
        return {
            'step': self.step,
            'players': {side: list(ids) for side, ids in self.players.items()},
            'raiders': {side: list(ids) for side, ids in self.raiders.items()},
            'toss_winner': self.toss_winner,
            'toss_choice': self.toss_choice,
            'first_raiding_side': self.first_raiding_side,
            'can_proceed': self.can_proceed(),
        }


class Shootout:
    def __init__(self, raiders_a, raiders_b, first_side: str, rng: Optional[random.Random] = None):
        if len(raiders_a) != len(raiders_b):
            raise InvalidInput('Both teams need the same number of shootout raiders')
        self.raiders = {'A': list(raiders_a), 'B': list(raiders_b)}
        self.first_side = first_side
        self.rng = rng or random.Random()
        self.raids: List[Dict[str, Any]] = []
        self.phase = SHOOTOUT
        self.golden_side: Optional[str] = None
        self.winner: Optional[str] = None

    @property
    def order(self):
        second = other_side(self.first_side)
        seq = []
        for a, b in zip(self.raiders[self.first_side], self.raiders[second]):
            seq.append((self.first_side, a))
            seq.append((second, b))
        return seq

    @property
    def total_raids(self) -> int:
        return len(self.order)

    @property
    def scores(self) -> Dict[str, int]:
        totals = {side: 0 for side in SIDES}
        for raid in self.raids:
            if raid['phase'] == SHOOTOUT:
                totals[raid['side']] += raid['points']
        return totals

    @property
    def current(self):
        """(side, raider_id) of the next raid, or None when finished."""
        if self.phase == SHOOTOUT:
            return self.order[len(self.raids)]
        if self.phase == GOLDEN_RAID:
            return (self.golden_side, None)
        return None

    def record(self, points: int, raider_id=None) -> Dict[str, Any]:
        if self.phase == COMPLETE:
            raise IllegalTransition('The shootout is over')
        if not isinstance(points, int) or points < 0:
            raise InvalidInput('Points must be a non-negative integer')
        side, expected = self.current

        if self.phase == GOLDEN_RAID:
            if raider_id is not None and raider_id not in self.raiders[side]:
                raise InvalidInput('Golden raider must be one of the shootout raiders')
            raid = {'phase': GOLDEN_RAID, 'side': side, 'raider_id': raider_id, 'points': points}
            self.raids.append(raid)
            self.winner = side if points > 0 else other_side(side)
            self.phase = COMPLETE
            return raid

        if raider_id is not None and raider_id != expected:
            raise InvalidInput('Raider is out of the agreed order')
        raid = {'phase': SHOOTOUT, 'side': side, 'raider_id': expected, 'points': points}
        self.raids.append(raid)
        if len(self.raids) == self.total_raids:
            scores = self.scores
            if scores['A'] != scores['B']:
                self.winner = 'A' if scores['A'] > scores['B'] else 'B'
                self.phase = COMPLETE
            else:
                self.golden_side = self.rng.choice(SIDES)
                self.phase = GOLDEN_RAID
        return raid

    def to_dict(self):
        current = self.current
        return {
            'phase': self.phase,
            'first_side': self.first_side,
            'raiders': {side: list(ids) for side, ids in self.raiders.items()},
            'raids': [dict(r) for r in self.raids],
            'scores': self.scores,
            'raids_taken': sum(1 for r in self.raids if r['phase'] == SHOOTOUT),
            'total_raids': self.total_raids,
            'current_side': current[0] if current else None,
            'current_raider_id': current[1] if current else None,
            'golden_side': self.golden_side,
            'winner': self.winner,
        }

    @classmethod
    def from_dict(cls, data, rng: Optional[random.Random] = None) -> 'Shootout':
        shootout = cls(data['raiders']['A'], data['raiders']['B'], data['first_side'], rng=rng)
        shootout.raids = [dict(r) for r in data.get('raids') or ()]
        shootout.phase = data.get('phase', SHOOTOUT)
        shootout.golden_side = data.get('golden_side')
        shootout.winner = data.get('winner')
        return shootout
