from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .errors import StaleReference

SIDES = ('A', 'B')
COURT_SIZE = 7


def other_side(side: str) -> str:
    return 'B' if side == 'A' else 'A'


@dataclass(frozen=True)
class RosterPlayer:
    id: str
    name: str
    team_id: str
    jersey_number: Optional[int] = None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'team_id': self.team_id,
            'jersey_number': self.jersey_number,
        }


@dataclass(frozen=True)
class Roster:
    """Snapshot of both squads, fixed for the duration of one raid.

    Only the players in a side's lineup are on court; the rest of the squad
    sits on the bench and never counts towards all-outs or super tackles. An
    empty ``on_court_a``/``on_court_b`` means the first ``court_size`` players.
    """

    team_a_id: str
    team_b_id: str
    players_a: Tuple[RosterPlayer, ...] = field(default_factory=tuple)
    players_b: Tuple[RosterPlayer, ...] = field(default_factory=tuple)
    on_court_a: Tuple[str, ...] = ()
    on_court_b: Tuple[str, ...] = ()
    court_size: int = COURT_SIZE

    def team_id(self, side: str) -> str:
        return self.team_a_id if side == 'A' else self.team_b_id

    def players(self, side: str) -> Tuple[RosterPlayer, ...]:
        return self.players_a if side == 'A' else self.players_b

    def ids(self, side: str) -> Tuple[str, ...]:
        return tuple(p.id for p in self.players(side))

    def side_of(self, player_id: str) -> str:
        """Return the side a player belongs to, or raise StaleReference."""
        if player_id in self.ids('A'):
            return 'A'
        if player_id in self.ids('B'):
            return 'B'
        raise StaleReference(f'Player {player_id} is not on either roster')

    def lineup(self, side: str) -> Tuple[str, ...]:
        explicit = self.on_court_a if side == 'A' else self.on_court_b
        return tuple(explicit) if explicit else self.ids(side)[:self.court_size]

    def bench(self, side: str) -> Tuple[str, ...]:
        lineup = self.lineup(side)
        return tuple(pid for pid in self.ids(side) if pid not in lineup)

    def with_lineups(self, lineups: Dict[str, Sequence[str]]) -> 'Roster':
        """Copy with the lineups a log of substitutions produced."""
        if not lineups:
            return self
        return replace(
            self,
            on_court_a=tuple(lineups.get('A') or self.on_court_a),
            on_court_b=tuple(lineups.get('B') or self.on_court_b),
        )

    def eligible(self, side: str, out_ids: Iterable[str]) -> Tuple[str, ...]:
        """Lineup players of ``side`` not in the out-set."""
        out = set(out_ids)
        return tuple(pid for pid in self.lineup(side) if pid not in out)

    def out_on_side(self, side: str, out_ids: Iterable[str]) -> Tuple[str, ...]:
        out = set(out_ids)
        return tuple(pid for pid in self.lineup(side) if pid in out)
