from dataclasses import dataclass

TURN_POLICIES = ('alternate', 'manual')


@dataclass(frozen=True)
class MatchSettings:
    """Match configuration plus the rule knobs the engine reads.

    The first six fields are fixed at match creation. The rest come from the
    app config, so a league can change the super-tackle threshold or turn policy
    without touching the engine.
    """

    half_duration: int = 1200
    halves: int = 2
    raid_duration: int = 30
    halftime_break: int = 300
    max_timeouts_per_half: int = 2
    timeout_duration: int = 30
    super_tackle_threshold: int = 3
    do_or_die_after: int = 2
    all_out_bonus: int = 2
    turn_policy: str = 'alternate'

    def __post_init__(self):
        if self.turn_policy not in TURN_POLICIES:
            raise ValueError(f'Unknown turn policy: {self.turn_policy}')

    def to_dict(self):
        return {
            'half_duration': self.half_duration,
            'halves': self.halves,
            'raid_duration': self.raid_duration,
            'halftime_break': self.halftime_break,
            'max_timeouts_per_half': self.max_timeouts_per_half,
            'timeout_duration': self.timeout_duration,
            'super_tackle_threshold': self.super_tackle_threshold,
            'do_or_die_after': self.do_or_die_after,
            'all_out_bonus': self.all_out_bonus,
            'turn_policy': self.turn_policy,
        }
