from raidscore import db
from raidscore.services.scoring import MatchEvent, MatchSettings, Roster, RosterPlayer
import json
import time

MATCH_STATUSES = ('upcoming', 'live', 'completed')


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    emblem_url = db.Column(db.String(256), nullable=True)
    players = db.relationship('Player', back_populates='team', order_by='Player.id')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'emblem_url': self.emblem_url,
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    jersey_number = db.Column(db.Integer, nullable=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False, index=True)
    team = db.relationship('Team', back_populates='players')

    def to_roster_player(self):
        return RosterPlayer(id=self.id, name=self.name, team_id=self.team_id, jersey_number=self.jersey_number)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'jersey_number': self.jersey_number,
            'team_id': self.team_id,
        }


class Match(db.Model):
    __tablename__ = 'match_record'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, default='Match')
    team_a_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    team_b_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    status = db.Column(db.String(16), default='upcoming', nullable=False) # upcoming, live, completed
    scorer_id = db.Column(db.Integer, nullable=True)
    first_raiding_side = db.Column(db.String(1), default='A', nullable=False)
    # Settings fixed at creation
    half_duration = db.Column(db.Integer, nullable=False, default=1200)
    halves = db.Column(db.Integer, nullable=False, default=2)
    raid_duration = db.Column(db.Integer, nullable=False, default=30)
    halftime_break = db.Column(db.Integer, nullable=False, default=300)
    max_timeouts_per_half = db.Column(db.Integer, nullable=False, default=2)
    timeout_duration = db.Column(db.Integer, nullable=False, default=30)
    # Cache of the last materialized reconstruction; always rebuildable from events
    team_a_score = db.Column(db.Integer, nullable=False, default=0)
    team_b_score = db.Column(db.Integer, nullable=False, default=0)
    current_half = db.Column(db.Integer, nullable=False, default=1)
    active_side = db.Column(db.String(1), nullable=False, default='A')
    out_player_ids = db.Column(db.Text, nullable=True)  # JSON-encoded list of player ids
    shootout_state = db.Column(db.Text, nullable=True)  # JSON-encoded shootout progress
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    ended_at = db.Column(db.Float, nullable=True)

    team_a = db.relationship('Team', foreign_keys=[team_a_id])
    team_b = db.relationship('Team', foreign_keys=[team_b_id])
    events = db.relationship('EventRecord', backref='match', lazy='dynamic', order_by='EventRecord.seq')

    @classmethod
    def from_config(cls, config, **kwargs):
        """New match with settings defaulted from the app config."""
        defaults = {
            'half_duration': int(config.get('HALF_DURATION_SEC', 1200)),
            'halves': int(config.get('NUMBER_OF_HALVES', 2)),
            'raid_duration': int(config.get('RAID_DURATION_SEC', 30)),
            'halftime_break': int(config.get('HALFTIME_BREAK_SEC', 300)),
            'max_timeouts_per_half': int(config.get('MAX_TIMEOUTS_PER_HALF', 2)),
            'timeout_duration': int(config.get('TIMEOUT_DURATION_SEC', 30)),
        }
        defaults.update({k: v for k, v in kwargs.items() if v is not None})
        return cls(**defaults)

    def settings(self, config) -> MatchSettings:
        return MatchSettings(
            half_duration=self.half_duration,
            halves=self.halves,
            raid_duration=self.raid_duration,
            halftime_break=self.halftime_break,
            max_timeouts_per_half=self.max_timeouts_per_half,
            timeout_duration=self.timeout_duration,
            super_tackle_threshold=int(config.get('SUPER_TACKLE_THRESHOLD', 3)),
            do_or_die_after=int(config.get('DO_OR_DIE_AFTER', 2)),
            all_out_bonus=int(config.get('ALL_OUT_BONUS', 2)),
            turn_policy=config.get('TURN_POLICY', 'alternate'),
        )

    def roster(self, court_size=7) -> Roster:
        return Roster(
            court_size=court_size,
            team_a_id=self.team_a_id,
            team_b_id=self.team_b_id,
            players_a=tuple(p.to_roster_player() for p in self.team_a.players),
            players_b=tuple(p.to_roster_player() for p in self.team_b.players),
        )

    def to_dict(self, include_players=True):
        try:
            out_ids = json.loads(self.out_player_ids) if self.out_player_ids else []
        except ValueError:
            out_ids = []
        try:
            shootout = json.loads(self.shootout_state) if self.shootout_state else None
        except ValueError:
            shootout = None
        data = {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'scorer_id': self.scorer_id,
            'team_a': self.team_a.to_dict() if self.team_a else None,
            'team_b': self.team_b.to_dict() if self.team_b else None,
            'team_a_score': self.team_a_score,
            'team_b_score': self.team_b_score,
            'current_half': self.current_half,
            'active_side': self.active_side,
            'first_raiding_side': self.first_raiding_side,
            'out_player_ids': out_ids,
            'shootout': shootout,
            'settings': {
                'half_duration': self.half_duration,
                'halves': self.halves,
                'raid_duration': self.raid_duration,
                'halftime_break': self.halftime_break,
                'max_timeouts_per_half': self.max_timeouts_per_half,
                'timeout_duration': self.timeout_duration,
            },
            'created_at': self.created_at,
            'ended_at': self.ended_at,
        }
        if include_players:
            data['players_a'] = [p.to_dict() for p in self.team_a.players] if self.team_a else []
            data['players_b'] = [p.to_dict() for p in self.team_b.players] if self.team_b else []
        return data


class EventRecord(db.Model):
    """Persisted MatchEvent. Rows are only ever inserted, or retracted from the tail by an undo."""
    __tablename__ = 'match_event'
    seq = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(36), unique=True, nullable=False, index=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match_record.id'), nullable=False, index=True)
    event_type = db.Column(db.String(32), nullable=False)
    team_id = db.Column(db.Integer, nullable=True)
    player_id = db.Column(db.Integer, nullable=True)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)
    payload = db.Column(db.Text, nullable=True)  # JSON-encoded inputs behind the points
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    @classmethod
    def from_event(cls, event: MatchEvent):
        return cls(
            event_id=event.id,
            match_id=event.match_id,
            event_type=event.event_type,
            team_id=event.team_id,
            player_id=event.player_id,
            points_awarded=event.points_awarded,
            payload=json.dumps(event.payload),
            created_at=event.created_at,
        )

    def to_event(self) -> MatchEvent:
        try:
            payload = json.loads(self.payload) if self.payload else {}
        except ValueError:
            payload = {}
        return MatchEvent(
            id=self.event_id,
            match_id=self.match_id,
            event_type=self.event_type,
            team_id=self.team_id,
            player_id=self.player_id,
            points_awarded=self.points_awarded or 0,
            payload=payload,
            created_at=self.created_at,
        )

    def to_dict(self):
        return self.to_event().to_dict()
