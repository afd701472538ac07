from datetime import datetime, timezone
from sqlalchemy import text

from predictor import db

GUESS_ACTIVE = 'ACTIVE'
GUESS_WON = 'WON'
GUESS_LOST = 'LOST'
TERMINAL_STATUSES = (GUESS_WON, GUESS_LOST)

DIRECTION_UP = 'up'
DIRECTION_DOWN = 'down'
DIRECTIONS = (DIRECTION_UP, DIRECTION_DOWN)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_ms(value) -> int:
    return int(as_utc(value).timestamp() * 1000)


def price_value(value):
    return float(value) if value is not None else None


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_active = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    guesses = db.relationship('Guess', back_populates='player', lazy='dynamic')

    def to_dict(self):
        return {
            'playerId': self.id,
            'name': self.name,
            'score': self.score or 0,
            'createdAt': as_utc(self.created_at).isoformat(),
            'lastActive': as_utc(self.last_active).isoformat(),
        }


class Guess(db.Model):
    __tablename__ = 'guess'
    id = db.Column(db.String(36), primary_key=True)
    player_id = db.Column(db.String(36), db.ForeignKey('player.id'), nullable=False)
    direction = db.Column(db.String(8), nullable=False)
    snapshot_price = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=GUESS_ACTIVE)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolve_at = db.Column(db.DateTime(timezone=True), nullable=False)
    resolve_price = db.Column(db.Numeric(14, 2), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    player = db.relationship('Player', back_populates='guesses')

    __table_args__ = (
        db.Index('ix_guess_player_status', 'player_id', 'status'),
        db.Index('ix_guess_player_created', 'player_id', 'created_at'),
        # At most one ACTIVE guess per player, enforced by the database as well
        db.Index(
            'uq_guess_player_active', 'player_id', unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    @property
    def is_resolved(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def result(self):
        if not self.is_resolved:
            return None
        return 'win' if self.status == GUESS_WON else 'loss'

    def to_dict(self):
        data = {
            'guessId': self.id,
            'direction': self.direction,
            'timestamp': epoch_ms(self.created_at),
            'resolved': self.is_resolved,
        }
        if self.is_resolved:
            data['result'] = self.result
        return data
