import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from predictor import db
from predictor.errors import ActiveGuessExists, Conflict, PlayerNotFound
from predictor.models import Guess, Player, GUESS_ACTIVE, utcnow
from .scoring import apply_score_delta

logger = logging.getLogger(__name__)


class GuessStore:
    """Player and guess persistence on top of the Flask-SQLAlchemy session.

    Every mutating call commits unless ``commit=False`` is passed, in which
    case the caller owns the transaction.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    @property
    def session(self):
        return db.session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    # ---- players ----

    def put_player(self, player: Player) -> Player:
        if self.get_player(player.id) is not None:
            raise Conflict('Player creation failed due to conflict')
        self.session.add(player)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict('Player creation failed due to conflict') from exc
        return player

    def get_player(self, player_id: str) -> Optional[Player]:
        return self.session.get(Player, player_id)

    def touch_last_active(self, player_id: str) -> None:
        result = self.session.execute(
            update(Player).where(Player.id == player_id).values(last_active=self.clock()),
            execution_options={'synchronize_session': False},
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise PlayerNotFound()
        self._commit()

    def adjust_player_score(self, player_id: str, delta: int, commit: bool = True) -> int:
        new_score = apply_score_delta(self.session, player_id, delta, self.clock())
        if new_score is None:
            self.session.rollback()
            raise PlayerNotFound()
        if commit:
            self._commit()
        return new_score

    # ---- guesses ----

    def put_guess(self, guess: Guess) -> Guess:
        """Insert a new guess; fails if the id exists or the player is mid-guess."""
        guess_id, player_id = guess.id, guess.player_id
        if self.get_guess(guess_id) is not None:
            raise Conflict('Guess creation failed due to conflict')
        self.session.add(guess)
        try:
            self.session.commit()
        except IntegrityError as exc:
            # Lost a race against a concurrent insert
            self.session.rollback()
            if self.get_guess(guess_id) is not None:
                raise Conflict('Guess creation failed due to conflict') from exc
            if self.find_active_guess(player_id) is not None:
                raise ActiveGuessExists() from exc
            raise Conflict('Guess creation failed due to conflict') from exc
        return guess

    def get_guess(self, guess_id: str) -> Optional[Guess]:
        return self.session.get(Guess, guess_id)

    def find_active_guess(self, player_id: str) -> Optional[Guess]:
        return Guess.query.filter_by(player_id=player_id, status=GUESS_ACTIVE).first()

    def find_recent_guesses(self, player_id: str, limit: int = 5) -> List[Guess]:
        return (
            Guess.query.filter_by(player_id=player_id)
            .order_by(Guess.created_at.desc())
            .limit(limit)
            .all()
        )

    def find_overdue_guesses(self, now: datetime) -> List[Guess]:
        return (
            Guess.query.filter(Guess.status == GUESS_ACTIVE, Guess.resolve_at <= now)
            .order_by(Guess.resolve_at)
            .all()
        )

    def update_guess_terminal(self, guess_id: str, status: str, resolve_price: Decimal,
                              resolved_at: datetime, commit: bool = True) -> bool:
        """Move an ACTIVE guess to a terminal status.

        Returns False, changing nothing, when the guess is no longer ACTIVE.
        """
        result = self.session.execute(
            update(Guess)
            .where(Guess.id == guess_id, Guess.status == GUESS_ACTIVE)
            .values(status=status, resolve_price=resolve_price, resolved_at=resolved_at),
            execution_options={'synchronize_session': False},
        )
        if result.rowcount == 0:
            self.session.rollback()
            return False
        if commit:
            self._commit()
        return True

    def record_settlement(self, guess_id: str, player_id: str, status: str,
                          resolve_price: Decimal, resolved_at: datetime, delta: int) -> Optional[int]:
        """Settle a guess and adjust its owner's score in one transaction.

        Returns the new score, or None if the guess had already left ACTIVE.
        """
        try:
            if not self.update_guess_terminal(guess_id, status, resolve_price, resolved_at, commit=False):
                return None
            new_score = self.adjust_player_score(player_id, delta, commit=False)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error(f"[guess-settle-rollback] guess={guess_id} player={player_id}", exc_info=True)
            raise
        return new_score
