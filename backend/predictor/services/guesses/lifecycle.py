import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, ClassVar, List, Mapping, Optional, Union

from predictor.errors import (
    ActiveGuessExists,
    GuessNotFound,
    PlayerNotFound,
    PredictorError,
    SchedulingFailed,
    Unauthorized,
    ValidationError,
)
from predictor.models import Guess, GUESS_ACTIVE, GUESS_WON, GUESS_LOST, utcnow
from predictor.validation import validate_direction
from .scoring import guess_won, score_delta
from .store import GuessStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuessReceipt:
    guess_id: str
    player_id: str
    direction: str
    snapshot_price: Decimal
    created_at: datetime
    resolve_at: datetime
    scheduled: bool


@dataclass(frozen=True)
class Settlement:
    guess_id: str
    player_id: str
    status: str
    snapshot_price: Decimal
    resolve_price: Decimal
    already_resolved: bool
    new_score: Optional[int] = None

    @property
    def won(self) -> bool:
        return self.status == GUESS_WON

    @property
    def result(self) -> str:
        return 'win' if self.won else 'loss'

    @property
    def price_direction(self) -> str:
        return 'up' if self.resolve_price > self.snapshot_price else 'down'


@dataclass(frozen=True)
class TimerInvocation:
    """Settlement requested by the resolution scheduler."""

    guess_id: str
    player_id: str
    source: ClassVar[str] = 'timer'

    @classmethod
    def from_payload(cls, payload: Mapping) -> 'TimerInvocation':
        guess_id = payload.get('guess_id')
        player_id = payload.get('player_id')
        if not guess_id or not player_id:
            raise ValidationError('Required parameters missing')
        return cls(guess_id=guess_id, player_id=player_id)


@dataclass(frozen=True)
class DirectInvocation:
    """Settlement requested by an API call or an operator."""

    guess_id: str
    player_id: str
    source: ClassVar[str] = 'direct'


Invocation = Union[TimerInvocation, DirectInvocation]


def _new_id() -> str:
    return str(uuid.uuid4())


class GuessLifecycle:
    """The guess state machine: ACTIVE -> WON | LOST, exactly once.

    A player holds at most one ACTIVE guess. Creating a guess snapshots the
    live price and arms the scheduler; settling compares the live price with
    the snapshot and moves both the guess and the player's score. Settling a
    guess that is already WON or LOST returns the stored outcome and touches
    nothing, so late or repeated timer deliveries are harmless.
    """

    def __init__(self, store: GuessStore, oracle, scheduler,
                 clock: Callable[[], datetime] = utcnow,
                 resolution_delay: timedelta = timedelta(seconds=60),
                 win_delta: int = 1, loss_delta: int = -1,
                 id_factory: Callable[[], str] = _new_id):
        self.store = store
        self.oracle = oracle
        self.scheduler = scheduler
        self.clock = clock
        self.resolution_delay = resolution_delay
        self.win_delta = win_delta
        self.loss_delta = loss_delta
        self.id_factory = id_factory

    def create_guess(self, player_id: str, direction: str) -> GuessReceipt:
        direction = validate_direction(direction)
        if self.store.get_player(player_id) is None:
            raise PlayerNotFound()
        if self.store.find_active_guess(player_id) is not None:
            raise ActiveGuessExists()

        snapshot_price = self.oracle.current_price()
        now = self.clock()
        resolve_at = now + self.resolution_delay
        guess_id = self.id_factory()
        self.store.put_guess(Guess(
            id=guess_id,
            player_id=player_id,
            direction=direction,
            snapshot_price=snapshot_price,
            status=GUESS_ACTIVE,
            created_at=now,
            resolve_at=resolve_at,
        ))
        logger.info(
            f"[guess-create] guess={guess_id} player={player_id} direction={direction} "
            f"price={snapshot_price} resolve_at={resolve_at.isoformat()}"
        )

        # The guess stays ACTIVE even if no timer could be armed; it can
        # still be settled directly.
        scheduled = True
        try:
            self.scheduler.schedule_once(resolve_at, {'guess_id': guess_id, 'player_id': player_id})
        except SchedulingFailed as exc:
            scheduled = False
            logger.warning(f"[timer-unarmed] guess={guess_id} reason={exc}")
        except Exception as exc:
            scheduled = False
            logger.warning(
                f"[timer-unarmed] guess={guess_id} reason={type(exc).__name__}: {exc}",
                exc_info=True,
            )

        return GuessReceipt(
            guess_id=guess_id,
            player_id=player_id,
            direction=direction,
            snapshot_price=snapshot_price,
            created_at=now,
            resolve_at=resolve_at,
            scheduled=scheduled,
        )

    def settle(self, guess_id: str, player_id: str) -> Settlement:
        guess = self.store.get_guess(guess_id)
        if guess is None:
            raise GuessNotFound()
        if guess.player_id != player_id:
            raise Unauthorized()
        if guess.is_resolved:
            logger.info(f"[guess-settle-skip] guess={guess_id} status={guess.status}")
            return self._stored_outcome(guess)

        direction = guess.direction
        snapshot_price = guess.snapshot_price
        current_price = self.oracle.current_price()
        won = guess_won(direction, snapshot_price, current_price)
        status = GUESS_WON if won else GUESS_LOST
        delta = score_delta(won, self.win_delta, self.loss_delta)

        new_score = self.store.record_settlement(
            guess_id, player_id, status, current_price, self.clock(), delta,
        )
        if new_score is None:
            # Another settlement committed first
            logger.info(f"[guess-settle-race] guess={guess_id}")
            return self._stored_outcome(self.store.get_guess(guess_id))

        logger.info(
            f"[guess-settle] guess={guess_id} player={player_id} direction={direction} "
            f"snapshot={snapshot_price} final={current_price} status={status} score={new_score}"
        )
        return Settlement(
            guess_id=guess_id,
            player_id=player_id,
            status=status,
            snapshot_price=snapshot_price,
            resolve_price=current_price,
            already_resolved=False,
            new_score=new_score,
        )

    def resolve(self, invocation: Invocation) -> Settlement:
        """Settlement entry point for both timer and direct triggers."""
        if not isinstance(invocation, (TimerInvocation, DirectInvocation)):
            raise TypeError(f'Unsupported settlement invocation: {invocation!r}')
        logger.info(f"[guess-resolve] source={invocation.source} guess={invocation.guess_id}")
        return self.settle(invocation.guess_id, invocation.player_id)

    def settle_overdue(self, now: Optional[datetime] = None) -> List[Settlement]:
        """Settle every ACTIVE guess past its resolve time.

        Recovery path for timers that never fired. A guess that fails to
        settle is logged and skipped so the rest of the sweep still runs.
        """
        now = now or self.clock()
        pending = [
            DirectInvocation(guess_id=g.id, player_id=g.player_id)
            for g in self.store.find_overdue_guesses(now)
        ]
        settlements = []
        for invocation in pending:
            try:
                settlements.append(self.resolve(invocation))
            except PredictorError as exc:
                logger.error(f"[guess-sweep-failed] guess={invocation.guess_id} code={exc.code} reason={exc}")
        return settlements

    @staticmethod
    def _stored_outcome(guess: Guess) -> Settlement:
        return Settlement(
            guess_id=guess.id,
            player_id=guess.player_id,
            status=guess.status,
            snapshot_price=guess.snapshot_price,
            resolve_price=guess.resolve_price,
            already_resolved=True,
        )
