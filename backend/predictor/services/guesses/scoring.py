from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update

from predictor.models import Player, DIRECTION_UP, DIRECTION_DOWN


def guess_won(direction: str, snapshot_price: Decimal, current_price: Decimal) -> bool:
    """Decide a guess.

    The price only counts as risen when strictly above the snapshot, so an
    unchanged price loses for ``up`` and wins for ``down``.
    """
    price_rose = current_price > snapshot_price
    if direction == DIRECTION_UP:
        return price_rose
    if direction == DIRECTION_DOWN:
        return not price_rose
    raise ValueError(f'Unknown guess direction {direction!r}')


def score_delta(won: bool, win_delta: int = 1, loss_delta: int = -1) -> int:
    return win_delta if won else loss_delta


def apply_score_delta(session, player_id: str, delta: int, now) -> Optional[int]:
    """Adjust a player's score in place and return the new value.

    Gains are a single additive UPDATE. Losses only apply when the current
    score covers the whole loss; otherwise the score is left where it is
    (NULL normalized to 0). Both paths stamp ``last_active``. Returns None
    when the player does not exist. Does not commit.
    """
    no_sync = {'synchronize_session': False}
    if delta >= 0:
        result = session.execute(
            update(Player)
            .where(Player.id == player_id)
            .values(score=func.coalesce(Player.score, 0) + delta, last_active=now),
            execution_options=no_sync,
        )
    else:
        result = session.execute(
            update(Player)
            .where(Player.id == player_id, Player.score >= -delta)
            .values(score=Player.score + delta, last_active=now),
            execution_options=no_sync,
        )
        if result.rowcount == 0:
            # Floor at zero: keep the score, still record the activity
            result = session.execute(
                update(Player)
                .where(Player.id == player_id)
                .values(score=func.coalesce(Player.score, 0), last_active=now),
                execution_options=no_sync,
            )
    if result.rowcount == 0:
        return None
    return session.execute(select(Player.score).where(Player.id == player_id)).scalar_one()
