import uuid

from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from predictor.api import read_json_body
from predictor.errors import PlayerNotFound
from predictor.models import Player, utcnow, price_value
from predictor.services import get_services
from predictor.validation import require_uuid, validate_player_name

players = Blueprint('players', __name__)


@players.route('/players', methods=['POST'])
def create_player():
    data = read_json_body()
    cfg = current_app.config
    name = validate_player_name(
        data.get('name'),
        min_length=int(cfg.get('PLAYER_NAME_MIN_LENGTH', 2)),
        max_length=int(cfg.get('PLAYER_NAME_MAX_LENGTH', 50)),
    )
    now = utcnow()
    player = Player(id=str(uuid.uuid4()), name=name, score=0, created_at=now, last_active=now)
    get_services().store.put_player(player)
    current_app.logger.info(f"[player-create] player={player.id}")
    return jsonify(player.to_dict()), 201


@players.route('/player/<string:player_id>', methods=['GET'])
def get_player_state(player_id):
    require_uuid(player_id, 'player ID')
    svc = get_services()
    player = svc.store.get_player(player_id)
    if player is None:
        raise PlayerNotFound()

    recent = svc.store.find_recent_guesses(player_id, limit=1)
    quote = svc.oracle.cached_price()
    payload = {
        'playerId': player.id,
        'name': player.name,
        'score': player.score or 0,
        'latestGuess': recent[0].to_dict() if recent else None,
        'currentPrice': price_value(quote.price),
        'priceAsOf': quote.as_of.isoformat(),
    }

    # Activity stamp is best effort; a failure here must not hide the state
    try:
        svc.store.touch_last_active(player_id)
    except SQLAlchemyError as exc:
        current_app.logger.warning(f"[player-touch-failed] player={player_id} reason={exc}")
    return jsonify(payload)
