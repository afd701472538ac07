from flask import Blueprint, jsonify, current_app

from predictor.api import read_json_body
from predictor.errors import ValidationError
from predictor.models import epoch_ms, price_value
from predictor.services import get_services
from predictor.services.guesses import DirectInvocation
from predictor.validation import require_uuid, validate_direction

guesses = Blueprint('guesses', __name__)


@guesses.route('/guesses/<string:player_id>', methods=['GET'])
def get_player_guesses(player_id):
    require_uuid(player_id, 'user ID')
    limit = int(current_app.config.get('RECENT_GUESSES_LIMIT', 5))
    recent = get_services().store.find_recent_guesses(player_id, limit=limit)
    return jsonify({'latestGuesses': [g.to_dict() for g in recent]})


@guesses.route('/guess', methods=['POST'])
def make_guess():
    data = read_json_body()
    user_id = require_uuid(data.get('userId'), 'userId')
    direction = validate_direction(data.get('direction'))

    receipt = get_services().lifecycle.create_guess(user_id, direction)
    return jsonify({
        'message': 'Guess recorded',
        'guessId': receipt.guess_id,
        'timestamp': epoch_ms(receipt.created_at),
        'resolveAt': receipt.resolve_at.isoformat(),
        'snapshotPrice': price_value(receipt.snapshot_price),
        'scheduled': receipt.scheduled,
    }), 201


@guesses.route('/resolve', methods=['POST'])
def resolve_guess():
    """Manual settlement; the scheduler normally does this on its own."""
    data = read_json_body()
    guess_id = data.get('guessId')
    user_id = data.get('userId')
    if not guess_id or not user_id:
        raise ValidationError('Required parameters missing')

    settlement = get_services().lifecycle.resolve(DirectInvocation(guess_id=guess_id, player_id=user_id))
    if settlement.already_resolved:
        return jsonify({
            'message': 'Guess already resolved',
            'result': settlement.result,
            'resolvePrice': price_value(settlement.resolve_price),
            'alreadyResolved': True,
        })
    return jsonify({
        'message': 'Guess resolved',
        'result': settlement.result,
        'newScore': settlement.new_score,
        'alreadyResolved': False,
        'priceChange': {
            'initial': price_value(settlement.snapshot_price),
            'final': price_value(settlement.resolve_price),
            'direction': settlement.price_direction,
        },
    })
