"""Error kinds raised by the game core.

Each class carries a stable ``code`` for API clients and the HTTP status the
error handler in :func:`predictor.create_app` answers with.
"""


class PredictorError(Exception):
    code = 'INTERNAL_ERROR'
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class ValidationError(PredictorError):
    code = 'VALIDATION_ERROR'
    status_code = 400
    default_message = 'Validation error'


class NotFound(PredictorError):
    code = 'NOT_FOUND'
    status_code = 404
    default_message = 'Not found'


class PlayerNotFound(NotFound):
    code = 'PLAYER_NOT_FOUND'
    default_message = 'Player not found'


class GuessNotFound(NotFound):
    code = 'GUESS_NOT_FOUND'
    default_message = 'Guess not found'


class Conflict(PredictorError):
    code = 'CONFLICT_ERROR'
    status_code = 409
    default_message = 'Request conflicts with existing data'


class ActiveGuessExists(Conflict):
    code = 'ACTIVE_GUESS_EXISTS'
    default_message = 'Player already has an active guess. Wait for it to resolve before making a new guess.'


class Unauthorized(PredictorError):
    code = 'UNAUTHORIZED'
    status_code = 403
    default_message = 'Unauthorized access'


class UpstreamUnavailable(PredictorError):
    """The live price source failed and no fallback could stand in."""

    code = 'PRICE_FETCH_ERROR'
    status_code = 503
    default_message = 'Failed to fetch Bitcoin price'


class SchedulingFailed(PredictorError):
    code = 'SCHEDULING_ERROR'
    status_code = 500
    default_message = 'Could not schedule guess resolution'
