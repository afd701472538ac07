import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///predictor.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
    # Price source
    PRICE_API_URL = os.environ.get(
        'PRICE_API_URL',
        'https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd',
    )
    PRICE_REQUEST_TIMEOUT_SEC = float(os.environ.get('PRICE_REQUEST_TIMEOUT_SEC', '5'))
    PRICE_CACHE_TTL_SEC = float(os.environ.get('PRICE_CACHE_TTL_SEC', '20'))
    # Degraded mode when the price source is down
    FALLBACK_PRICE_ENABLED = _env_bool('FALLBACK_PRICE_ENABLED', True)
    FALLBACK_PRICE_MIN = float(os.environ.get('FALLBACK_PRICE_MIN', '45000'))
    FALLBACK_PRICE_MAX = float(os.environ.get('FALLBACK_PRICE_MAX', '55000'))
    # Guess lifecycle (seconds)
    GUESS_RESOLUTION_DELAY_SEC = int(os.environ.get('GUESS_RESOLUTION_DELAY_SEC', '60'))
    SCORE_WIN = int(os.environ.get('SCORE_WIN', '1'))
    SCORE_LOSS = int(os.environ.get('SCORE_LOSS', '-1'))
    # Players
    PLAYER_NAME_MIN_LENGTH = int(os.environ.get('PLAYER_NAME_MIN_LENGTH', '2'))
    PLAYER_NAME_MAX_LENGTH = int(os.environ.get('PLAYER_NAME_MAX_LENGTH', '50'))
    RECENT_GUESSES_LIMIT = int(os.environ.get('RECENT_GUESSES_LIMIT', '5'))
    # Timer threads are off under TESTING unless explicitly enabled
    ENABLE_SCHEDULER_IN_TESTS = _env_bool('ENABLE_SCHEDULER_IN_TESTS', False)
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
