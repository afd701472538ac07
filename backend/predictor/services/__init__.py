"""Game domain services: prices, guess storage, lifecycle and timers.

Routes and CLI commands reach these through :func:`get_services`, keeping
transport concerns separated from core game mechanics.
"""
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

EXTENSION_KEY = 'predictor'


@dataclass
class Services:
    store: object
    oracle: object
    scheduler: object
    lifecycle: object


def build_services(app) -> Services:
    from .guesses import DisabledScheduler, GuessLifecycle, GuessStore, ThreadTimerScheduler
    from .prices import CoinGeckoPriceSource, FallbackPriceGenerator, PriceCache, PriceOracle

    cfg = app.config
    source = CoinGeckoPriceSource(
        cfg.get('PRICE_API_URL'),
        timeout=float(cfg.get('PRICE_REQUEST_TIMEOUT_SEC', 5)),
    )
    fallback = None
    if cfg.get('FALLBACK_PRICE_ENABLED', True):
        fallback = FallbackPriceGenerator(
            float(cfg.get('FALLBACK_PRICE_MIN', 45000)),
            float(cfg.get('FALLBACK_PRICE_MAX', 55000)),
        )
    oracle = PriceOracle(source, fallback, PriceCache(float(cfg.get('PRICE_CACHE_TTL_SEC', 20))))

    # No background timers in TESTING unless explicitly requested
    if cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'):
        scheduler = DisabledScheduler()
    else:
        scheduler = ThreadTimerScheduler(app, heartbeat=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)))

    store = GuessStore()
    lifecycle = GuessLifecycle(
        store,
        oracle,
        scheduler,
        resolution_delay=timedelta(seconds=int(cfg.get('GUESS_RESOLUTION_DELAY_SEC', 60))),
        win_delta=int(cfg.get('SCORE_WIN', 1)),
        loss_delta=int(cfg.get('SCORE_LOSS', -1)),
    )
    return Services(store=store, oracle=oracle, scheduler=scheduler, lifecycle=lifecycle)


def get_services(app=None) -> Services:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
