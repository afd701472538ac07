import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Optional

import requests

from predictor.errors import UpstreamUnavailable
from predictor.models import utcnow

logger = logging.getLogger(__name__)

COINGECKO_BTC_USD_URL = 'https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd'
CENT = Decimal('0.01')
# Largest value a Numeric(14, 2) price column holds
MAX_PRICE = Decimal('999999999999.99')


def to_price(value) -> Decimal:
    """Normalize any numeric value to a 2-place decimal price."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    price: Decimal
    as_of: datetime


class CoinGeckoPriceSource:
    """Live BTC/USD quote from the CoinGecko simple price endpoint.

    Any transport error, timeout, non-2xx answer or schema deviation is raised
    as :class:`UpstreamUnavailable`; raw ``requests`` errors never escape.
    """

    def __init__(self, url: str = COINGECKO_BTC_USD_URL, timeout: float = 5.0, session=None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> Decimal:
        try:
            resp = self.session.get(
                self.url,
                timeout=self.timeout,
                headers={'Accept': 'application/json', 'User-Agent': 'btc-price-predictor/1.0'},
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.exceptions.Timeout as exc:
            raise UpstreamUnavailable(f'Price request timed out after {self.timeout}s') from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamUnavailable(f'Price request failed: {exc}') from exc
        except ValueError as exc:
            raise UpstreamUnavailable('Price response was not valid JSON') from exc

        usd = None
        if isinstance(payload, dict) and isinstance(payload.get('bitcoin'), dict):
            usd = payload['bitcoin'].get('usd')
        # bool is an int subclass; reject it explicitly
        if (isinstance(usd, bool) or not isinstance(usd, (int, float))
                or (isinstance(usd, float) and not math.isfinite(usd)) or usd <= 0):
            raise UpstreamUnavailable(f'Invalid response format from price source: {payload!r}')
        try:
            price = to_price(usd)
        except InvalidOperation as exc:
            raise UpstreamUnavailable(f'Price out of range from price source: {usd!r}') from exc
        if price > MAX_PRICE:
            raise UpstreamUnavailable(f'Price out of range from price source: {usd!r}')
        logger.info(f"[price-fetch] source=coingecko price={price}")
        return price


class FallbackPriceGenerator:
    """Synthetic price, uniform in [minimum, maximum]. Degraded mode only."""

    def __init__(self, minimum: float, maximum: float, rng: Optional[random.Random] = None):
        if minimum <= 0 or maximum < minimum:
            raise ValueError(f'Invalid fallback price range {minimum}..{maximum}')
        self.minimum = minimum
        self.maximum = maximum
        self.rng = rng or random.Random()

    def generate(self) -> Decimal:
        return to_price(self.rng.uniform(self.minimum, self.maximum))


class PriceCache:
    """Last known quote plus the instant it was fetched.

    The entry is kept after it expires so callers can fall back to it.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], datetime] = utcnow):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entry: Optional[PriceQuote] = None

    def fresh(self) -> Optional[PriceQuote]:
        entry = self._entry
        if entry is None:
            return None
        age = (self.clock() - entry.as_of).total_seconds()
        return entry if age < self.ttl_seconds else None

    def last(self) -> Optional[PriceQuote]:
        return self._entry

    def store(self, price: Decimal) -> PriceQuote:
        quote = PriceQuote(price=price, as_of=self.clock())
        self._entry = quote
        return quote


class PriceOracle:
    """Price access for the game.

    ``current_price`` is the uncached write path used when a guess is created
    or settled. ``cached_price`` is the read path: it serves a quote younger
    than the cache TTL, refreshes otherwise, and on a failed refresh keeps
    serving the stale quote. It only raises if nothing was ever cached.
    """

    def __init__(self, source, fallback: Optional[FallbackPriceGenerator] = None,
                 cache: Optional[PriceCache] = None):
        self.source = source
        self.fallback = fallback
        self.cache = cache or PriceCache(ttl_seconds=20)

    def current_price(self) -> Decimal:
        try:
            return self.source.fetch()
        except UpstreamUnavailable as exc:
            if self.fallback is None:
                logger.error(f"[price-unavailable] fallback=disabled reason={exc}")
                raise
            price = self.fallback.generate()
            logger.warning(f"[price-fallback] reason={exc} price={price}")
            return price

    def cached_price(self) -> PriceQuote:
        quote = self.cache.fresh()
        if quote is not None:
            return quote
        try:
            price = self.current_price()
        except UpstreamUnavailable:
            stale = self.cache.last()
            if stale is None:
                raise
            logger.warning(f"[price-cache-stale] price={stale.price} as_of={stale.as_of.isoformat()}")
            return stale
        return self.cache.store(price)
