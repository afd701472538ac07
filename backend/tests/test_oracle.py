import random
from decimal import Decimal

import pytest
import requests

from predictor.errors import UpstreamUnavailable
from predictor.services.prices import (
    CoinGeckoPriceSource,
    FallbackPriceGenerator,
    PriceCache,
    PriceOracle,
)

_NOT_JSON = object()


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f'{self.status_code} Server Error')

    def json(self):
        if self.payload is _NOT_JSON:
            raise ValueError('Expecting value')
        return self.payload


class FakeSession:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def get(self, url, timeout=None, headers=None):
        self.requests.append({'url': url, 'timeout': timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(outcome)


class CountingSource:
    def __init__(self, *prices):
        self.prices = list(prices)
        self.calls = 0

    def fetch(self):
        self.calls += 1
        value = self.prices.pop(0)
        if isinstance(value, Exception):
            raise value
        return Decimal(value)


def test_fetch_parses_and_rounds_price():
    session = FakeSession({'bitcoin': {'usd': 43123.456}})
    source = CoinGeckoPriceSource('https://prices.test/btc', timeout=5, session=session)

    assert source.fetch() == Decimal('43123.46')
    assert session.requests == [{'url': 'https://prices.test/btc', 'timeout': 5}]


@pytest.mark.parametrize('payload', [
    {},
    {'bitcoin': {}},
    {'bitcoin': {'usd': 'abc'}},
    {'bitcoin': {'usd': None}},
    {'bitcoin': {'usd': True}},
    {'bitcoin': {'usd': 0}},
    {'bitcoin': {'usd': -5}},
    {'bitcoin': {'usd': float('nan')}},
    {'bitcoin': {'usd': float('inf')}},
    {'bitcoin': {'usd': 1e40}},
    {'bitcoin': {'usd': 1e15}},
    {'bitcoin': {'usd': 10 ** 400}},
    {'bitcoin': 42},
    [1, 2, 3],
    _NOT_JSON,
])
def test_fetch_rejects_malformed_payloads(payload):
    source = CoinGeckoPriceSource(session=FakeSession(FakeResponse(payload)))
    with pytest.raises(UpstreamUnavailable):
        source.fetch()


@pytest.mark.parametrize('failure', [
    requests.exceptions.Timeout('read timed out'),
    requests.exceptions.ConnectionError('connection refused'),
    FakeResponse({'error': 'rate limited'}, status_code=429),
    FakeResponse({}, status_code=500),
])
def test_fetch_maps_transport_failures(failure):
    source = CoinGeckoPriceSource(session=FakeSession(failure))
    with pytest.raises(UpstreamUnavailable):
        source.fetch()


def test_fallback_generates_two_place_prices_in_range():
    gen = FallbackPriceGenerator(45000, 55000, rng=random.Random(1))
    for _ in range(50):
        price = gen.generate()
        assert Decimal('45000') <= price <= Decimal('55000')
        assert price == price.quantize(Decimal('0.01'))


def test_fallback_is_deterministic_for_a_seed():
    a = FallbackPriceGenerator(45000, 55000, rng=random.Random(7))
    b = FallbackPriceGenerator(45000, 55000, rng=random.Random(7))
    assert [a.generate() for _ in range(3)] == [b.generate() for _ in range(3)]


def test_fallback_rejects_bad_range():
    with pytest.raises(ValueError):
        FallbackPriceGenerator(55000, 45000)


def test_current_price_falls_back_when_source_fails():
    source = CountingSource(UpstreamUnavailable('down'))
    oracle = PriceOracle(source, FallbackPriceGenerator(45000, 55000, rng=random.Random(3)))

    price = oracle.current_price()

    assert Decimal('45000') <= price <= Decimal('55000')
    assert source.calls == 1


@pytest.mark.parametrize('usd', [float('nan'), float('inf'), 1e40])
def test_current_price_falls_back_on_unusable_quote(usd):
    source = CoinGeckoPriceSource(session=FakeSession({'bitcoin': {'usd': usd}}))
    oracle = PriceOracle(source, FallbackPriceGenerator(45000, 55000, rng=random.Random(5)))

    price = oracle.current_price()

    assert price.is_finite()
    assert Decimal('45000') <= price <= Decimal('55000')


def test_current_price_raises_without_fallback():
    oracle = PriceOracle(CountingSource(UpstreamUnavailable('down')), fallback=None)
    with pytest.raises(UpstreamUnavailable):
        oracle.current_price()


def test_current_price_bypasses_cache(clock):
    source = CountingSource('100.00', '101.00', '102.00')
    oracle = PriceOracle(source, cache=PriceCache(20, clock=clock))

    oracle.cached_price()
    assert oracle.current_price() == Decimal('101.00')
    assert oracle.current_price() == Decimal('102.00')
    assert oracle.cached_price().price == Decimal('100.00')


def test_cached_reads_within_ttl_are_identical(clock):
    source = CountingSource('50000.00', '51000.00')
    oracle = PriceOracle(source, cache=PriceCache(20, clock=clock))

    first = oracle.cached_price()
    clock.advance(19)
    second = oracle.cached_price()

    assert second == first
    assert second.as_of == first.as_of
    assert source.calls == 1


def test_cache_refreshes_after_ttl(clock):
    source = CountingSource('50000.00', '51000.00')
    oracle = PriceOracle(source, cache=PriceCache(20, clock=clock))

    first = oracle.cached_price()
    clock.advance(20)
    second = oracle.cached_price()

    assert second.price == Decimal('51000.00')
    assert second.as_of > first.as_of
    assert source.calls == 2


def test_stale_price_served_when_refresh_fails(clock):
    source = CountingSource('50000.00', UpstreamUnavailable('down'))
    oracle = PriceOracle(source, fallback=None, cache=PriceCache(20, clock=clock))

    first = oracle.cached_price()
    clock.advance(45)
    stale = oracle.cached_price()

    assert stale == first
    assert source.calls == 2


def test_cached_price_fails_if_nothing_was_ever_cached(clock):
    oracle = PriceOracle(CountingSource(UpstreamUnavailable('down')), fallback=None,
                         cache=PriceCache(20, clock=clock))
    with pytest.raises(UpstreamUnavailable):
        oracle.cached_price()


def test_cached_price_uses_fallback_before_stale_value(clock):
    source = CountingSource('50000.00', UpstreamUnavailable('down'))
    oracle = PriceOracle(source, FallbackPriceGenerator(45000, 55000, rng=random.Random(5)),
                         cache=PriceCache(20, clock=clock))

    oracle.cached_price()
    clock.advance(30)
    refreshed = oracle.cached_price()

    assert refreshed.as_of == clock()
    assert Decimal('45000') <= refreshed.price <= Decimal('55000')
