from .oracle import (
    COINGECKO_BTC_USD_URL,
    CoinGeckoPriceSource,
    FallbackPriceGenerator,
    PriceCache,
    PriceOracle,
    PriceQuote,
    to_price,
)

__all__ = [
    'COINGECKO_BTC_USD_URL',
    'CoinGeckoPriceSource',
    'FallbackPriceGenerator',
    'PriceCache',
    'PriceOracle',
    'PriceQuote',
    'to_price',
]
