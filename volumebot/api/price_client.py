from typing import Optional

from loguru import logger

from volumebot.api.api_client import ApiClient, ApiClientError
from volumebot.config import COINGECKO_PRICE_URL, FALLBACK_SOL_PRICE_USD, HTTP_TIMEOUT


class PriceClient(ApiClient):
    """Fetches the SOL/USD price used to size trades."""

    def __init__(
        self,
        price_url: str = COINGECKO_PRICE_URL,
        fallback_price: float = FALLBACK_SOL_PRICE_USD,
        timeout: int = HTTP_TIMEOUT,
        **kwargs
    ):
        super().__init__(price_url, timeout=timeout, **kwargs)
        self.fallback_price = fallback_price
        self.last_price: Optional[float] = None

    def get_sol_price(self) -> float:
        """
        Get the current SOL price in USD.

        Falls back to the last known price, then to the configured fallback, when
        the price service is unavailable.
        """
        try:
            data = self._make_request('get', '')
            price = float(data['solana']['usd'])
        except (ApiClientError, KeyError, TypeError, ValueError) as e:
            fallback = self.last_price or self.fallback_price
            logger.warning(f"Error fetching SOL price, using {fallback}: {str(e)}")
            return fallback

        self.last_price = price
        return price

    def usd_to_sol(self, amount_usd: float) -> float:
        return amount_usd / self.get_sol_price()
