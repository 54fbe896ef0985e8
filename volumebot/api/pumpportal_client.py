"""
PumpPortal local-trade client.

The service builds an unsigned bonding-curve trade transaction and returns its raw
bytes; signing and submission stay with the caller.
"""

from typing import Union

from loguru import logger

from volumebot.api.api_client import ApiClient, ApiClientError
from volumebot.config import PUMPPORTAL_TRADE_URL, HTTP_TIMEOUT

DEFAULT_POOL = "pump"


class PumpPortalClient(ApiClient):
    """Client for the PumpPortal trade-local endpoint."""

    def __init__(self, trade_url: str = PUMPPORTAL_TRADE_URL, timeout: int = HTTP_TIMEOUT, **kwargs):
        super().__init__(trade_url, timeout=timeout, **kwargs)

    def build_trade_transaction(
        self,
        public_key: str,
        action: str,
        mint: str,
        amount: Union[float, str],
        denominated_in_sol: bool,
        slippage_percent: float,
        priority_fee_sol: float,
        pool: str = DEFAULT_POOL
    ) -> bytes:
        """
        Request a serialized trade transaction.

        Args:
            public_key: Trader wallet address
            action: "buy" or "sell"
            mint: Token mint address
            amount: SOL amount when denominated in SOL, token amount otherwise
                (percentages such as "100%" are accepted for sells)
            denominated_in_sol: Whether ``amount`` is in SOL
            slippage_percent: Slippage tolerance in percent
            priority_fee_sol: Priority fee in SOL
            pool: Liquidity pool to route through

        Returns:
            Raw serialized versioned transaction bytes
        """
        if isinstance(amount, float) and denominated_in_sol:
            amount = f"{amount:.9f}"

        body = self._make_request(
            'post',
            '',
            raw=True,
            json={
                'publicKey': public_key,
                'action': action,
                'mint': mint,
                'amount': amount,
                'denominatedInSol': 'true' if denominated_in_sol else 'false',
                'slippage': slippage_percent,
                'priorityFee': priority_fee_sol,
                'pool': pool
            }
        )

        if not body:
            raise ApiClientError("PumpPortal returned an empty transaction")

        logger.debug(f"PumpPortal built {action} transaction for {public_key} ({len(body)} bytes)")
        return body
