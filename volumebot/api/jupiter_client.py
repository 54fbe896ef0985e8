"""
Jupiter aggregator client.

Quotes a swap route and asks the aggregator to build the matching serialized
transaction for a trader wallet.
"""

from typing import Dict, Any, Optional

from loguru import logger

from volumebot.api.api_client import ApiClient, ApiClientError
from volumebot.config import JUPITER_API_URL, HTTP_TIMEOUT, LAMPORTS_PER_SOL

# Upper bound on the priority fee the aggregator may attach
DEFAULT_MAX_PRIORITY_LAMPORTS = 10_000_000
DYNAMIC_SLIPPAGE_MAX_BPS = 300


class JupiterClient(ApiClient):
    """Client for the Jupiter v6 quote and swap endpoints."""

    def __init__(self, base_url: str = JUPITER_API_URL, timeout: int = HTTP_TIMEOUT, **kwargs):
        super().__init__(base_url, timeout=timeout, **kwargs)

    def get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Dict[str, Any]:
        """
        Get a swap quote.

        Args:
            input_mint: Mint being sold
            output_mint: Mint being bought
            amount: Input amount in base units (lamports for SOL)
            slippage_bps: Slippage tolerance in basis points

        Returns:
            Quote response, passed back verbatim to get_swap_transaction
        """
        quote = self._make_request(
            'get',
            '/quote',
            params={
                'inputMint': input_mint,
                'outputMint': output_mint,
                'amount': str(amount),
                'slippageBps': slippage_bps
            }
        )

        if not isinstance(quote, dict) or 'error' in quote or 'outAmount' not in quote:
            error = quote.get('error') if isinstance(quote, dict) else quote
            raise ApiClientError(f"Failed to get quote: {error}")

        logger.debug(
            f"Jupiter quote {input_mint} -> {output_mint}: in={quote.get('inAmount')} out={quote.get('outAmount')}"
        )
        return quote

    def get_swap_transaction(
        self,
        quote: Dict[str, Any],
        user_public_key: str,
        priority_fee_sol: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Build the serialized swap transaction for a quote.

        Args:
            quote: Response from get_quote
            user_public_key: Wallet that signs and pays for the swap
            priority_fee_sol: Ceiling for the priority fee, in SOL

        Returns:
            Dict with base64 ``swapTransaction`` and ``lastValidBlockHeight``
        """
        max_lamports = DEFAULT_MAX_PRIORITY_LAMPORTS
        if priority_fee_sol:
            max_lamports = int(priority_fee_sol * LAMPORTS_PER_SOL)

        swap = self._make_request(
            'post',
            '/swap',
            json={
                'quoteResponse': quote,
                'userPublicKey': user_public_key,
                'wrapAndUnwrapSol': True,
                'dynamicSlippage': {'maxBps': DYNAMIC_SLIPPAGE_MAX_BPS},
                'dynamicComputeUnitLimit': True,
                'prioritizationFeeLamports': {
                    'priorityLevelWithMaxLamports': {
                        'maxLamports': max_lamports,
                        'priorityLevel': 'veryHigh'
                    }
                }
            }
        )

        if not isinstance(swap, dict) or not swap.get('swapTransaction'):
            raise ApiClientError(f"Swap response missing transaction: {swap}")

        return swap
