"""
Swap execution for trader wallets.

Builds a buy or sell transaction through the selected provider, signs it with the
trader keypair and submits it to the ledger. Confirmation is left to the caller.
"""

import asyncio
import base64
from dataclasses import dataclass
from typing import Optional, Tuple

from loguru import logger
from solders.transaction import VersionedTransaction

from volumebot.api.jupiter_client import JupiterClient
from volumebot.api.price_client import PriceClient
from volumebot.api.pumpportal_client import PumpPortalClient
from volumebot.config import (
    DEFAULT_PRIORITY_FEE_SOL,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_TRADE_AMOUNT_USD,
    LAMPORTS_PER_SOL,
    MAX_TRADE_AMOUNT_USD,
    MIN_TRADE_AMOUNT_USD,
    SOL_MINT,
)
from volumebot.errors import InsufficientBalanceError, SwapBuildError
from volumebot.solana.ledger import Ledger
from volumebot.solana.models import SubmittedTransaction, TradeAction, TradeProvider
from volumebot.solana.wallet_manager import TradeWallet

# Fraction of the token balance sold on each sell pass
DEFAULT_SELL_FRACTION = 0.99


@dataclass
class TradeConfig:
    """Per-session trade parameters."""
    trade_amount_usd: float = DEFAULT_TRADE_AMOUNT_USD
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    priority_fee_sol: float = DEFAULT_PRIORITY_FEE_SOL
    sell_fraction: float = DEFAULT_SELL_FRACTION
    simulate: bool = False

    def __post_init__(self):
        """Validate trade configuration."""
        if not (MIN_TRADE_AMOUNT_USD <= self.trade_amount_usd <= MAX_TRADE_AMOUNT_USD):
            raise ValueError(
                f"trade_amount_usd must be between {MIN_TRADE_AMOUNT_USD} and {MAX_TRADE_AMOUNT_USD}"
            )

        if self.slippage_bps < 0 or self.slippage_bps > 10000:
            raise ValueError("slippage_bps must be between 0 and 10000")

        if self.priority_fee_sol < 0:
            raise ValueError("priority_fee_sol must be non-negative")

        if not (0.0 < self.sell_fraction <= 1.0):
            raise ValueError("sell_fraction must be between 0.0 and 1.0")

    @property
    def slippage_percent(self) -> float:
        return self.slippage_bps / 100


class SwapExecutor:
    """Builds, signs and submits trades for a single wallet at a time."""

    def __init__(
        self,
        ledger: Ledger,
        trade_config: Optional[TradeConfig] = None,
        jupiter_client: Optional[JupiterClient] = None,
        pumpportal_client: Optional[PumpPortalClient] = None,
        price_client: Optional[PriceClient] = None
    ):
        """
        Initialize the swap executor.

        Args:
            ledger: Ledger used for balances, simulation and submission
            trade_config: Trade sizing, slippage and fee parameters
            jupiter_client: Aggregator client for the jupiter provider
            pumpportal_client: Bonding-curve client for the pump provider
            price_client: SOL/USD price feed used to size buys
        """
        self.ledger = ledger
        self.trade_config = trade_config or TradeConfig()
        self.jupiter_client = jupiter_client or JupiterClient()
        self.pumpportal_client = pumpportal_client or PumpPortalClient()
        self.price_client = price_client or PriceClient()

    async def get_token_balance(self, wallet: TradeWallet, token_address: str) -> int:
        """Raw token balance of a wallet; 0 when it has no token account."""
        return await self.ledger.get_token_balance(wallet.public_key, token_address)

    async def _buy_amount_lamports(self) -> int:
        sol_price = await asyncio.to_thread(self.price_client.get_sol_price)
        sol_amount = self.trade_config.trade_amount_usd / sol_price
        return int(sol_amount * LAMPORTS_PER_SOL)

    async def execute_trade(
        self,
        wallet: TradeWallet,
        token_address: str,
        provider: TradeProvider,
        action: TradeAction,
        token_balance: Optional[int] = None
    ) -> SubmittedTransaction:
        """
        Build, sign and submit one trade.

        Args:
            wallet: Trader wallet that signs and pays
            token_address: Token mint address
            provider: Provider used to build the transaction
            action: Buy or sell
            token_balance: Known raw token balance for sells; fetched when omitted

        Returns:
            The submitted transaction

        Raises:
            SwapBuildError: If the provider fails or returns an unusable transaction
            RateLimitedError: If the provider or the ledger throttled the request
            InsufficientBalanceError: If a sell has nothing to sell
        """
        provider = TradeProvider(provider)
        action = TradeAction(action)

        if provider == TradeProvider.JUPITER:
            raw, last_valid_block_height = await self._build_jupiter(wallet, token_address, action, token_balance)
        else:
            raw, last_valid_block_height = await self._build_pump(wallet, token_address, action)

        try:
            unsigned = VersionedTransaction.from_bytes(raw)
            transaction = VersionedTransaction(unsigned.message, [wallet.keypair])
        except Exception as e:
            raise SwapBuildError(f"Invalid {provider.value} transaction: {str(e)}") from e

        if self.trade_config.simulate:
            simulation_error = await self.ledger.simulate_transaction(transaction)
            if simulation_error:
                raise SwapBuildError(f"Simulation failed: {simulation_error}")

        signature = await self.ledger.send_raw_transaction(bytes(transaction))

        logger.bind(wallet=wallet.public_key, signature=signature, provider=provider.value).info(
            f"Submitted {action.value} for wallet {wallet.index} via {provider.value}: {signature}"
        )

        return SubmittedTransaction(
            signature=signature,
            wallet_address=wallet.public_key,
            provider=provider,
            action=action,
            last_valid_block_height=last_valid_block_height
        )

    async def _sell_amount(self, wallet: TradeWallet, token_address: str, token_balance: Optional[int]) -> int:
        if token_balance is None:
            token_balance = await self.get_token_balance(wallet, token_address)

        amount = int(token_balance * self.trade_config.sell_fraction)
        if amount <= 0:
            raise InsufficientBalanceError(f"Wallet {wallet.public_key} has no tokens to sell")
        return amount

    async def _build_jupiter(
        self,
        wallet: TradeWallet,
        token_address: str,
        action: TradeAction,
        token_balance: Optional[int]
    ) -> Tuple[bytes, Optional[int]]:
        if action == TradeAction.BUY:
            input_mint, output_mint = SOL_MINT, token_address
            amount = await self._buy_amount_lamports()
        else:
            input_mint, output_mint = token_address, SOL_MINT
            amount = await self._sell_amount(wallet, token_address, token_balance)

        quote = await asyncio.to_thread(
            self.jupiter_client.get_quote,
            input_mint,
            output_mint,
            amount,
            self.trade_config.slippage_bps
        )
        swap = await asyncio.to_thread(
            self.jupiter_client.get_swap_transaction,
            quote,
            wallet.public_key,
            self.trade_config.priority_fee_sol
        )

        try:
            raw = base64.b64decode(swap["swapTransaction"])
        except (ValueError, TypeError) as e:
            raise SwapBuildError(f"Could not decode swap transaction: {str(e)}") from e

        return raw, swap.get("lastValidBlockHeight")

    async def _build_pump(
        self,
        wallet: TradeWallet,
        token_address: str,
        action: TradeAction
    ) -> Tuple[bytes, Optional[int]]:
        if action == TradeAction.BUY:
            lamports = await self._buy_amount_lamports()
            amount = lamports / LAMPORTS_PER_SOL
            denominated_in_sol = True
        else:
            amount = f"{self.trade_config.sell_fraction * 100:g}%"
            denominated_in_sol = False

        raw = await asyncio.to_thread(
            self.pumpportal_client.build_trade_transaction,
            wallet.public_key,
            action.value,
            token_address,
            amount,
            denominated_in_sol,
            self.trade_config.slippage_percent,
            self.trade_config.priority_fee_sol
        )
        return raw, None
