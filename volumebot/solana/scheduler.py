"""
Trade-cycle scheduler for Solana volume trading.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger

from volumebot.config import SELL_SETTLE_DELAY, WALLET_GROUP_SIZE, WALLET_STAGGER_DELAY
from volumebot.errors import ConfirmationTimeoutError, TransactionExpiredError, TransactionFailedError
from volumebot.events.event_system import (
    Event,
    EventSystem,
    TradeConfirmedEvent,
    TradeFailedEvent,
    TradeSkippedEvent,
)
from volumebot.solana.confirmation_manager import ConfirmationManager
from volumebot.solana.models import PassResult, PassStatus, RoundResult, TradeAction, TradeProvider
from volumebot.solana.swap_executor import SwapExecutor
from volumebot.solana.wallet_manager import TradeWallet


@dataclass
class SchedulerConfig:
    """Grouping and pacing of a trade round. Durations are in seconds."""
    group_size: int = WALLET_GROUP_SIZE
    stagger_delay: float = WALLET_STAGGER_DELAY
    settle_delay: float = SELL_SETTLE_DELAY

    def __post_init__(self):
        """Validate scheduler configuration."""
        if self.group_size < 1:
            raise ValueError("group_size must be at least 1")

        if self.stagger_delay < 0:
            raise ValueError("stagger_delay must be non-negative")

        if self.settle_delay < 0:
            raise ValueError("settle_delay must be non-negative")


class TradeCycleScheduler:
    """
    Runs one round of buy-then-sell cycles across groups of trader wallets.

    Groups run concurrently. Inside a group the buy pass completes for every wallet,
    then after a settle delay the sell pass runs. A failing wallet never aborts the
    round: every error becomes a failed pass result.
    """

    def __init__(
        self,
        swap_executor: SwapExecutor,
        confirmation_manager: ConfirmationManager,
        config: Optional[SchedulerConfig] = None,
        events: Optional[EventSystem] = None
    ):
        """
        Initialize the scheduler.

        Args:
            swap_executor: Builds and submits individual trades
            confirmation_manager: Resolves submitted trades
            config: Grouping and pacing
            events: Event bus for per-pass diagnostics
        """
        self.swap_executor = swap_executor
        self.confirmation_manager = confirmation_manager
        self.config = config or SchedulerConfig()
        self.events = events
        logger.info("TradeCycleScheduler initialized")

    async def run_round(
        self,
        wallet_groups: Sequence[Sequence[TradeWallet]],
        token_address: str,
        provider: TradeProvider
    ) -> RoundResult:
        """
        Run one round across all wallet groups.

        Args:
            wallet_groups: Partitioned trader wallets
            token_address: Token mint address
            provider: Provider used to build trades

        Returns:
            Round result; total_count is always wallets x 2
        """
        wallet_count = sum(len(group) for group in wallet_groups)
        logger.bind(token=token_address, provider=TradeProvider(provider).value).info(
            f"Starting round: {wallet_count} wallets in {len(wallet_groups)} groups"
        )

        group_results = await asyncio.gather(
            *(self._execute_group_trade_cycle(group, token_address, provider) for group in wallet_groups),
            return_exceptions=True
        )

        pass_results: List[PassResult] = []
        for group_number, result in enumerate(group_results):
            if isinstance(result, Exception):
                # Passes of this group count as failed through total_count
                logger.error(f"Group {group_number} trade cycle failed: {str(result)}")
            elif isinstance(result, BaseException):
                raise result
            else:
                pass_results.extend(result)

        round_result = RoundResult(wallet_count=wallet_count, pass_results=pass_results)
        logger.bind(skipped=round_result.skipped_count, failed=round_result.failed_count).info(
            f"Round finished: {round_result.success_count}/{round_result.total_count} successful"
        )
        return round_result

    async def _execute_group_trade_cycle(
        self,
        group: Sequence[TradeWallet],
        token_address: str,
        provider: TradeProvider
    ) -> List[PassResult]:
        buy_results = await self._run_pass(group, token_address, provider, TradeAction.BUY)

        # Let buys settle before selling
        await asyncio.sleep(self.config.settle_delay)

        sell_results = await self._run_pass(group, token_address, provider, TradeAction.SELL)
        return buy_results + sell_results

    async def _run_pass(
        self,
        group: Sequence[TradeWallet],
        token_address: str,
        provider: TradeProvider,
        action: TradeAction
    ) -> List[PassResult]:
        return list(await asyncio.gather(*(
            self._execute_single_trade(position, wallet, token_address, provider, action)
            for position, wallet in enumerate(group)
        )))

    async def _execute_single_trade(
        self,
        position: int,
        wallet: TradeWallet,
        token_address: str,
        provider: TradeProvider,
        action: TradeAction
    ) -> PassResult:
        """
        Execute one pass for one wallet; never raises for trade errors.

        Args:
            position: Position of the wallet inside its group, used for staggering
            wallet: Trader wallet
            token_address: Token mint address
            provider: Provider used to build the trade
            action: Buy or sell
        """
        if position > 0:
            await asyncio.sleep(position * self.config.stagger_delay)

        signature = None
        try:
            token_balance = None
            if action == TradeAction.SELL:
                token_balance = await self.swap_executor.get_token_balance(wallet, token_address)
                if token_balance <= 0:
                    logger.info(f"Wallet {wallet.index} holds no tokens, skipping sell")
                    await self._publish(TradeSkippedEvent(wallet.public_key, token_address))
                    return self._result(wallet, action, PassStatus.SKIPPED)

            submitted = await self.swap_executor.execute_trade(
                wallet, token_address, provider, action, token_balance=token_balance
            )
            signature = submitted.signature

            await self.confirmation_manager.confirm(signature)

        except TransactionExpiredError as e:
            return await self._failed(wallet, action, PassStatus.EXPIRED, e, signature)
        except TransactionFailedError as e:
            return await self._failed(wallet, action, PassStatus.FAILED, e, signature)
        except ConfirmationTimeoutError as e:
            return await self._failed(wallet, action, PassStatus.TIMED_OUT, e, signature)
        except Exception as e:
            return await self._failed(wallet, action, PassStatus.FAILED, e, signature)

        logger.info(f"Wallet {wallet.index} {action.value} confirmed: {signature}")
        await self._publish(TradeConfirmedEvent(signature, wallet.public_key, action.value, TradeProvider(provider).value))
        return self._result(wallet, action, PassStatus.CONFIRMED, signature=signature)

    def _result(
        self,
        wallet: TradeWallet,
        action: TradeAction,
        status: PassStatus,
        signature: Optional[str] = None,
        error: Optional[str] = None
    ) -> PassResult:
        return PassResult(
            wallet_index=wallet.index,
            wallet_address=wallet.public_key,
            action=action,
            status=status,
            signature=signature,
            error=error
        )

    async def _failed(
        self,
        wallet: TradeWallet,
        action: TradeAction,
        status: PassStatus,
        error: Exception,
        signature: Optional[str]
    ) -> PassResult:
        logger.bind(wallet=wallet.public_key, signature=signature, error_type=type(error).__name__).error(
            f"Wallet {wallet.index} {action.value} failed ({status.value}): {str(error)}"
        )
        await self._publish(TradeFailedEvent(
            wallet.public_key, action.value, str(error), signature=signature, status=status.value
        ))
        return self._result(wallet, action, status, signature=signature, error=str(error))

    async def _publish(self, event: Event):
        if self.events is None or not self.events.running:
            return
        try:
            await self.events.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event.event_type} event: {str(e)}")
