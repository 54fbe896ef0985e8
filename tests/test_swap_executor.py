"""Tests for building, signing and submitting trades."""

import base64
from unittest.mock import MagicMock

import pytest
from solders.hash import Hash
from solders.message import MessageV0
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from volumebot.api.api_client import ApiRateLimitError
from volumebot.config import SOL_MINT
from volumebot.errors import InsufficientBalanceError, RateLimitedError, SwapBuildError
from volumebot.solana.models import TradeAction, TradeProvider
from volumebot.solana.swap_executor import SwapExecutor, TradeConfig

TOKEN = "TokenMint1111111111111111111111111111111111"


def unsigned_transaction(wallet) -> bytes:
    """Serialized versioned transaction paid by ``wallet`` with a placeholder signature."""
    message = MessageV0.try_compile(wallet.keypair.pubkey(), [], [], Hash.default())
    return bytes(VersionedTransaction.populate(message, [Signature.default()]))


def build_executor(ledger, wallet, **config) -> SwapExecutor:
    raw = unsigned_transaction(wallet)

    jupiter = MagicMock()
    jupiter.get_quote.return_value = {"inAmount": "1", "outAmount": "2"}
    jupiter.get_swap_transaction.return_value = {
        "swapTransaction": base64.b64encode(raw).decode("utf-8"),
        "lastValidBlockHeight": 1150,
    }

    pumpportal = MagicMock()
    pumpportal.build_trade_transaction.return_value = raw

    price = MagicMock()
    price.get_sol_price.return_value = 200.0

    return SwapExecutor(
        ledger,
        trade_config=TradeConfig(**config),
        jupiter_client=jupiter,
        pumpportal_client=pumpportal,
        price_client=price
    )


class TestTradeConfig:
    """Validation of trade parameters."""

    def test_defaults(self):
        config = TradeConfig()
        assert config.sell_fraction == 0.99
        assert config.slippage_percent == 1.0

    def test_rejects_out_of_range_amount(self):
        with pytest.raises(ValueError):
            TradeConfig(trade_amount_usd=0)

    def test_rejects_bad_slippage(self):
        with pytest.raises(ValueError):
            TradeConfig(slippage_bps=10001)


class TestPumpTrades:
    """Trades built through the bonding-curve provider."""

    @pytest.mark.asyncio
    async def test_buy_is_signed_and_submitted(self, ledger, wallets):
        wallet = wallets[0]
        executor = build_executor(ledger, wallet, trade_amount_usd=2.0, slippage_bps=250, priority_fee_sol=0.0005)

        submitted = await executor.execute_trade(wallet, TOKEN, TradeProvider.PUMP, TradeAction.BUY)

        assert submitted.signature == "sig1"
        assert submitted.action == TradeAction.BUY
        assert submitted.wallet_address == wallet.public_key

        args = executor.pumpportal_client.build_trade_transaction.call_args.args
        assert args[0] == wallet.public_key
        assert args[1] == "buy"
        assert args[3] == pytest.approx(0.01)
        assert args[4] is True
        assert args[5] == 2.5
        assert args[6] == 0.0005

        sent = VersionedTransaction.from_bytes(ledger.sent[0])
        assert sent.signatures[0] != Signature.default()

    @pytest.mark.asyncio
    async def test_sell_uses_percentage_of_balance(self, ledger, wallets):
        wallet = wallets[0]
        executor = build_executor(ledger, wallet)

        await executor.execute_trade(wallet, TOKEN, "pump", "sell", token_balance=1000)

        args = executor.pumpportal_client.build_trade_transaction.call_args.args
        assert args[1] == "sell"
        assert args[3] == "99%"
        assert args[4] is False


class TestJupiterTrades:
    """Trades built through the aggregator."""

    @pytest.mark.asyncio
    async def test_buy_quotes_sol_to_token(self, ledger, wallets):
        wallet = wallets[1]
        executor = build_executor(ledger, wallet, trade_amount_usd=1.0)

        submitted = await executor.execute_trade(wallet, TOKEN, TradeProvider.JUPITER, TradeAction.BUY)

        input_mint, output_mint, amount, slippage = executor.jupiter_client.get_quote.call_args.args
        assert (input_mint, output_mint) == (SOL_MINT, TOKEN)
        assert amount == 5_000_000
        assert slippage == 100
        assert submitted.last_valid_block_height == 1150

    @pytest.mark.asyncio
    async def test_sell_quotes_ninety_nine_percent(self, ledger, wallets):
        wallet = wallets[1]
        executor = build_executor(ledger, wallet)
        ledger.token_balances[wallet.public_key] = 1000

        await executor.execute_trade(wallet, TOKEN, TradeProvider.JUPITER, TradeAction.SELL)

        input_mint, output_mint, amount, _ = executor.jupiter_client.get_quote.call_args.args
        assert (input_mint, output_mint) == (TOKEN, SOL_MINT)
        assert amount == 990

    @pytest.mark.asyncio
    async def test_sell_without_balance_raises(self, ledger, wallets):
        wallet = wallets[1]
        executor = build_executor(ledger, wallet)

        with pytest.raises(InsufficientBalanceError):
            await executor.execute_trade(wallet, TOKEN, TradeProvider.JUPITER, TradeAction.SELL)
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_undecodable_swap_transaction_raises(self, ledger, wallets):
        wallet = wallets[1]
        executor = build_executor(ledger, wallet)
        executor.jupiter_client.get_swap_transaction.return_value = {"swapTransaction": "not base64!"}

        with pytest.raises(SwapBuildError):
            await executor.execute_trade(wallet, TOKEN, TradeProvider.JUPITER, TradeAction.BUY)


class TestBuildFailures:
    """Provider and signing errors surface as typed errors."""

    @pytest.mark.asyncio
    async def test_malformed_transaction_bytes(self, ledger, wallets):
        wallet = wallets[2]
        executor = build_executor(ledger, wallet)
        executor.pumpportal_client.build_trade_transaction.return_value = b"\x00garbage"

        with pytest.raises(SwapBuildError):
            await executor.execute_trade(wallet, TOKEN, TradeProvider.PUMP, TradeAction.BUY)
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_transaction_for_another_payer_is_rejected(self, ledger, wallets):
        executor = build_executor(ledger, wallets[3])

        with pytest.raises(SwapBuildError):
            await executor.execute_trade(wallets[2], TOKEN, TradeProvider.PUMP, TradeAction.BUY)

    @pytest.mark.asyncio
    async def test_provider_rate_limit_propagates(self, ledger, wallets):
        wallet = wallets[2]
        executor = build_executor(ledger, wallet)
        executor.pumpportal_client.build_trade_transaction.side_effect = ApiRateLimitError("429", retry_after=3)

        with pytest.raises(RateLimitedError) as exc_info:
            await executor.execute_trade(wallet, TOKEN, TradeProvider.PUMP, TradeAction.BUY)
        assert exc_info.value.retry_after == 3

    @pytest.mark.asyncio
    async def test_simulation_failure_blocks_submission(self, ledger, wallets):
        wallet = wallets[2]
        executor = build_executor(ledger, wallet, simulate=True)
        ledger.simulation_error = "InsufficientFundsForRent"

        with pytest.raises(SwapBuildError, match="Simulation failed"):
            await executor.execute_trade(wallet, TOKEN, TradeProvider.PUMP, TradeAction.BUY)
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_successful_simulation_submits(self, ledger, wallets):
        wallet = wallets[2]
        executor = build_executor(ledger, wallet, simulate=True)

        submitted = await executor.execute_trade(wallet, TOKEN, TradeProvider.PUMP, TradeAction.BUY)

        assert submitted.signature == "sig1"
        assert len(ledger.sent) == 1
