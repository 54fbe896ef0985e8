"""Tests for funding trader wallets from the main wallet."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.keypair import Keypair
from solders.transaction import Transaction

from volumebot.config import LAMPORTS_PER_SOL
from volumebot.errors import InsufficientBalanceError
from volumebot.solana.funding import WalletFunder


def build_funder(ledger) -> WalletFunder:
    confirmation_manager = MagicMock()
    confirmation_manager.confirm = AsyncMock(return_value=True)
    return WalletFunder(ledger, confirmation_manager, pacing=0)


class TestWalletFunder:
    """Top-ups to the target balance."""

    @pytest.mark.asyncio
    async def test_tops_up_only_underfunded_wallets(self, ledger, wallets):
        main_wallet = Keypair()
        ledger.balances[str(main_wallet.pubkey())] = LAMPORTS_PER_SOL
        ledger.balances[wallets[0].public_key] = 10_000_000
        ledger.balances[wallets[1].public_key] = 4_000_000
        funder = build_funder(ledger)

        signatures = await funder.fund_trader_wallets(main_wallet, wallets[:3], sol_per_wallet=0.01)

        assert signatures == ["sig1", "sig2"]
        assert funder.confirmation_manager.confirm.await_count == 2

        first = Transaction.from_bytes(ledger.sent[0])
        assert first.message.account_keys[0] == main_wallet.pubkey()
        assert str(first.message.account_keys[1]) == wallets[1].public_key

    @pytest.mark.asyncio
    async def test_nothing_to_fund(self, ledger, wallets):
        for wallet in wallets[:2]:
            ledger.balances[wallet.public_key] = LAMPORTS_PER_SOL
        funder = build_funder(ledger)

        assert await funder.fund_trader_wallets(Keypair(), wallets[:2], sol_per_wallet=0.01) == []
        assert ledger.sent == []

    @pytest.mark.asyncio
    async def test_insufficient_main_balance_raises(self, ledger, wallets):
        main_wallet = Keypair()
        ledger.balances[str(main_wallet.pubkey())] = 5_000_000
        funder = build_funder(ledger)

        with pytest.raises(InsufficientBalanceError):
            await funder.fund_trader_wallets(main_wallet, wallets[:2], sol_per_wallet=0.01)
        assert ledger.sent == []
