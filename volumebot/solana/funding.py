"""
Funding of trader wallets from the main wallet.
"""

import asyncio
from typing import List, Sequence

from loguru import logger
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from volumebot.config import DEFAULT_SOL_PER_WALLET, LAMPORTS_PER_SOL
from volumebot.errors import InsufficientBalanceError
from volumebot.solana.confirmation_manager import ConfirmationManager
from volumebot.solana.ledger import Ledger
from volumebot.solana.wallet_manager import TradeWallet

# Pause between funding transfers
TRANSFER_PACING = 1.0


class WalletFunder:
    """Tops trader wallets up to a target SOL balance."""

    def __init__(self, ledger: Ledger, confirmation_manager: ConfirmationManager, pacing: float = TRANSFER_PACING):
        self.ledger = ledger
        self.confirmation_manager = confirmation_manager
        self.pacing = pacing

    async def fund_trader_wallets(
        self,
        main_wallet: Keypair,
        wallets: Sequence[TradeWallet],
        sol_per_wallet: float = DEFAULT_SOL_PER_WALLET
    ) -> List[str]:
        """
        Send SOL to every trader wallet below the target balance.

        Args:
            main_wallet: Funding keypair
            wallets: Trader wallets to top up
            sol_per_wallet: Target balance per wallet in SOL

        Returns:
            Signatures of the confirmed funding transfers

        Raises:
            InsufficientBalanceError: If the main wallet cannot cover the shortfall
        """
        target = int(sol_per_wallet * LAMPORTS_PER_SOL)

        shortfalls = []
        for wallet in wallets:
            balance = await self.ledger.get_balance(wallet.public_key)
            if balance < target:
                shortfalls.append((wallet, target - balance))

        if not shortfalls:
            logger.info("All trader wallets are already funded")
            return []

        needed = sum(amount for _, amount in shortfalls)
        available = await self.ledger.get_balance(str(main_wallet.pubkey()))
        if available < needed:
            raise InsufficientBalanceError(
                f"Main wallet has {available / LAMPORTS_PER_SOL:.4f} SOL, "
                f"needs {needed / LAMPORTS_PER_SOL:.4f} SOL to fund {len(shortfalls)} wallets"
            )

        logger.bind(main_wallet=str(main_wallet.pubkey())).info(
            f"Funding {len(shortfalls)} trader wallets with {needed / LAMPORTS_PER_SOL:.4f} SOL"
        )

        signatures = []
        for position, (wallet, lamports) in enumerate(shortfalls):
            if position > 0:
                await asyncio.sleep(self.pacing)

            signature = await self._send_transfer(main_wallet, wallet.public_key, lamports)
            await self.confirmation_manager.confirm(signature)
            signatures.append(signature)
            logger.info(f"Funded wallet {wallet.index} with {lamports / LAMPORTS_PER_SOL:.4f} SOL: {signature}")

        return signatures

    async def _send_transfer(self, sender: Keypair, recipient: str, lamports: int) -> str:
        instruction = transfer(TransferParams(
            from_pubkey=sender.pubkey(),
            to_pubkey=Pubkey.from_string(recipient),
            lamports=lamports
        ))
        blockhash = await self.ledger.get_latest_blockhash()
        transaction = Transaction.new_signed_with_payer([instruction], sender.pubkey(), [sender], blockhash)
        return await self.ledger.send_raw_transaction(bytes(transaction))
