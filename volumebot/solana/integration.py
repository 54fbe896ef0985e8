"""
Integration module that combines the Solana components.

Builds the ledger, confirmation manager, trade clients, scheduler and session from
configuration and exposes the handful of operations the front ends need.
"""

from typing import List, Optional

from loguru import logger
from solders.keypair import Keypair

from volumebot.api.jupiter_client import JupiterClient
from volumebot.api.price_client import PriceClient
from volumebot.api.pumpportal_client import PumpPortalClient
from volumebot.config import (
    DEFAULT_SOL_PER_WALLET,
    MAIN_WALLET_PRIVATE_KEY,
    SOLANA_RPC_URL,
    require_env,
    websocket_url_for,
)
from volumebot.errors import ConfigurationError
from volumebot.events.event_system import EventSystem
from volumebot.solana.confirmation_manager import ConfirmationConfig, ConfirmationManager
from volumebot.solana.funding import WalletFunder
from volumebot.solana.ledger import Ledger, SolanaLedger
from volumebot.solana.models import SessionStats, TradeProvider
from volumebot.solana.scheduler import SchedulerConfig, TradeCycleScheduler
from volumebot.solana.swap_executor import SwapExecutor, TradeConfig
from volumebot.solana.volume_session import SessionConfig, StatusListener, VolumeSession
from volumebot.solana.wallet_manager import TradeWallet, WalletManager, keypair_from_base58


class VolumeBotOrchestrator:
    """
    Orchestrates the complete volume trading workflow.

    This class wires the individual Solana components into a single object that
    loads or creates trader wallets, funds them and runs volume sessions.
    """

    def __init__(
        self,
        trade_config: Optional[TradeConfig] = None,
        rpc_url: Optional[str] = None,
        ws_url: Optional[str] = None,
        confirmation_config: Optional[ConfirmationConfig] = None,
        scheduler_config: Optional[SchedulerConfig] = None,
        session_config: Optional[SessionConfig] = None,
        ledger: Optional[Ledger] = None,
        wallet_manager: Optional[WalletManager] = None,
        events: Optional[EventSystem] = None,
        jupiter_client: Optional[JupiterClient] = None,
        pumpportal_client: Optional[PumpPortalClient] = None,
        price_client: Optional[PriceClient] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            trade_config: Trade sizing, slippage and priority fee
            rpc_url: Solana RPC endpoint. Defaults to SOLANA_RPC_URL.
            ws_url: Websocket endpoint. Derived from the RPC endpoint if omitted.
            confirmation_config: Confirmation timing and policy
            scheduler_config: Grouping and pacing of rounds
            session_config: Inter-round pacing
            ledger: Optional Ledger instance. If None, creates a SolanaLedger.
            wallet_manager: Optional WalletManager instance. If None, creates a new one.
            events: Event bus shared by the scheduler and session
            jupiter_client: Optional aggregator client
            pumpportal_client: Optional bonding-curve client
            price_client: Optional SOL price client

        Raises:
            ConfigurationError: If no RPC endpoint is configured
        """
        self.trade_config = trade_config or TradeConfig()
        self.session_config = session_config or SessionConfig()
        self.events = events

        if ledger is None:
            rpc_url = rpc_url or SOLANA_RPC_URL or require_env("SOLANA_RPC_URL")
            ledger = SolanaLedger(
                rpc_url,
                ws_url=ws_url or websocket_url_for(rpc_url),
                commitment=(confirmation_config or ConfirmationConfig()).commitment
            )
        self.ledger = ledger

        self.wallet_manager = wallet_manager or WalletManager()
        self.confirmation_manager = ConfirmationManager(self.ledger, config=confirmation_config)
        self.price_client = price_client or PriceClient()
        self.swap_executor = SwapExecutor(
            self.ledger,
            trade_config=self.trade_config,
            jupiter_client=jupiter_client,
            pumpportal_client=pumpportal_client,
            price_client=self.price_client
        )
        self.scheduler = TradeCycleScheduler(
            self.swap_executor,
            self.confirmation_manager,
            config=scheduler_config,
            events=events
        )
        self.funder = WalletFunder(self.ledger, self.confirmation_manager)
        self.session: Optional[VolumeSession] = None

        logger.info("VolumeBotOrchestrator initialized")

    def main_wallet(self) -> Keypair:
        """
        Keypair of the funding wallet.

        Raises:
            ConfigurationError: If PRIVATE_KEY is not configured or invalid
        """
        private_key = MAIN_WALLET_PRIVATE_KEY or require_env("PRIVATE_KEY")
        try:
            return keypair_from_base58(private_key)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def create_wallets(self, count: int) -> List[TradeWallet]:
        main_wallet_pubkey = str(self.main_wallet().pubkey()) if MAIN_WALLET_PRIVATE_KEY else None
        return self.wallet_manager.create_trader_wallets(count, main_wallet_pubkey=main_wallet_pubkey)

    def load_wallets(self, limit: Optional[int] = None) -> List[TradeWallet]:
        return self.wallet_manager.load_trader_wallets(limit=limit)

    async def fund_wallets(
        self,
        sol_per_wallet: float = DEFAULT_SOL_PER_WALLET,
        wallets: Optional[List[TradeWallet]] = None
    ) -> List[str]:
        """Top up trader wallets from the main wallet; returns transfer signatures."""
        wallets = wallets if wallets is not None else self.load_wallets()
        await self.confirmation_manager.refresh_block_height()
        return await self.funder.fund_trader_wallets(self.main_wallet(), wallets, sol_per_wallet)

    def create_session(
        self,
        wallets: Optional[List[TradeWallet]] = None,
        status_listener: Optional[StatusListener] = None
    ) -> VolumeSession:
        """Build a session over the given wallets, or every stored wallet."""
        wallets = wallets if wallets is not None else self.load_wallets()
        session = VolumeSession(
            self.scheduler,
            self.confirmation_manager,
            wallets,
            config=self.session_config,
            events=self.events
        )
        if status_listener is not None:
            session.add_status_listener(status_listener)
        self.session = session
        return session

    async def start(
        self,
        token_address: str,
        duration: float,
        provider: TradeProvider,
        wallets: Optional[List[TradeWallet]] = None,
        status_listener: Optional[StatusListener] = None
    ) -> SessionStats:
        """
        Run a volume session to completion.

        Args:
            token_address: Token mint address
            duration: Session length in seconds
            provider: Provider used to build trades
            wallets: Trader wallets; defaults to every stored wallet
            status_listener: Callback receiving every status update

        Returns:
            Final session statistics
        """
        session = self.session
        if session is None or not session.is_running:
            session = self.create_session(wallets, status_listener)
        return await session.start(token_address, duration, provider)

    def stop(self):
        if self.session is not None:
            self.session.stop()

    async def close(self):
        """Stop any session and release network resources."""
        self.stop()
        await self.confirmation_manager.close()
        await self.ledger.close()
        for client in (self.swap_executor.jupiter_client, self.swap_executor.pumpportal_client, self.price_client):
            client.close()
        logger.info("VolumeBotOrchestrator closed")
