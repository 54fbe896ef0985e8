"""
Solana integration for the Volume Bot.

This package contains modules for interacting with the Solana blockchain,
including transaction confirmation, swap execution, trader wallets, wallet
funding, and the trade-round scheduling that drives a volume session.

Note: mainnet RPC providers rate-limit aggressively, so confirmation polling goes
through a shared rate-limit gate and every trade error stays local to its pass.
"""

from volumebot.solana.models import (
    TradeProvider,
    TradeAction,
    PassStatus,
    WalletRecord,
    SignatureStatus,
    SubmittedTransaction,
    PassResult,
    RoundResult,
    SessionStats,
    SessionStatus,
)
from volumebot.solana.rate_limiter import RateLimitGate, RateLimitState, is_rate_limit_error
from volumebot.solana.ledger import Ledger, SignatureSubscription, SolanaLedger
from volumebot.solana.confirmation_manager import ConfirmationConfig, ConfirmationManager
from volumebot.solana.wallet_manager import TradeWallet, TraderWalletStorage, WalletManager, partition_wallets
from volumebot.solana.swap_executor import SwapExecutor, TradeConfig
from volumebot.solana.scheduler import SchedulerConfig, TradeCycleScheduler
from volumebot.solana.volume_session import SessionConfig, SessionState, VolumeSession
from volumebot.solana.funding import WalletFunder
from volumebot.solana.integration import VolumeBotOrchestrator
