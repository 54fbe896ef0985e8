"""
Models for Solana volume trading.
"""
from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime


class TradeProvider(str, Enum):
    """External swap provider used to build trades."""
    PUMP = "pump"        # PumpPortal bonding-curve trade API
    JUPITER = "jupiter"  # Jupiter DEX aggregator


class TradeAction(str, Enum):
    """Direction of a single pass."""
    BUY = "buy"
    SELL = "sell"


class PassStatus(str, Enum):
    """Outcome of one buy or sell pass for one wallet."""
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"  # outcome unknown, counted as failed
    SKIPPED = "skipped"      # no token balance to sell


class WalletRecord(BaseModel):
    """A trader wallet as persisted in the wallet store."""
    trader_pubkey: str
    wallet_index: int
    private_key: str  # base58 encoded 64-byte secret key
    main_wallet_pubkey: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class SignatureStatus(BaseModel):
    """Status of a submitted transaction as reported by the ledger."""
    err: Optional[Any] = None
    confirmation_status: Optional[str] = None  # processed, confirmed, finalized

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation_status in ("confirmed", "finalized")


class SubmittedTransaction(BaseModel):
    """A signed transaction that has been sent to the ledger."""
    signature: str
    wallet_address: str
    provider: TradeProvider
    action: TradeAction
    last_valid_block_height: Optional[int] = None
    submitted_at: datetime = Field(default_factory=datetime.now)


class PassResult(BaseModel):
    """Result of a single buy or sell pass for one wallet."""
    wallet_index: int
    wallet_address: str
    action: TradeAction
    status: PassStatus
    signature: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PassStatus.CONFIRMED

    @property
    def skipped(self) -> bool:
        return self.status == PassStatus.SKIPPED


class RoundResult(BaseModel):
    """Aggregated result of one buy-then-sell round across all wallet groups."""
    wallet_count: int
    pass_results: List[PassResult] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.pass_results if r.succeeded)

    @property
    def total_count(self) -> int:
        # Two passes per wallet, regardless of skips
        return self.wallet_count * 2

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.pass_results if r.skipped)

    @property
    def failed_count(self) -> int:
        return self.total_count - self.success_count - self.skipped_count


class SessionStats(BaseModel):
    """Aggregate counters for one volume session run."""
    successful_trades: int = 0
    total_trades: int = 0
    skipped_trades: int = 0
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def attempted_trades(self) -> int:
        return self.total_trades - self.skipped_trades

    @property
    def failed_trades(self) -> int:
        return self.attempted_trades - self.successful_trades

    @property
    def success_rate(self) -> str:
        return f"{self.successful_trades}/{self.attempted_trades}"

    def remaining_time(self, now: float) -> int:
        """Whole seconds left until the configured end time."""
        if self.end_time is None:
            return 0
        return int(max(0.0, self.end_time - now))

    def record_round(self, result: RoundResult):
        self.successful_trades += result.success_count
        self.total_trades += result.total_count
        self.skipped_trades += result.skipped_count


class SessionStatus(BaseModel):
    """Status snapshot emitted after every round."""
    success_rate: str
    remaining_time: int  # seconds
    is_running: bool
