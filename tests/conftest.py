"""Shared fixtures: an in-memory ledger and trader wallets."""

import asyncio
import itertools
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from volumebot.solana.ledger import Ledger, SignatureSubscription
from volumebot.solana.models import SignatureStatus
from volumebot.solana.wallet_manager import TradeWallet

StatusResponse = Union[SignatureStatus, Exception, None]

CONFIRMED = SignatureStatus(confirmation_status="confirmed")
PROCESSED = SignatureStatus(confirmation_status="processed")


class FakeSubscription(SignatureSubscription):
    def __init__(self, signature: str):
        self.signature = signature
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLedger(Ledger):
    """
    Ledger double with scripted status responses.

    ``statuses[signature]`` is a list consumed one entry per poll; the last entry
    repeats once the list is exhausted. An entry may be an exception to raise.
    """

    def __init__(self, block_height: int = 1000):
        self.block_height = block_height
        self.statuses: Dict[str, List[StatusResponse]] = {}
        self.default_status: StatusResponse = None
        self.status_calls: Dict[str, int] = {}
        self.subscriptions: Dict[str, List[FakeSubscription]] = {}
        self.callbacks: Dict[str, Callable[[Optional[Any]], None]] = {}
        self.subscribe_error: Optional[Exception] = None
        self.sent: List[bytes] = []
        self.token_balances: Dict[str, int] = {}
        self.balances: Dict[str, int] = {}
        self.simulation_error: Optional[str] = None
        self.closed = False
        self._signatures = itertools.count(1)

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        self.sent.append(raw_transaction)
        return f"sig{next(self._signatures)}"

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        self.status_calls[signature] = self.status_calls.get(signature, 0) + 1
        responses = self.statuses.get(signature, [self.default_status])
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def subscribe_signature(self, signature, commitment, callback) -> SignatureSubscription:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        subscription = FakeSubscription(signature)
        self.subscriptions.setdefault(signature, []).append(subscription)
        self.callbacks[signature] = callback
        return subscription

    def notify(self, signature: str, err: Optional[Any] = None):
        """Deliver a push notification for a signature."""
        self.callbacks[signature](err)

    async def get_block_height(self) -> int:
        return self.block_height

    async def get_token_balance(self, owner: str, mint: str) -> int:
        return self.token_balances.get(owner, 0)

    async def get_balance(self, owner: str) -> int:
        return self.balances.get(owner, 0)

    async def get_latest_blockhash(self) -> Hash:
        return Hash.default()

    async def simulate_transaction(self, transaction: Any) -> Optional[str]:
        return self.simulation_error

    async def close(self):
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0, interval: float = 0.005):
    """Poll until ``predicate`` holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def wallets() -> List[TradeWallet]:
    return [TradeWallet(index=i, keypair=Keypair()) for i in range(10)]
