"""
Ledger RPC access for Solana.

The confirmation manager, scheduler and funding code only depend on the abstract
``Ledger`` interface; ``SolanaLedger`` implements it over solana-py's async HTTP
client and websocket signature subscriptions.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Processed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solana.rpc.websocket_api import connect
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.rpc.responses import SignatureNotification
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from volumebot.errors import RateLimitedError
from volumebot.solana.models import SignatureStatus
from volumebot.solana.rate_limiter import is_rate_limit_error, retry_after_from_error

T = TypeVar("T")

# Called with the ledger error (None on success) when a signature notification arrives
SignatureCallback = Callable[[Optional[Any]], None]


class SignatureSubscription(ABC):
    """Handle to an open signature subscription."""

    @abstractmethod
    def cancel(self):
        """Stop listening and release the underlying channel."""


class Ledger(ABC):
    """Ledger operations consumed by the trading core."""

    @abstractmethod
    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        """Submit a signed, serialized transaction and return its signature."""

    @abstractmethod
    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """Return the current status of a signature, or None if the ledger has not seen it."""

    @abstractmethod
    async def subscribe_signature(
        self,
        signature: str,
        commitment: str,
        callback: SignatureCallback
    ) -> SignatureSubscription:
        """Open a push notification channel for a signature at a commitment level."""

    @abstractmethod
    async def get_block_height(self) -> int:
        """Return the current block height."""

    @abstractmethod
    async def get_token_balance(self, owner: str, mint: str) -> int:
        """Return the raw token balance of ``owner`` for ``mint`` (0 without an account)."""

    @abstractmethod
    async def get_balance(self, owner: str) -> int:
        """Return the SOL balance of ``owner`` in lamports."""

    @abstractmethod
    async def get_latest_blockhash(self) -> Hash:
        """Return a recent blockhash for building transactions."""

    @abstractmethod
    async def simulate_transaction(self, transaction: Any) -> Optional[str]:
        """Simulate a signed transaction and return its error, or None if it would succeed."""

    async def close(self):
        """Release network resources."""


def _confirmation_status_name(status: Optional[TransactionConfirmationStatus]) -> Optional[str]:
    if status is None:
        return None
    if status == TransactionConfirmationStatus.Finalized:
        return "finalized"
    if status == TransactionConfirmationStatus.Confirmed:
        return "confirmed"
    if status == TransactionConfirmationStatus.Processed:
        return "processed"
    return str(status).rsplit(".", 1)[-1].lower()


class _WebsocketSignatureSubscription(SignatureSubscription):
    """Subscription backed by a reader task that owns the websocket."""

    def __init__(self, signature: str, task: asyncio.Task):
        self.signature = signature
        self._task = task

    def cancel(self):
        # The reader task may be the one resolving the confirmation
        if not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()


class SolanaLedger(Ledger):
    """
    Ledger implementation over solana-py.

    HTTP 429 responses from the RPC provider are translated into RateLimitedError
    carrying the provider's retry-after, so callers never need to inspect
    transport exceptions.
    """

    def __init__(
        self,
        rpc_url: str,
        ws_url: Optional[str] = None,
        commitment: str = "confirmed",
        client: Optional[AsyncClient] = None
    ):
        """
        Initialize the ledger.

        Args:
            rpc_url: HTTP RPC endpoint
            ws_url: Websocket endpoint for subscriptions
            commitment: Default commitment level for queries
            client: Optional preconfigured AsyncClient
        """
        self.rpc_url = rpc_url
        self.ws_url = ws_url or rpc_url.replace("https://", "wss://").replace("http://", "ws://")
        self.commitment = Commitment(commitment)
        self.client = client or AsyncClient(rpc_url, commitment=self.commitment)

        logger.info(f"SolanaLedger initialized for {rpc_url}")

    async def _call(self, method: str, request: Awaitable[T]) -> T:
        try:
            return await request
        except RateLimitedError:
            raise
        except Exception as e:
            if is_rate_limit_error(e):
                raise RateLimitedError(
                    f"{method} rate limited: {e}",
                    retry_after=retry_after_from_error(e)
                ) from e
            raise

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        opts = TxOpts(skip_preflight=True, preflight_commitment=Processed, max_retries=3)
        resp = await self._call(
            "sendTransaction",
            self.client.send_raw_transaction(raw_transaction, opts=opts)
        )
        signature = str(resp.value)
        logger.info(f"Transaction sent: {signature}")
        return signature

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        resp = await self._call(
            "getSignatureStatuses",
            self.client.get_signature_statuses([Signature.from_string(signature)])
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return None

        return SignatureStatus(
            err=str(status.err) if status.err is not None else None,
            confirmation_status=_confirmation_status_name(status.confirmation_status)
        )

    async def subscribe_signature(
        self,
        signature: str,
        commitment: str,
        callback: SignatureCallback
    ) -> SignatureSubscription:
        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(self._watch_signature(signature, commitment, callback, ready))
        try:
            await ready
        except BaseException:
            task.cancel()
            raise
        return _WebsocketSignatureSubscription(signature, task)

    async def _watch_signature(
        self,
        signature: str,
        commitment: str,
        callback: SignatureCallback,
        ready: asyncio.Future
    ):
        """Reader task: subscribe, wait for the first notification, unsubscribe."""
        try:
            async with connect(self.ws_url) as websocket:
                await websocket.signature_subscribe(
                    Signature.from_string(signature),
                    commitment=Commitment(commitment)
                )
                first_resp = await websocket.recv()
                subscription_id = first_resp[0].result
                if not ready.done():
                    ready.set_result(subscription_id)

                try:
                    while True:
                        messages = await websocket.recv()
                        for message in messages:
                            if isinstance(message, SignatureNotification):
                                callback(getattr(message.result.value, "err", None))
                                return
                finally:
                    try:
                        await websocket.signature_unsubscribe(subscription_id)
                    except Exception as e:
                        logger.debug(f"Failed to unsubscribe from {signature}: {e}")

        except asyncio.CancelledError:
            if not ready.done():
                ready.cancel()
            raise
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning(f"Signature subscription for {signature} closed: {e}")

    async def get_block_height(self) -> int:
        resp = await self._call("getBlockHeight", self.client.get_block_height())
        return int(resp.value)

    async def get_token_balance(self, owner: str, mint: str) -> int:
        accounts = await self._call(
            "getTokenAccountsByOwner",
            self.client.get_token_accounts_by_owner(
                Pubkey.from_string(owner),
                TokenAccountOpts(mint=Pubkey.from_string(mint))
            )
        )
        if not accounts.value:
            return 0

        balance = await self._call(
            "getTokenAccountBalance",
            self.client.get_token_account_balance(accounts.value[0].pubkey)
        )
        return int(balance.value.amount)

    async def get_balance(self, owner: str) -> int:
        resp = await self._call("getBalance", self.client.get_balance(Pubkey.from_string(owner)))
        return int(resp.value)

    async def get_latest_blockhash(self) -> Hash:
        resp = await self._call("getLatestBlockhash", self.client.get_latest_blockhash())
        return resp.value.blockhash

    async def simulate_transaction(self, transaction: Any) -> Optional[str]:
        resp = await self._call(
            "simulateTransaction",
            self.client.simulate_transaction(transaction, commitment=Processed)
        )
        if resp.value.err is not None:
            return str(resp.value.err)
        return None

    async def close(self):
        await self.client.close()
        logger.debug("SolanaLedger closed")
