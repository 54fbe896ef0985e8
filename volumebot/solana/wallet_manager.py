"""
Trader wallet management for Solana.

Trader wallets are plain keypairs persisted in a JSON wallet store. When a
passphrase is configured the secret keys are encrypted at rest with AES-GCM.
"""

import json
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence, TypeVar

import base58
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger
from solders.keypair import Keypair

from volumebot.config import (
    MAX_TRADER_WALLETS,
    WALLET_STORAGE_PASSPHRASE,
    WALLET_STORAGE_PATH,
)
from volumebot.errors import ConfigurationError
from volumebot.solana.models import WalletRecord

T = TypeVar("T")

SALT_SIZE = 16
NONCE_SIZE = 12
KDF_ITERATIONS = 100000


@dataclass(frozen=True)
class TradeWallet:
    """A trader wallet: its position in the store and its signing keypair."""
    index: int
    keypair: Keypair

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def __repr__(self) -> str:
        return f"TradeWallet(index={self.index}, public_key={self.public_key})"

    __str__ = __repr__


def keypair_from_base58(private_key: str) -> Keypair:
    """
    Decode a base58 encoded 64-byte secret key.

    Raises:
        ValueError: If the key is not valid base58 or has the wrong length
    """
    try:
        return Keypair.from_bytes(base58.b58decode(private_key))
    except Exception as e:
        raise ValueError("Invalid private key format. Must be base58 encoded.") from e


class KeyCipher:
    """Encrypts secret keys with a passphrase-derived AES-GCM key."""

    def __init__(self, passphrase: str):
        self._passphrase = passphrase.encode("utf-8")

    def _derive(self, salt: bytes) -> AESGCM:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=KDF_ITERATIONS,
        )
        return AESGCM(kdf.derive(self._passphrase))

    def encrypt(self, secret: bytes) -> str:
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        ct = self._derive(salt).encrypt(nonce, secret, None)
        return base58.b58encode(salt + nonce + ct).decode("utf-8")

    def decrypt(self, token: str) -> bytes:
        blob = base58.b58decode(token)
        salt = blob[:SALT_SIZE]
        nonce = blob[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
        ct = blob[SALT_SIZE + NONCE_SIZE:]
        try:
            return self._derive(salt).decrypt(nonce, ct, None)
        except InvalidTag as e:
            raise ConfigurationError("Wrong wallet storage passphrase") from e


class TraderWalletStorage:
    """JSON file store for trader wallet records."""

    def __init__(self, path: str = WALLET_STORAGE_PATH, passphrase: Optional[str] = WALLET_STORAGE_PASSPHRASE):
        """
        Initialize the wallet store.

        Args:
            path: JSON file holding the wallet records
            passphrase: Encrypt secret keys at rest when set
        """
        self.path = path
        self.cipher = KeyCipher(passphrase) if passphrase else None

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {"encrypted": self.cipher is not None, "wallets": []}

        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def list_wallets(self) -> List[WalletRecord]:
        """Return all records ordered by wallet index, with secret keys decrypted."""
        data = self._read()
        encrypted = data.get("encrypted", False)
        if encrypted and self.cipher is None:
            raise ConfigurationError("Wallet store is encrypted; set WALLET_STORAGE_PASSPHRASE")

        records = []
        for raw in data.get("wallets", []):
            record = WalletRecord(**raw)
            if encrypted:
                secret = self.cipher.decrypt(record.private_key)
                record = record.model_copy(update={"private_key": base58.b58encode(secret).decode("utf-8")})
            records.append(record)

        return sorted(records, key=lambda r: r.wallet_index)

    def save_wallets(self, records: Sequence[WalletRecord]):
        """Append records to the store."""
        data = self._read()
        if data.get("encrypted", False) != (self.cipher is not None) and data.get("wallets"):
            raise ConfigurationError("Wallet store encryption setting does not match the configured passphrase")

        wallets = data.get("wallets", [])
        for record in records:
            stored = record.model_dump(mode="json")
            if self.cipher is not None:
                stored["private_key"] = self.cipher.encrypt(base58.b58decode(record.private_key))
            wallets.append(stored)

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"encrypted": self.cipher is not None, "wallets": wallets}, f, indent=2)
        os.replace(tmp_path, self.path)

        logger.info(f"Saved {len(records)} trader wallets to {self.path}")


class WalletManager:
    """
    Creates and loads trader wallets.
    """

    def __init__(self, storage: Optional[TraderWalletStorage] = None):
        self.storage = storage or TraderWalletStorage()

    def create_trader_wallets(self, count: int, main_wallet_pubkey: Optional[str] = None) -> List[TradeWallet]:
        """
        Generate new trader wallets and persist them.

        Args:
            count: Number of wallets to create
            main_wallet_pubkey: Funding wallet the traders belong to

        Returns:
            The newly created wallets
        """
        if count < 1 or count > MAX_TRADER_WALLETS:
            raise ValueError(f"count must be between 1 and {MAX_TRADER_WALLETS}")

        existing = self.storage.list_wallets()
        next_index = existing[-1].wallet_index + 1 if existing else 0

        wallets = []
        records = []
        for offset in range(count):
            keypair = Keypair()
            wallet = TradeWallet(index=next_index + offset, keypair=keypair)
            wallets.append(wallet)
            records.append(WalletRecord(
                trader_pubkey=wallet.public_key,
                wallet_index=wallet.index,
                private_key=base58.b58encode(bytes(keypair)).decode("utf-8"),
                main_wallet_pubkey=main_wallet_pubkey
            ))

        self.storage.save_wallets(records)
        logger.bind(first_index=next_index).info(f"Created {count} trader wallets")
        return wallets

    def load_trader_wallets(self, limit: Optional[int] = None) -> List[TradeWallet]:
        """
        Load trader wallets from the store.

        Args:
            limit: Only return the first ``limit`` wallets

        Raises:
            ConfigurationError: If the store holds no wallets
        """
        records = self.storage.list_wallets()
        if not records:
            raise ConfigurationError("No trader wallets found. Create wallets first.")

        if limit is not None:
            records = records[:limit]

        wallets = [
            TradeWallet(index=record.wallet_index, keypair=keypair_from_base58(record.private_key))
            for record in records
        ]
        logger.info(f"Loaded {len(wallets)} trader wallets")
        return wallets


def partition_wallets(wallets: Sequence[T], group_size: int) -> List[List[T]]:
    """Split wallets into consecutive groups of at most ``group_size``."""
    if group_size < 1:
        raise ValueError("group_size must be at least 1")
    return [list(wallets[i:i + group_size]) for i in range(0, len(wallets), group_size)]
