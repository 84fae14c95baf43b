# coding: utf-8
"""
Wallet signing capability

The investment workflow never holds keys itself; it receives a WalletSigner.
KeypairSigner is the server-side implementation backed by SOLANA_KEYPAIR.
"""
import base64
import json
from pathlib import Path
from typing import Optional, Protocol

from loguru import logger
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.transaction import VersionedTransaction

from config.config import SOLANA_KEYPAIR


class WalletSigner(Protocol):
    """Anything that can sign serialized versioned transactions for one wallet"""

    @property
    def public_key(self) -> str: ...

    async def sign_transaction(self, raw_transaction: bytes) -> bytes: ...


class KeypairSigner:
    """Signs with a local ed25519 keypair"""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    async def sign_transaction(self, raw_transaction: bytes) -> bytes:
        """
        Fill this wallet's signature slot, keeping any other signatures

        Raises:
            ValueError: The wallet is not a required signer of the message
        """
        transaction = VersionedTransaction.from_bytes(raw_transaction)
        message = transaction.message
        signer_keys = list(message.account_keys)[: message.header.num_required_signatures]

        pubkey = self._keypair.pubkey()
        if pubkey not in signer_keys:
            raise ValueError(f"Wallet {pubkey} is not a signer of this transaction")

        signatures = list(transaction.signatures)
        signatures[signer_keys.index(pubkey)] = self._keypair.sign_message(
            to_bytes_versioned(message)
        )
        return bytes(VersionedTransaction.populate(message, signatures))

    def sign_message(self, message: bytes) -> str:
        """Base58 signature of an arbitrary message (wallet login)"""
        return str(self._keypair.sign_message(message))


def load_keypair(value: str) -> Keypair:
    """
    Parse a keypair from a base58 secret, a JSON byte array, or a path to a
    JSON keypair file (solana-keygen format)
    """
    value = value.strip()
    path = Path(value)
    if value.endswith(".json") and path.exists():
        value = path.read_text().strip()

    if value.startswith("["):
        return Keypair.from_bytes(bytes(json.loads(value)))
    return Keypair.from_base58_string(value)


_server_signer: Optional[KeypairSigner] = None


def get_server_signer() -> Optional[KeypairSigner]:
    """Configured server keypair, or None when SOLANA_KEYPAIR is unset"""
    global _server_signer
    if _server_signer is None and SOLANA_KEYPAIR:
        _server_signer = KeypairSigner(load_keypair(SOLANA_KEYPAIR))
        logger.info(f"Server signer loaded for wallet {_server_signer.public_key}")
    return _server_signer


def get_signer_for_wallet(wallet_address: str) -> Optional[WalletSigner]:
    """
    Signing capability for a user's wallet

    Only the server keypair's own wallet can be signed for server-side;
    every other wallet has no signer here.
    """
    signer = get_server_signer()
    if signer is not None and signer.public_key == wallet_address:
        return signer
    return None


def decode_transaction(encoded: str) -> bytes:
    """Base64 transaction from a venue API"""
    return base64.b64decode(encoded)
