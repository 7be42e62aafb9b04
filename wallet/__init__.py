"""Wallet connection and typed-data signers."""

from .signers import Signer, LocalAccountSigner, JsonRpcSigner
from .wallet import (
    Wallet,
    WalletError,
    ConnectionStore,
    MemoryConnectionStore,
    FileConnectionStore,
    WALLET_CONNECTED_KEY
)

__all__ = [
    'Signer',
    'LocalAccountSigner',
    'JsonRpcSigner',
    'Wallet',
    'WalletError',
    'ConnectionStore',
    'MemoryConnectionStore',
    'FileConnectionStore',
    'WALLET_CONNECTED_KEY'
]
