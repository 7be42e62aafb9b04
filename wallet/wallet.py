"""
Wallet Connection
=================
Tracks the connected account and chain of an EIP-1193 style provider and
drives the encryption session's lifecycle from wallet events:

- connect (interactive or automatic) starts session initialization,
- disconnect discards the session,
- a chain change discards the session and initializes a new one.

A remembered-connection flag is written on connect and cleared on disconnect
so the next run can reconnect without prompting.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from eth_utils import to_checksum_address

from config.config import SystemConfig
from chain.rpc import parse_quantity

from .signers import JsonRpcSigner

logger = logging.getLogger(__name__)

WALLET_CONNECTED_KEY = "veilvoting_wallet_connected"


class WalletError(Exception):
    pass


# ============================================================================
# CONNECTION STORE
# ============================================================================


class ConnectionStore(ABC):
    """Small persisted key-value store for connection preferences"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any):
        pass

    @abstractmethod
    def remove(self, key: str):
        pass


class MemoryConnectionStore(ConnectionStore):

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value

    def remove(self, key):
        self._data.pop(key, None)


class FileConnectionStore(ConnectionStore):
    """JSON file; rewritten on every change"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable connection store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(data, f, indent=2)

    def get(self, key, default=None):
        return self._load().get(key, default)

    def set(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key):
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


# ============================================================================
# WALLET
# ============================================================================


class Wallet:

    def __init__(self, provider, store: Optional[ConnectionStore] = None,
                 session_manager=None):
        self.provider = provider
        self.store = store or MemoryConnectionStore()
        self.session_manager = session_manager
        self.address: Optional[str] = None
        self.chain_id: Optional[int] = None
        self.is_connecting = False

    @classmethod
    def from_config(cls, provider, config: SystemConfig, session_manager=None) -> 'Wallet':
        return cls(provider, FileConnectionStore(config.connection_store_path), session_manager)

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    async def connect(self, auto: bool = False) -> Optional[str]:
        """
        Connect to the provider's first account.

        ``auto`` uses ``eth_accounts`` so nothing is prompted; otherwise
        ``eth_requestAccounts``. Returns the address, or None when the
        provider exposes no account.
        """
        self.is_connecting = True
        try:
            method = 'eth_accounts' if auto else 'eth_requestAccounts'
            accounts = await self.provider.request(method, [])
            if not accounts:
                logger.info("Wallet exposes no accounts")
                return None
            chain_id = parse_quantity(await self.provider.request('eth_chainId', []))
        finally:
            self.is_connecting = False

        self.address = to_checksum_address(accounts[0])
        self.chain_id = chain_id
        self.store.set(WALLET_CONNECTED_KEY, True)
        logger.info(f"Wallet connected: {self.address} on chain {chain_id}")

        if self.session_manager is not None:
            await self.session_manager.initialize(self.provider)
        return self.address

    async def restore(self) -> Optional[str]:
        """Reconnect without prompting if the last run left a connection"""
        if not self.store.get(WALLET_CONNECTED_KEY):
            return None
        return await self.connect(auto=True)

    async def disconnect(self):
        self.address = None
        self.chain_id = None
        self.store.remove(WALLET_CONNECTED_KEY)
        if self.session_manager is not None:
            await self.session_manager.reset("wallet disconnected")
        logger.info("Wallet disconnected")

    async def handle_accounts_changed(self, accounts: List[str]):
        if not accounts:
            await self.disconnect()
            return
        self.address = to_checksum_address(accounts[0])
        self.store.set(WALLET_CONNECTED_KEY, True)
        logger.info(f"Wallet account changed to {self.address}")

    async def handle_chain_changed(self, chain_id: Union[str, int]):
        self.chain_id = parse_quantity(chain_id)
        logger.info(f"Wallet switched to chain {self.chain_id}")
        if self.session_manager is not None:
            await self.session_manager.reset("network changed")
            if self.is_connected:
                await self.session_manager.initialize(self.provider)

    def signer(self) -> JsonRpcSigner:
        if not self.is_connected:
            raise WalletError("Wallet is not connected")
        return JsonRpcSigner(self.provider, self.address)
