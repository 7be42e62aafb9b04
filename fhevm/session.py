"""Encryption Session: one backend bound to one chain for one wallet connection."""

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

from config.config import RelayerConfig
from chain.rpc import JsonRpcProvider

from .backend import EncryptionBackend
from .cancellation import CancellationToken
from .encrypted_input import EncryptedInput
from .errors import RelayerError, SessionNotReadyError
from .mock_backend import MockBackend
from .mock_coprocessor import MockCoprocessor
from .relayer_backend import RelayerBackend
from .resolver import resolve
from .types import BackendDescriptor, BackendKind, EIP712Payload, HandleContractPair, Keypair

logger = logging.getLogger(__name__)


class EncryptionSession:
    """Borrowed read-only by callers for the duration of one operation"""

    def __init__(self, backend: EncryptionBackend, descriptor: BackendDescriptor):
        self.backend = backend
        self.descriptor = descriptor
        self._valid = True

    @property
    def chain_id(self) -> int:
        return self.descriptor.chain_id

    @property
    def kind(self) -> BackendKind:
        return self.descriptor.kind

    @property
    def is_valid(self) -> bool:
        return self._valid

    def ensure_valid(self):
        if not self._valid:
            raise SessionNotReadyError(
                "Encryption session was discarded (wallet or network changed)")

    def create_encrypted_input(self, contract_address: str, user_address: str) -> EncryptedInput:
        self.ensure_valid()
        return EncryptedInput(self, contract_address, user_address)

    def generate_keypair(self) -> Keypair:
        self.ensure_valid()
        return self.backend.generate_keypair()

    def create_eip712(self, public_key: str, contract_addresses: Sequence[str],
                      start_timestamp: int, duration_days: int) -> EIP712Payload:
        self.ensure_valid()
        return self.backend.create_eip712(public_key, contract_addresses,
                                          start_timestamp, duration_days)

    async def user_decrypt(self, handles: Sequence[HandleContractPair], public_key: str,
                           signature: str, contract_addresses: Sequence[str],
                           user_address: str, start_timestamp: int,
                           duration_days: int) -> Dict[str, str]:
        self.ensure_valid()
        return await self.backend.user_decrypt(handles, public_key, signature, contract_addresses,
                                               user_address, start_timestamp, duration_days)

    async def invalidate(self):
        if not self._valid:
            return
        self._valid = False
        await self.backend.close()

    def __repr__(self) -> str:
        state = "valid" if self._valid else "invalidated"
        return f"EncryptionSession(chain_id={self.chain_id}, kind={self.kind.value}, {state})"


async def create_encryption_session(provider: Any,
                                    token: Optional[CancellationToken] = None,
                                    mock_chains: Optional[Dict[int, str]] = None,
                                    relayer: Optional[RelayerConfig] = None,
                                    coprocessor: Optional[MockCoprocessor] = None,
                                    rpc_factory: Callable[[str], Any] = JsonRpcProvider,
                                    probe_timeout: float = 5.0,
                                    clock: Callable[[], float] = time.time) -> EncryptionSession:
    """Resolve the network's capabilities and build the matching session"""
    token = token or CancellationToken()
    descriptor = await resolve(provider, mock_chains, token, rpc_factory, probe_timeout)
    token.check()

    if descriptor.is_mock:
        backend: EncryptionBackend = MockBackend(
            descriptor.chain_id, descriptor.metadata,
            coprocessor=coprocessor or MockCoprocessor(descriptor.chain_id),
            rpc_url=descriptor.rpc_url, clock=clock)
    else:
        relayer = relayer or RelayerConfig()
        if not relayer.url:
            raise RelayerError(
                f"Chain {descriptor.chain_id} needs a relayer; configure relayer.url")
        backend = RelayerBackend(relayer.url, descriptor.chain_id,
                                 relayer.verifying_contract_decryption,
                                 relayer.gateway_chain_id, relayer.timeout)

    logger.info(f"Encryption session ready: chain {descriptor.chain_id}, "
                f"{descriptor.kind.value} backend")
    return EncryptionSession(backend, descriptor)
