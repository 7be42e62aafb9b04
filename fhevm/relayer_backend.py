"""Relayer-backed encryption backend for production networks."""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

import aiohttp
from eth_utils import to_checksum_address

from . import keys
from .backend import EncryptionBackend, build_user_decrypt_eip712
from .errors import DecryptionNotAllowed, RelayerError
from .types import EIP712Payload, EncryptedPayload, FheType, HandleContractPair, Keypair, TypedValue

logger = logging.getLogger(__name__)

INPUT_PROOF_PATH = "/v1/input-proof"
USER_DECRYPT_PATH = "/v1/user-decrypt"

TYPE_NAMES = {
    FheType.BOOL: "ebool",
    FheType.UINT8: "euint8",
    FheType.UINT16: "euint16",
    FheType.UINT32: "euint32",
    FheType.UINT64: "euint64",
}


def _strip0x(value: str) -> str:
    return value[2:] if value.startswith('0x') else value


class RelayerBackend(EncryptionBackend):
    """HTTP client for a relayer service that fronts the coprocessor and KMS"""

    def __init__(self, url: str, chain_id: int,
                 verifying_contract_decryption: Optional[str] = None,
                 gateway_chain_id: Optional[int] = None,
                 timeout: float = 60.0,
                 session: Optional[aiohttp.ClientSession] = None):
        if not url:
            raise RelayerError("Relayer URL is required for non-local networks")
        self.url = url.rstrip('/')
        self.chain_id = chain_id
        self.verifying_contract_decryption = verifying_contract_decryption
        self.gateway_chain_id = gateway_chain_id
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._get_session().post(self.url + path, json=body) as resp:
                payload = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RelayerError(f"Relayer request {path} failed: {e}") from e

        if status == 403:
            raise DecryptionNotAllowed(_error_message(payload, status))
        if status >= 400:
            raise RelayerError(f"Relayer rejected {path}: {_error_message(payload, status)}")
        if not isinstance(payload, dict):
            raise RelayerError(f"Malformed relayer answer to {path}")
        return payload

    async def encrypt(self, contract_address: str, user_address: str,
                      values: Sequence[TypedValue]) -> EncryptedPayload:
        body = {
            'contractChainId': hex(self.chain_id),
            'contractAddress': to_checksum_address(contract_address),
            'userAddress': to_checksum_address(user_address),
            'values': [{'type': TYPE_NAMES[v.fhe_type], 'value': str(int(v.value))}
                       for v in values],
        }
        logger.info(f"Requesting input proof for {len(values)} value(s) from relayer")
        payload = await self._post(INPUT_PROOF_PATH, body)

        handles = payload.get('handles')
        proof = payload.get('inputProof')
        if (not isinstance(handles, list) or len(handles) != len(values)
                or not all(isinstance(h, str) for h in handles)
                or not isinstance(proof, str)):
            raise RelayerError("Relayer input proof answer is incomplete")
        return EncryptedPayload(
            handles=tuple('0x' + _strip0x(h).lower() for h in handles),
            input_proof='0x' + _strip0x(proof))

    def generate_keypair(self) -> Keypair:
        return keys.generate_keypair()

    def create_eip712(self, public_key: str, contract_addresses: Sequence[str],
                      start_timestamp: int, duration_days: int) -> EIP712Payload:
        if not self.verifying_contract_decryption:
            raise RelayerError("Decryption verifying contract is not configured")
        return build_user_decrypt_eip712(self.verifying_contract_decryption,
                                         self.gateway_chain_id or self.chain_id,
                                         public_key, contract_addresses,
                                         start_timestamp, duration_days)

    async def user_decrypt(self, handles: Sequence[HandleContractPair], public_key: str,
                           signature: str, contract_addresses: Sequence[str],
                           user_address: str, start_timestamp: int,
                           duration_days: int) -> Dict[str, str]:
        body = {
            'handleContractPairs': [
                {'handle': p.handle, 'contractAddress': to_checksum_address(p.contract_address)}
                for p in handles
            ],
            'requestValidity': {
                'startTimestamp': str(start_timestamp),
                'durationDays': str(duration_days),
            },
            'contractsChainId': str(self.chain_id),
            'contractAddresses': [to_checksum_address(a) for a in contract_addresses],
            'userAddress': to_checksum_address(user_address),
            'signature': _strip0x(signature),
            'publicKey': _strip0x(public_key),
            'extraData': '0x00',
        }
        payload = await self._post(USER_DECRYPT_PATH, body)

        entries = payload.get('response')
        if not isinstance(entries, list):
            raise RelayerError("Relayer user-decrypt answer is incomplete")

        sealed_by_handle = {}
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get('handle'), str) \
                    or not isinstance(entry.get('sealed'), str):
                raise RelayerError("Relayer user-decrypt entry is malformed")
            sealed_by_handle['0x' + _strip0x(entry['handle']).lower()] = entry['sealed']

        results: Dict[str, str] = {}
        for pair in handles:
            key = '0x' + _strip0x(pair.handle).lower()
            if key not in sealed_by_handle:
                raise RelayerError(f"Relayer returned no value for {pair.handle}")
            results[pair.handle] = sealed_by_handle[key]
        return results

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def _error_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        message = payload.get('message') or payload.get('error')
        if message:
            return str(message)
    return f"HTTP {status}"
