"""
Encryption backend capability interface
=======================================
Two implementations exist: ``MockBackend`` for local development nodes and
``RelayerBackend`` for networks served by a relayer. The Capability Resolver
picks one per session.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address

from .types import EIP712Payload, EncryptedPayload, HandleContractPair, Keypair, TypedValue

USER_DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"

EIP712_DOMAIN_FIELDS = [
    {'name': 'name', 'type': 'string'},
    {'name': 'version', 'type': 'string'},
    {'name': 'chainId', 'type': 'uint256'},
    {'name': 'verifyingContract', 'type': 'address'},
]

USER_DECRYPT_FIELDS = [
    {'name': 'publicKey', 'type': 'bytes'},
    {'name': 'contractAddresses', 'type': 'address[]'},
    {'name': 'startTimestamp', 'type': 'uint256'},
    {'name': 'durationDays', 'type': 'uint256'},
    {'name': 'extraData', 'type': 'bytes'},
]


class EncryptionBackend(ABC):
    """Operations an encryption session delegates to its backend"""

    chain_id: int

    @abstractmethod
    async def encrypt(self, contract_address: str, user_address: str,
                      values: Sequence[TypedValue]) -> EncryptedPayload:
        """Turn plaintext values into handles plus one validity proof"""

    @abstractmethod
    def generate_keypair(self) -> Keypair:
        """Fresh ephemeral key pair for one decryption grant"""

    @abstractmethod
    def create_eip712(self, public_key: str, contract_addresses: Sequence[str],
                      start_timestamp: int, duration_days: int) -> EIP712Payload:
        """Typed-data descriptor the wallet signs to authorize user decryption"""

    @abstractmethod
    async def user_decrypt(self, handles: Sequence[HandleContractPair], public_key: str,
                           signature: str, contract_addresses: Sequence[str],
                           user_address: str, start_timestamp: int,
                           duration_days: int) -> Dict[str, str]:
        """
        Value per handle sealed to ``public_key`` (see ``keys.seal_value``,
        with the raw handle bytes as associated data). Only the grant holder
        opens them; the private key never reaches a backend.
        """

    async def close(self):
        pass


def build_user_decrypt_eip712(verifying_contract: str, chain_id: int, public_key: str,
                              contract_addresses: Sequence[str], start_timestamp: int,
                              duration_days: int) -> EIP712Payload:
    return EIP712Payload(
        domain={
            'name': 'Decryption',
            'version': '1',
            'chainId': int(chain_id),
            'verifyingContract': to_checksum_address(verifying_contract),
        },
        types={
            'EIP712Domain': list(EIP712_DOMAIN_FIELDS),
            USER_DECRYPT_PRIMARY_TYPE: list(USER_DECRYPT_FIELDS),
        },
        primary_type=USER_DECRYPT_PRIMARY_TYPE,
        message={
            'publicKey': public_key,
            'contractAddresses': [to_checksum_address(a) for a in contract_addresses],
            'startTimestamp': int(start_timestamp),
            'durationDays': int(duration_days),
            'extraData': '0x00',
        },
    )


def primary_types(payload: EIP712Payload) -> Dict[str, List[Dict[str, str]]]:
    """Message types without the domain entry, as eth-account expects them"""
    return {payload.primary_type: payload.types[payload.primary_type]}


def recover_signer(payload: EIP712Payload, signature: str) -> str:
    signable = encode_typed_data(payload.domain, primary_types(payload), payload.message)
    return Account.recover_message(signable, signature=signature)
