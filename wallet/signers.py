"""
Typed-data signers for decryption authorization.

The EIP-712 domain, types and message are handed to the signer exactly as the
encryption session produced them.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from eth_account import Account
from eth_utils import to_checksum_address

logger = logging.getLogger(__name__)

DOMAIN_TYPE = "EIP712Domain"


class Signer(ABC):

    @abstractmethod
    async def get_address(self) -> str:
        pass

    @abstractmethod
    async def sign_typed_data(self, domain: Dict[str, Any], types: Dict[str, List[Dict[str, str]]],
                              message: Dict[str, Any], primary_type: str) -> str:
        """0x-prefixed 65-byte signature"""


class LocalAccountSigner(Signer):
    """Signs with a key held in this process (development accounts, scripts)"""

    def __init__(self, account):
        self.account = account

    @classmethod
    def from_key(cls, private_key: str) -> 'LocalAccountSigner':
        return cls(Account.from_key(private_key))

    async def get_address(self) -> str:
        return self.account.address

    async def sign_typed_data(self, domain, types, message, primary_type) -> str:
        # eth-account derives the domain type itself
        message_types = {name: fields for name, fields in types.items() if name != DOMAIN_TYPE}
        signed = Account.sign_typed_data(self.account.key, domain, message_types, message)
        return '0x' + bytes(signed.signature).hex()

    def __repr__(self) -> str:
        return f"LocalAccountSigner({self.account.address})"


class JsonRpcSigner(Signer):
    """Delegates to the wallet behind a provider via ``eth_signTypedData_v4``"""

    def __init__(self, provider, address: str):
        self.provider = provider
        self.address = to_checksum_address(address)

    async def get_address(self) -> str:
        return self.address

    async def sign_typed_data(self, domain, types, message, primary_type) -> str:
        typed_data = {
            'types': types,
            'domain': domain,
            'primaryType': primary_type,
            'message': message,
        }
        logger.debug(f"Requesting {primary_type} signature from {self.address}")
        return await self.provider.request(
            'eth_signTypedData_v4', [self.address, json.dumps(typed_data)])

    def __repr__(self) -> str:
        return f"JsonRpcSigner({self.address})"
