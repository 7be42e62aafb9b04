"""Mock encryption backend for local development networks."""

import logging
import time
from typing import Callable, Dict, Optional, Sequence

from eth_utils import to_checksum_address

from . import keys
from .backend import EncryptionBackend, build_user_decrypt_eip712, recover_signer
from .errors import DecryptionError, DecryptionNotAllowed, GrantExpired, UnauthorizedContract
from .mock_coprocessor import MockCoprocessor, normalize_handle
from .types import (EIP712Payload, EncryptedPayload, HandleContractPair, Keypair,
                    RelayerMetadata, TypedValue)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class MockBackend(EncryptionBackend):
    """
    Backend bound to a development node's mock coprocessor.

    Encryption registers cleartexts with the coprocessor. User decryption
    enforces what the key management service would: a signature by the user
    over the exact EIP-712 request, the validity window, the contract set and
    the ACL. Results are sealed to the request's public key, as a relayer
    returns them.
    """

    def __init__(self, chain_id: int, metadata: RelayerMetadata,
                 coprocessor: Optional[MockCoprocessor] = None,
                 rpc_url: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.chain_id = chain_id
        self.metadata = metadata
        self.rpc_url = rpc_url
        self.coprocessor = coprocessor or MockCoprocessor(chain_id)
        self._clock = clock

    async def encrypt(self, contract_address: str, user_address: str,
                      values: Sequence[TypedValue]) -> EncryptedPayload:
        return self.coprocessor.register_inputs(contract_address, user_address, values)

    def generate_keypair(self) -> Keypair:
        return keys.generate_keypair()

    def create_eip712(self, public_key: str, contract_addresses: Sequence[str],
                      start_timestamp: int, duration_days: int) -> EIP712Payload:
        return build_user_decrypt_eip712(self.metadata.kms_verifier_address, self.chain_id,
                                         public_key, contract_addresses,
                                         start_timestamp, duration_days)

    async def user_decrypt(self, handles: Sequence[HandleContractPair], public_key: str,
                           signature: str, contract_addresses: Sequence[str],
                           user_address: str, start_timestamp: int,
                           duration_days: int) -> Dict[str, str]:
        payload = self.create_eip712(public_key, contract_addresses,
                                     start_timestamp, duration_days)
        try:
            signer = recover_signer(payload, signature)
        except Exception as e:
            raise DecryptionError(f"Unreadable decryption signature: {e}") from e
        if signer.lower() != user_address.lower():
            raise DecryptionError(
                f"Decryption request signed by {signer}, not by {user_address}")

        now = int(self._clock())
        if not start_timestamp <= now < start_timestamp + duration_days * SECONDS_PER_DAY:
            raise GrantExpired("Decryption request is outside its validity window")

        authorized = {to_checksum_address(a) for a in contract_addresses}
        user = to_checksum_address(user_address)
        results: Dict[str, str] = {}

        for pair in handles:
            contract = to_checksum_address(pair.contract_address)
            if contract not in authorized:
                raise UnauthorizedContract(f"{contract} is not covered by the request")

            handle = normalize_handle(pair.handle)
            public = self.coprocessor.is_publicly_decryptable(handle)
            granted = (self.coprocessor.is_allowed(handle, user)
                       and self.coprocessor.is_allowed(handle, contract))
            if not (public or granted):
                raise DecryptionNotAllowed(f"{user} may not decrypt {handle}")

            results[pair.handle] = keys.seal_value(self.coprocessor.cleartext(handle), public_key,
                                                   keys.handle_context(handle))

        logger.debug(f"Mock user decryption served {len(results)} handle(s) for {user}")
        return results
