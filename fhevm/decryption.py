"""
Decryption Authorization
========================
A grant lets one user decrypt handles of a fixed set of contracts for a fixed
time window. Building one takes, in order:

1. the signer's address,
2. the window start (now) and duration (365 days by default),
3. a fresh ephemeral key pair from the session,
4. the session's EIP-712 descriptor over key, contracts and window,
5. the wallet's typed-data signature over that exact descriptor.

Any failure surfaces as AuthorizationFailed and no grant exists. Grants hold
a private key: keep them in memory for the duration of the decryption call
and never persist them.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Sequence, Tuple, Union

from eth_utils import to_checksum_address

from . import keys
from .errors import (AuthorizationFailed, DecryptionError, FhevmError, GrantExpired,
                     UnauthorizedContract)
from .types import HandleContractPair, Keypair

logger = logging.getLogger(__name__)

DEFAULT_DURATION_DAYS = 365
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DecryptionGrant:
    public_key: str
    private_key: str = field(repr=False)
    signature: str = field(repr=False)
    start_timestamp: int = 0
    duration_days: int = DEFAULT_DURATION_DAYS
    user_address: str = ""
    contract_addresses: Tuple[str, ...] = ()

    @property
    def keypair(self) -> Keypair:
        return Keypair(public_key=self.public_key, private_key=self.private_key)

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_valid_at(self, now: float) -> bool:
        return self.start_timestamp <= now < self.expires_at

    def covers(self, contract_address: str) -> bool:
        return to_checksum_address(contract_address) in self.contract_addresses


async def authorize(session, contract_address: Union[str, Iterable[str]], signer,
                    duration_days: int = DEFAULT_DURATION_DAYS,
                    clock: Callable[[], float] = time.time) -> DecryptionGrant:
    """Sign a user-decryption request for ``contract_address`` (one or several)"""
    if isinstance(contract_address, str):
        contracts = (contract_address,)
    else:
        contracts = tuple(contract_address)

    try:
        if not contracts:
            raise ValueError("At least one contract address is required")
        contracts = tuple(to_checksum_address(c) for c in contracts)

        user_address = to_checksum_address(await signer.get_address())
        start_timestamp = int(clock())
        keypair = session.generate_keypair()
        eip712 = session.create_eip712(keypair.public_key, list(contracts),
                                       start_timestamp, duration_days)
        signature = await signer.sign_typed_data(
            eip712.domain, eip712.types, eip712.message, eip712.primary_type)
        if not signature:
            raise ValueError("Signer returned an empty signature")
    except Exception as e:
        raise AuthorizationFailed(
            f"Decryption authorization failed: {e}. Re-authorize to retry.") from e

    logger.info(f"Decryption grant issued to {user_address} for {len(contracts)} "
                f"contract(s), valid {duration_days} day(s)")
    return DecryptionGrant(
        public_key=keypair.public_key,
        private_key=keypair.private_key,
        signature=signature,
        start_timestamp=start_timestamp,
        duration_days=duration_days,
        user_address=user_address,
        contract_addresses=contracts,
    )


def _as_pair(item: Any) -> HandleContractPair:
    if isinstance(item, HandleContractPair):
        return item
    if isinstance(item, dict):
        return HandleContractPair(item['handle'], item['contractAddress'])
    handle, contract = item
    return HandleContractPair(handle, contract)


async def decrypt(session, grant: DecryptionGrant, handles: Sequence[Any],
                  clock: Callable[[], float] = time.time) -> Dict[str, int]:
    """Plaintext per handle; handles are ``HandleContractPair`` or (handle, contract) pairs"""
    pairs = [_as_pair(h) for h in handles]
    if not pairs:
        return {}

    if not grant.is_valid_at(clock()):
        raise GrantExpired(
            "Decryption grant is outside its validity window. Re-authorize to decrypt.")

    for pair in pairs:
        if not grant.covers(pair.contract_address):
            raise UnauthorizedContract(
                f"Grant does not cover contract {pair.contract_address}. "
                f"Re-authorize including it.")

    try:
        sealed = await session.user_decrypt(pairs, grant.public_key, grant.signature,
                                            list(grant.contract_addresses), grant.user_address,
                                            grant.start_timestamp, grant.duration_days)
    except FhevmError:
        raise
    except Exception as e:
        raise DecryptionError(f"User decryption failed: {e}") from e

    # sealed to the grant's public key; only this process holds the private half
    keypair = grant.keypair
    values: Dict[str, int] = {}
    for pair in pairs:
        if pair.handle not in sealed:
            raise DecryptionError(f"No decrypted value returned for {pair.handle}")
        values[pair.handle] = keys.open_value(sealed[pair.handle], keypair,
                                              keys.handle_context(pair.handle))
    return values
