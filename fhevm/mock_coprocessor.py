"""
Local Mock Coprocessor
======================
Plaintext stand-in for the encryption coprocessor of a development network.
Handles follow the fhevm byte layout (21-byte digest, index, chain id, type,
version) so code above the backend cannot tell them from real ones.

The mock keeps:
- the cleartext behind every handle,
- the access-control list (who may use or user-decrypt a handle),
- an input verifier: proofs bind handles to (contract, user).
"""

import hmac
import itertools
import logging
import secrets
from typing import Dict, Sequence, Set, Tuple

from eth_utils import keccak, to_checksum_address

from .errors import FhevmError
from .types import EncryptedPayload, FheType, TypedValue

logger = logging.getLogger(__name__)

HANDLE_VERSION = 0
HANDLE_SIZE = 32
PROOF_TAG_SIZE = 32


class InvalidInputProofError(FhevmError):
    """Input proof does not cover the handle for this contract and user"""
    pass


class UnknownHandleError(FhevmError):
    """Handle was never produced by this coprocessor"""
    pass


def normalize_handle(handle) -> str:
    if isinstance(handle, (bytes, bytearray)):
        raw = bytes(handle)
    else:
        text = handle[2:] if handle.lower().startswith('0x') else handle
        raw = bytes.fromhex(text)
    if len(raw) != HANDLE_SIZE:
        raise ValueError(f"Handle must be {HANDLE_SIZE} bytes, got {len(raw)}")
    return '0x' + raw.hex()


def handle_type(handle: str) -> FheType:
    return FheType.from_code(bytes.fromhex(normalize_handle(handle)[2:])[30])


def compute_handle(seed: bytes, index: int, fhe_type: FheType, chain_id: int) -> str:
    digest = keccak(seed + bytes([index]))
    raw = (digest[:21] + bytes([index]) + int(chain_id).to_bytes(8, 'big')
           + bytes([fhe_type.code, HANDLE_VERSION]))
    return '0x' + raw.hex()


class MockCoprocessor:
    """Cleartext store, ACL and input verifier shared by MockBackend and InMemoryLedger"""

    def __init__(self, chain_id: int = 31337):
        self.chain_id = chain_id
        self._secret = secrets.token_bytes(32)
        self._values: Dict[str, Tuple[FheType, int]] = {}
        self._acl: Dict[str, Set[str]] = {}
        self._public: Set[str] = set()
        self._nonce = itertools.count()

    # ------------------------------------------------------------------
    # inputs
    # ------------------------------------------------------------------

    def register_inputs(self, contract_address: str, user_address: str,
                        values: Sequence[TypedValue]) -> EncryptedPayload:
        contract = to_checksum_address(contract_address)
        user = to_checksum_address(user_address)
        seed = keccak(self._secret + next(self._nonce).to_bytes(8, 'big')
                      + bytes.fromhex(contract[2:]) + bytes.fromhex(user[2:]))

        handles = []
        for index, typed in enumerate(values):
            handle = compute_handle(seed, index, typed.fhe_type, self.chain_id)
            self._values[handle] = (typed.fhe_type, int(typed.value))
            handles.append(handle)

        proof = bytes([len(handles)])
        proof += b''.join(bytes.fromhex(h[2:]) for h in handles)
        proof += self._proof_tag(contract, user, handles)
        return EncryptedPayload(handles=tuple(handles), input_proof='0x' + proof.hex())

    def verify_input(self, handle, input_proof, contract_address: str, user_address: str) -> str:
        handle = normalize_handle(handle)
        if isinstance(input_proof, (bytes, bytearray)):
            proof = bytes(input_proof)
        else:
            proof = bytes.fromhex(input_proof[2:] if input_proof.startswith('0x') else input_proof)

        if not proof:
            raise InvalidInputProofError("Empty input proof")
        count = proof[0]
        body = proof[1:1 + count * HANDLE_SIZE]
        tag = proof[1 + count * HANDLE_SIZE:]
        if len(body) != count * HANDLE_SIZE or len(tag) != PROOF_TAG_SIZE:
            raise InvalidInputProofError("Malformed input proof")

        handles = ['0x' + body[i:i + HANDLE_SIZE].hex() for i in range(0, len(body), HANDLE_SIZE)]
        if handle not in handles:
            raise InvalidInputProofError("Handle is not covered by the input proof")

        expected = self._proof_tag(to_checksum_address(contract_address),
                                   to_checksum_address(user_address), handles)
        if not hmac.compare_digest(expected, tag):
            raise InvalidInputProofError("Input proof was issued for another contract or user")
        if handle not in self._values:
            raise UnknownHandleError(handle)
        return handle

    def _proof_tag(self, contract: str, user: str, handles: Sequence[str]) -> bytes:
        message = (bytes.fromhex(contract[2:]) + bytes.fromhex(user[2:])
                   + self.chain_id.to_bytes(8, 'big')
                   + b''.join(bytes.fromhex(h[2:]) for h in handles))
        return hmac.new(self._secret, message, 'sha256').digest()

    # ------------------------------------------------------------------
    # computation
    # ------------------------------------------------------------------

    def _store(self, fhe_type: FheType, value: int) -> str:
        seed = keccak(self._secret + b'op' + next(self._nonce).to_bytes(8, 'big'))
        handle = compute_handle(seed, 0xff, fhe_type, self.chain_id)
        self._values[handle] = (fhe_type, value % (1 << fhe_type.bits))
        return handle

    def _load(self, handle) -> Tuple[FheType, int]:
        handle = normalize_handle(handle)
        try:
            return self._values[handle]
        except KeyError:
            raise UnknownHandleError(handle) from None

    def trivial_encrypt(self, value: int, fhe_type: FheType) -> str:
        return self._store(fhe_type, value)

    def add(self, a, b) -> str:
        a_type, a_value = self._load(a)
        _, b_value = self._load(b)
        return self._store(a_type, a_value + b_value)

    def eq_scalar(self, a, scalar: int) -> str:
        _, a_value = self._load(a)
        return self._store(FheType.BOOL, int(a_value == scalar))

    def select(self, condition, if_true, if_false) -> str:
        _, flag = self._load(condition)
        chosen_type, chosen = self._load(if_true if flag else if_false)
        return self._store(chosen_type, chosen)

    # ------------------------------------------------------------------
    # access control
    # ------------------------------------------------------------------

    def allow(self, handle, account: str):
        self._acl.setdefault(normalize_handle(handle), set()).add(
            to_checksum_address(account))

    def allow_for_decryption(self, handle):
        self._public.add(normalize_handle(handle))

    def is_allowed(self, handle, account: str) -> bool:
        return to_checksum_address(account) in self._acl.get(normalize_handle(handle), set())

    def is_publicly_decryptable(self, handle) -> bool:
        return normalize_handle(handle) in self._public

    def cleartext(self, handle) -> int:
        return self._load(handle)[1]
