"""Data structures shared by the encryption layer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from eth_utils import is_address, to_checksum_address


class FheType(Enum):
    """Encrypted types: (handle type code, plaintext bit width)"""
    BOOL = (0, 1)
    UINT8 = (2, 8)
    UINT16 = (3, 16)
    UINT32 = (4, 32)
    UINT64 = (5, 64)

    def __init__(self, code: int, bits: int):
        self.code = code
        self.bits = bits

    @classmethod
    def for_width(cls, width: int) -> Optional['FheType']:
        return _BY_WIDTH.get(width)

    @classmethod
    def from_code(cls, code: int) -> 'FheType':
        for member in cls:
            if member.code == code:
                return member
        raise ValueError(f"Unknown FHE type code {code}")


_BY_WIDTH = {t.bits: t for t in FheType if t is not FheType.BOOL}


class BackendKind(Enum):
    MOCK = "mock"
    PRODUCTION = "production"


@dataclass(frozen=True)
class RelayerMetadata:
    """Contract addresses a local development node advertises for its mock backend"""
    acl_address: str
    input_verifier_address: str
    kms_verifier_address: str

    REQUIRED_FIELDS = ('ACLAddress', 'InputVerifierAddress', 'KMSVerifierAddress')

    @classmethod
    def from_rpc(cls, payload: Any) -> Optional['RelayerMetadata']:
        """Parse an ``fhevm_relayer_metadata`` answer; None when incomplete"""
        if not isinstance(payload, dict):
            return None
        values = []
        for key in cls.REQUIRED_FIELDS:
            value = payload.get(key)
            if not isinstance(value, str) or not is_address(value):
                return None
            values.append(to_checksum_address(value))
        return cls(*values)


@dataclass(frozen=True)
class BackendDescriptor:
    kind: BackendKind
    chain_id: int
    rpc_url: Optional[str] = None
    metadata: Optional[RelayerMetadata] = None

    @property
    def is_mock(self) -> bool:
        return self.kind is BackendKind.MOCK


@dataclass(frozen=True)
class TypedValue:
    fhe_type: FheType
    value: int


@dataclass(frozen=True)
class EncryptedPayload:
    """Ciphertext handles (in insertion order) and the proof covering them"""
    handles: Tuple[str, ...]
    input_proof: str


@dataclass(frozen=True)
class HandleContractPair:
    handle: str
    contract_address: str


@dataclass(frozen=True)
class Keypair:
    public_key: str
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class EIP712Payload:
    domain: Dict[str, Any]
    types: Dict[str, Any]
    primary_type: str
    message: Dict[str, Any]

    def as_typed_data(self) -> Dict[str, Any]:
        """Full ``eth_signTypedData_v4`` document"""
        return {
            'domain': self.domain,
            'types': self.types,
            'primaryType': self.primary_type,
            'message': self.message,
        }
