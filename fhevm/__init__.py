"""Confidential computation client: capability resolution, sessions, encrypted inputs, user decryption."""

from .types import (
    FheType,
    BackendKind,
    BackendDescriptor,
    RelayerMetadata,
    TypedValue,
    EncryptedPayload,
    HandleContractPair,
    Keypair,
    EIP712Payload
)
from .errors import (
    FhevmError,
    AbortError,
    CapabilityError,
    SessionNotReadyError,
    RelayerError,
    EncryptedInputError,
    OutOfRangeError,
    UnsupportedWidthError,
    UseAfterFinalizeError,
    DecryptionError,
    AuthorizationFailed,
    GrantExpired,
    UnauthorizedContract,
    DecryptionNotAllowed
)
from .cancellation import CancellationToken
from .backend import EncryptionBackend
from .mock_coprocessor import MockCoprocessor
from .mock_backend import MockBackend
from .relayer_backend import RelayerBackend
from .resolver import resolve, DEFAULT_MOCK_CHAINS
from .encrypted_input import EncryptedInput
from .session import EncryptionSession, create_encryption_session
from .manager import SessionManager, SessionState
from .decryption import DecryptionGrant, authorize, decrypt

__all__ = [
    # Data structures
    'FheType',
    'BackendKind',
    'BackendDescriptor',
    'RelayerMetadata',
    'TypedValue',
    'EncryptedPayload',
    'HandleContractPair',
    'Keypair',
    'EIP712Payload',
    'DecryptionGrant',

    # Components
    'CancellationToken',
    'EncryptionBackend',
    'MockCoprocessor',
    'MockBackend',
    'RelayerBackend',
    'EncryptedInput',
    'EncryptionSession',
    'SessionManager',
    'SessionState',

    # Operations
    'resolve',
    'create_encryption_session',
    'authorize',
    'decrypt',
    'DEFAULT_MOCK_CHAINS',

    # Exceptions
    'FhevmError',
    'AbortError',
    'CapabilityError',
    'SessionNotReadyError',
    'RelayerError',
    'EncryptedInputError',
    'OutOfRangeError',
    'UnsupportedWidthError',
    'UseAfterFinalizeError',
    'DecryptionError',
    'AuthorizationFailed',
    'GrantExpired',
    'UnauthorizedContract',
    'DecryptionNotAllowed'
]
