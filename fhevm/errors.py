"""Exceptions raised by the encryption layer."""


class FhevmError(Exception):
    """Base encryption layer error"""
    pass


class AbortError(FhevmError):
    """Operation cut short by its cancellation token"""

    def __init__(self, message: str = "FHEVM operation was cancelled"):
        super().__init__(message)


class CapabilityError(FhevmError):
    """Backend capabilities could not be determined"""
    pass


class SessionNotReadyError(FhevmError):
    """No usable encryption session (never initialized, failed or invalidated)"""
    pass


class RelayerError(FhevmError):
    """Relayer service missing, unreachable or answering malformed data"""
    pass


# Encrypted input builder misuse


class EncryptedInputError(FhevmError):
    """Encrypted input builder misuse"""
    pass


class OutOfRangeError(EncryptedInputError, ValueError):
    """Value does not fit the declared bit width"""
    pass


class UnsupportedWidthError(EncryptedInputError, ValueError):
    """Bit width other than 8, 16, 32 or 64"""
    pass


class UseAfterFinalizeError(EncryptedInputError):
    """Builder touched after finalize()"""
    pass


# Decryption


class DecryptionError(FhevmError):
    """User decryption failed"""
    pass


class AuthorizationFailed(DecryptionError):
    """Decryption grant could not be produced; re-authorize to retry"""
    pass


class GrantExpired(DecryptionError):
    """Decryption grant used outside its validity window; re-authorize"""
    pass


class UnauthorizedContract(DecryptionError):
    """Handle belongs to a contract the grant does not cover; re-authorize for it"""
    pass


class DecryptionNotAllowed(DecryptionError):
    """Access control refuses the handle to this user"""
    pass
