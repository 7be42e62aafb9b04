"""
Encrypted Input Builder
=======================
Accumulates typed plaintexts bound to (contract, user) and converts them to
ciphertext handles plus one validity proof in a single finalize() call.
Handles come back in insertion order; the builder does not label them.
"""

import logging
from typing import TYPE_CHECKING, List

from eth_utils import to_checksum_address

from .errors import (EncryptedInputError, OutOfRangeError, UnsupportedWidthError,
                     UseAfterFinalizeError)
from .types import EncryptedPayload, FheType, TypedValue

if TYPE_CHECKING:
    from .session import EncryptionSession

logger = logging.getLogger(__name__)

MAX_VALUES = 256
MAX_TOTAL_BITS = 2048


class EncryptedInput:
    """Single-use builder; discard after finalize()"""

    def __init__(self, session: 'EncryptionSession', contract_address: str, user_address: str):
        self._session = session
        self.contract_address = to_checksum_address(contract_address)
        self.user_address = to_checksum_address(user_address)
        self._values: List[TypedValue] = []
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __len__(self) -> int:
        return len(self._values)

    def _check_open(self):
        if self._finalized:
            raise UseAfterFinalizeError("Encrypted input was already finalized")

    def _append(self, typed: TypedValue):
        if len(self._values) >= MAX_VALUES:
            raise EncryptedInputError(f"An encrypted input holds at most {MAX_VALUES} values")
        total_bits = sum(v.fhe_type.bits for v in self._values) + typed.fhe_type.bits
        if total_bits > MAX_TOTAL_BITS:
            raise EncryptedInputError(
                f"An encrypted input holds at most {MAX_TOTAL_BITS} bits")
        self._values.append(typed)

    def add_scalar(self, width: int, value: int) -> 'EncryptedInput':
        self._check_open()
        fhe_type = FheType.for_width(width)
        if fhe_type is None:
            raise UnsupportedWidthError(f"Unsupported width {width}; use 8, 16, 32 or 64")
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Scalar value must be an int, got {type(value).__name__}")
        if not 0 <= value < (1 << width):
            raise OutOfRangeError(f"{value} does not fit in {width} bits")
        self._append(TypedValue(fhe_type, value))
        return self

    def add8(self, value: int) -> 'EncryptedInput':
        return self.add_scalar(8, value)

    def add16(self, value: int) -> 'EncryptedInput':
        return self.add_scalar(16, value)

    def add32(self, value: int) -> 'EncryptedInput':
        return self.add_scalar(32, value)

    def add64(self, value: int) -> 'EncryptedInput':
        return self.add_scalar(64, value)

    def add_bool(self, value: bool) -> 'EncryptedInput':
        self._check_open()
        if value not in (True, False):
            raise OutOfRangeError(f"{value!r} is not a boolean")
        self._append(TypedValue(FheType.BOOL, int(value)))
        return self

    async def finalize(self) -> EncryptedPayload:
        self._check_open()
        self._finalized = True

        if not self._values:
            raise EncryptedInputError("Nothing to encrypt")

        self._session.ensure_valid()
        payload = await self._session.backend.encrypt(
            self.contract_address, self.user_address, list(self._values))

        if len(payload.handles) != len(self._values):
            raise EncryptedInputError(
                f"Backend returned {len(payload.handles)} handles for {len(self._values)} values")

        logger.debug(f"Encrypted {len(self._values)} value(s) for {self.contract_address}")
        self._values = []
        return payload
