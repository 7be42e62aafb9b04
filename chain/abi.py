"""ABI helpers: call encoding, result decoding and revert-reason extraction."""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)


def to_bytes_hex(data: Any) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        text = data[2:] if data.lower().startswith('0x') else data
        return bytes.fromhex(text)
    raise TypeError(f"Expected hex string or bytes, got {type(data).__name__}")


def to_hex(data: bytes) -> str:
    return '0x' + bytes(data).hex()


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, args: Sequence[Any]) -> str:
    """``encode_call("vote(uint256,bytes32,bytes)", [1, h, p])`` -> calldata hex"""
    arg_types = _argument_types(signature)
    return to_hex(selector(signature) + encode(arg_types, list(args)))


def decode_result(output_types: Sequence[str], data: Any) -> Tuple[Any, ...]:
    return decode(list(output_types), to_bytes_hex(data))


def build_error_table(names: Iterable[str]) -> Dict[bytes, str]:
    """Selector table for parameterless custom errors"""
    return {selector(f"{name}()"): name for name in names}


def decode_revert(data: Any, error_table: Dict[bytes, str]) -> Optional[str]:
    """
    Name of the failure carried by revert ``data``.

    Custom errors resolve through ``error_table``; ``Error(string)`` yields its
    message; anything else yields None.
    """
    try:
        raw = to_bytes_hex(data)
    except (TypeError, ValueError):
        return None
    if len(raw) < 4:
        return None

    head = raw[:4]
    if head in error_table:
        return error_table[head]
    if head == ERROR_STRING_SELECTOR:
        try:
            (message,) = decode(['string'], raw[4:])
        except Exception:
            return None
        return message
    if head == PANIC_SELECTOR:
        return "Panic"
    return None


def _argument_types(signature: str) -> list:
    inner = signature[signature.index('(') + 1:signature.rindex(')')]
    if not inner:
        return []
    # tuple arguments are never used by the ledger surface
    return [t.strip() for t in inner.split(',')]
