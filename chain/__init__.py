"""Chain access: JSON-RPC transport and ABI helpers."""

from .rpc import (
    JsonRpcProvider,
    RpcError,
    RpcTransportError,
    JsonRpcError,
    parse_quantity
)
from .abi import (
    encode_call,
    decode_result,
    decode_revert,
    build_error_table,
    selector,
    to_hex,
    to_bytes_hex
)

__all__ = [
    'JsonRpcProvider',
    'RpcError',
    'RpcTransportError',
    'JsonRpcError',
    'parse_quantity',
    'encode_call',
    'decode_result',
    'decode_revert',
    'build_error_table',
    'selector',
    'to_hex',
    'to_bytes_hex'
]
