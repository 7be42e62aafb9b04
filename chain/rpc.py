"""
Asynchronous JSON-RPC transport
===============================
Minimal EIP-1193 shaped provider over HTTP: anything in this code base that
accepts a "provider" only relies on ``await provider.request(method, params)``.
"""

import asyncio
import itertools
import logging
from typing import Any, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

# ============================================================================
# EXCEPTIONS
# ============================================================================


class RpcError(Exception):
    """Base JSON-RPC error"""
    pass


class RpcTransportError(RpcError):
    """Endpoint unreachable, timed out or answered with a non-JSON-RPC body"""
    pass


class JsonRpcError(RpcError):
    """Error object returned by the endpoint"""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"JSON-RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


# ============================================================================
# PROVIDER
# ============================================================================


class JsonRpcProvider:
    """HTTP JSON-RPC client backed by a lazily created aiohttp session"""

    def __init__(self, url: str, timeout: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            'jsonrpc': '2.0',
            'id': next(self._ids),
            'method': method,
            'params': list(params or []),
        }

        try:
            async with self._get_session().post(self.url, json=payload) as resp:
                if resp.status >= 400:
                    raise RpcTransportError(
                        f"{self.url} answered HTTP {resp.status} to {method}")
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RpcTransportError(f"{method} to {self.url} failed: {e}") from e

        if not isinstance(body, dict):
            raise RpcTransportError(f"Malformed JSON-RPC response to {method}")

        if body.get('error') is not None:
            error = body['error']
            if not isinstance(error, dict):
                raise JsonRpcError(-32603, str(error))
            raise JsonRpcError(error.get('code', -32603),
                               error.get('message', ''), error.get('data'))

        return body.get('result')

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def __repr__(self) -> str:
        return f"JsonRpcProvider({self.url!r})"


def parse_quantity(value: Any) -> int:
    """Decode an RPC quantity ("0x7a69", 31337, "31337")"""
    if isinstance(value, bool):
        raise ValueError(f"Not a quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.lower().startswith('0x'):
            return int(value, 16)
        return int(value)
    raise ValueError(f"Not a quantity: {value!r}")
