"""
Capability Resolver
===================
Decides which encryption backend a network supports:

1. Resolve the chain id (provider handshake or endpoint query).
2. Chain id not in the mock-chain map -> production (relayer), no probing.
3. Probe ``web3_clientVersion`` for a development node signature.
4. Fetch ``fhevm_relayer_metadata`` (ACL, input verifier, KMS verifier).

Probe failures of any kind degrade to production; only cancellation escapes,
as AbortError.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from chain.rpc import JsonRpcProvider, parse_quantity

from .cancellation import CancellationToken
from .errors import AbortError, CapabilityError
from .types import BackendDescriptor, BackendKind, RelayerMetadata

logger = logging.getLogger(__name__)

DEFAULT_MOCK_CHAINS: Dict[int, str] = {31337: "http://localhost:8545"}
DEV_NODE_SIGNATURES = ("hardhat",)
METADATA_METHOD = "fhevm_relayer_metadata"

RpcFactory = Callable[[str], Any]


@asynccontextmanager
async def _open_rpc(rpc_factory: RpcFactory, url: str):
    rpc = rpc_factory(url)
    try:
        yield rpc
    finally:
        close = getattr(rpc, 'close', None)
        if close is not None:
            await close()


async def get_chain_id(provider_or_url: Any, rpc_factory: RpcFactory = JsonRpcProvider) -> int:
    try:
        if isinstance(provider_or_url, str):
            async with _open_rpc(rpc_factory, provider_or_url) as rpc:
                raw = await rpc.request("eth_chainId", [])
        else:
            raw = await provider_or_url.request("eth_chainId", [])
        return parse_quantity(raw)
    except AbortError:
        raise
    except Exception as e:
        raise CapabilityError(f"Could not determine chain id: {e}") from e


def merge_mock_chains(mock_chains: Optional[Dict[int, str]]) -> Dict[int, str]:
    merged = dict(DEFAULT_MOCK_CHAINS)
    merged.update({int(k): v for k, v in (mock_chains or {}).items()})
    return merged


async def probe_dev_node_metadata(rpc_url: str, token: CancellationToken,
                                  rpc_factory: RpcFactory = JsonRpcProvider,
                                  timeout: float = 5.0) -> Optional[RelayerMetadata]:
    """Metadata of a development node at ``rpc_url``, or None if it is not one"""
    async with _open_rpc(rpc_factory, rpc_url) as rpc:
        try:
            version = await token.run(asyncio.wait_for(
                rpc.request("web3_clientVersion", []), timeout))
        except AbortError:
            raise
        except Exception as e:
            logger.debug(f"Client version probe of {rpc_url} failed: {e}")
            return None

        if not isinstance(version, str) or not any(
                sig in version.lower() for sig in DEV_NODE_SIGNATURES):
            logger.debug(f"{rpc_url} is not a development node (version {version!r})")
            return None

        token.check()

        try:
            payload = await token.run(asyncio.wait_for(
                rpc.request(METADATA_METHOD, []), timeout))
        except AbortError:
            raise
        except Exception as e:
            logger.debug(f"Metadata probe of {rpc_url} failed: {e}")
            return None

    metadata = RelayerMetadata.from_rpc(payload)
    if metadata is None:
        logger.debug(f"{rpc_url} answered incomplete backend metadata")
    return metadata


async def resolve(provider_or_url: Any, mock_chains: Optional[Dict[int, str]] = None,
                  token: Optional[CancellationToken] = None,
                  rpc_factory: RpcFactory = JsonRpcProvider,
                  probe_timeout: float = 5.0) -> BackendDescriptor:
    token = token or CancellationToken()

    chain_id = await token.run(get_chain_id(provider_or_url, rpc_factory))
    token.check()

    chains = merge_mock_chains(mock_chains)
    endpoint = provider_or_url if isinstance(provider_or_url, str) else None

    if chain_id not in chains:
        logger.info(f"Chain {chain_id} has no local mock backend; relayer required")
        return BackendDescriptor(BackendKind.PRODUCTION, chain_id, rpc_url=endpoint)

    rpc_url = endpoint or chains[chain_id]
    metadata = await probe_dev_node_metadata(rpc_url, token, rpc_factory, probe_timeout)
    token.check()

    if metadata is None:
        logger.info(f"Chain {chain_id} at {rpc_url} exposes no mock backend; relayer required")
        return BackendDescriptor(BackendKind.PRODUCTION, chain_id, rpc_url=rpc_url)

    logger.info(f"Chain {chain_id} at {rpc_url} supports the mock backend")
    return BackendDescriptor(BackendKind.MOCK, chain_id, rpc_url=rpc_url, metadata=metadata)
