"""
JSON-RPC binding of the deployed voting ledger.

Every transaction is pre-flighted with ``eth_call`` from the sender so the
ledger's custom-error revert comes back as its named LedgerError before any
gas is spent. Accounts the node (or wallet) holds send via
``eth_sendTransaction``; accounts with a local key are signed here and sent
raw.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from eth_account import Account
from eth_utils import to_checksum_address

from config.config import LedgerConfig
from chain.abi import build_error_table, decode_result, decode_revert, encode_call, to_hex
from chain.rpc import JsonRpcError, RpcError, parse_quantity

from .ledger import (Ledger, LedgerError, LedgerLimits, NAMED_ERRORS, Proposal,
                     TransactionFailed, error_for_reason, resolve_ledger_address)

logger = logging.getLogger(__name__)

CREATE_PROPOSAL = "createProposal(string,string,string[],uint256,uint256)"
VOTE = "vote(uint256,bytes32,bytes)"
REVEAL_RESULT = "revealResult(uint256)"
REVEAL_MY_VOTE = "revealMyVote(uint256)"
PROPOSAL_COUNT = "proposalCount()"
GET_PROPOSAL = "getProposal(uint256)"
HAS_VOTED = "hasVoted(uint256,address)"
GET_OPTION_VOTES = "getOptionVotes(uint256,uint256)"
IS_ACTIVE = "isActive(uint256)"
MIN_DURATION = "MIN_DURATION()"
MIN_OPTIONS = "MIN_OPTIONS()"
MAX_OPTIONS = "MAX_OPTIONS()"

# getProposal returns the Proposal struct
PROPOSAL_TUPLE = "(string,string,string[],address,uint256,uint256,uint256,uint256,bool)"

ERROR_TABLE = build_error_table(NAMED_ERRORS)
_CUSTOM_ERROR_MESSAGE = re.compile(r"custom error '?(\w+)\(")
GAS_HEADROOM = 1.2


class RpcLedger(Ledger):

    def __init__(self, provider, address: str, accounts: Optional[Iterable[Any]] = None,
                 receipt_poll_interval: float = 1.0, receipt_timeout: float = 120.0):
        self.provider = provider
        self.address = to_checksum_address(address)
        self._accounts = {to_checksum_address(a.address): a for a in (accounts or [])}
        self.receipt_poll_interval = receipt_poll_interval
        self.receipt_timeout = receipt_timeout
        self._chain_id: Optional[int] = None

    @classmethod
    def from_config(cls, provider, config: LedgerConfig, chain_id: int,
                    accounts: Optional[Iterable[Any]] = None) -> 'RpcLedger':
        """Binding to the ledger deployed on ``chain_id``"""
        return cls(provider, resolve_ledger_address(config, chain_id), accounts,
                   receipt_poll_interval=config.receipt_poll_interval,
                   receipt_timeout=config.receipt_timeout)

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    async def _rpc(self, method: str, params: Sequence[Any]) -> Any:
        try:
            return await self.provider.request(method, list(params))
        except JsonRpcError as e:
            mapped = _revert_error(e)
            if mapped is e:
                raise
            raise mapped from e

    async def _call(self, signature: str, args: Sequence[Any], output_types: Sequence[str],
                    sender: Optional[str] = None) -> Tuple[Any, ...]:
        tx = {'to': self.address, 'data': encode_call(signature, args)}
        if sender:
            tx['from'] = to_checksum_address(sender)
        raw = await self._rpc('eth_call', [tx, 'latest'])
        return decode_result(output_types, raw)

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = parse_quantity(await self._rpc('eth_chainId', []))
        return self._chain_id

    async def _transact(self, signature: str, args: Sequence[Any], sender: str) -> Dict[str, Any]:
        sender = to_checksum_address(sender)
        tx = {'from': sender, 'to': self.address, 'data': encode_call(signature, args)}

        # surfaces the ledger's named revert before anything is signed
        await self._rpc('eth_call', [tx, 'latest'])

        account = self._accounts.get(sender)
        if account is None:
            tx_hash = await self._rpc('eth_sendTransaction', [tx])
        else:
            nonce = parse_quantity(await self._rpc('eth_getTransactionCount', [sender, 'pending']))
            gas = parse_quantity(await self._rpc('eth_estimateGas', [tx]))
            gas_price = parse_quantity(await self._rpc('eth_gasPrice', []))
            signed = Account.sign_transaction({
                'to': self.address,
                'data': tx['data'],
                'value': 0,
                'gas': int(gas * GAS_HEADROOM),
                'gasPrice': gas_price,
                'nonce': nonce,
                'chainId': await self._get_chain_id(),
            }, account.key)
            tx_hash = await self._rpc('eth_sendRawTransaction', [to_hex(signed.raw_transaction)])

        logger.info(f"Submitted {signature.split('(')[0]} from {sender}: {tx_hash}")
        receipt = await self._wait_for_receipt(tx_hash)
        if parse_quantity(receipt.get('status', '0x1')) != 1:
            raise TransactionFailed(f"Transaction {tx_hash} reverted")
        return receipt

    async def _wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.receipt_timeout
        while True:
            receipt = await self._rpc('eth_getTransactionReceipt', [tx_hash])
            if receipt:
                return receipt
            if loop.time() >= deadline:
                raise TransactionFailed(f"No receipt for {tx_hash} after {self.receipt_timeout}s")
            await asyncio.sleep(self.receipt_poll_interval)

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    async def create_proposal(self, title: str, description: str, options: Sequence[str],
                              duration_seconds: int, min_voters: int, sender: str) -> int:
        receipt = await self._transact(
            CREATE_PROPOSAL,
            [title, description, list(options), int(duration_seconds), int(min_voters)],
            sender)

        for log in receipt.get('logs') or []:
            topics = log.get('topics') or []
            if (log.get('address', '').lower() == self.address.lower() and len(topics) >= 2):
                return parse_quantity(topics[1])

        # no indexed id in the receipt
        return await self.proposal_count() - 1

    async def vote(self, proposal_id: int, encrypted_choice: str, input_proof: str,
                   sender: str) -> str:
        receipt = await self._transact(
            VOTE, [int(proposal_id), _bytes32(encrypted_choice), _bytes(input_proof)], sender)
        return receipt.get('transactionHash', '')

    async def reveal_result(self, proposal_id: int, sender: str) -> str:
        receipt = await self._transact(REVEAL_RESULT, [int(proposal_id)], sender)
        return receipt.get('transactionHash', '')

    async def reveal_my_vote(self, proposal_id: int, sender: str) -> str:
        (handle,) = await self._call(REVEAL_MY_VOTE, [int(proposal_id)], ['bytes32'], sender)
        await self._transact(REVEAL_MY_VOTE, [int(proposal_id)], sender)
        return to_hex(handle)

    # ------------------------------------------------------------------
    # views
    # ------------------------------------------------------------------

    async def proposal_count(self) -> int:
        (count,) = await self._call(PROPOSAL_COUNT, [], ['uint256'])
        return count

    async def get_proposal(self, proposal_id: int) -> Proposal:
        ((title, description, options, creator, start_time, end_time,
          min_voters, total_voters, is_revealed),) = await self._call(
            GET_PROPOSAL, [int(proposal_id)], [PROPOSAL_TUPLE])
        return Proposal(
            id=int(proposal_id),
            title=title,
            description=description,
            options=tuple(options),
            creator=to_checksum_address(creator),
            start_time=start_time,
            end_time=end_time,
            min_voters=min_voters,
            total_voters=total_voters,
            is_revealed=is_revealed,
        )

    async def has_voted(self, proposal_id: int, voter: str) -> bool:
        (voted,) = await self._call(HAS_VOTED, [int(proposal_id), to_checksum_address(voter)],
                                    ['bool'])
        return voted

    async def get_option_votes(self, proposal_id: int, option_index: int) -> str:
        (handle,) = await self._call(GET_OPTION_VOTES, [int(proposal_id), int(option_index)],
                                     ['bytes32'])
        return to_hex(handle)

    async def is_active(self, proposal_id: int) -> bool:
        (active,) = await self._call(IS_ACTIVE, [int(proposal_id)], ['bool'])
        return active

    async def current_time(self) -> int:
        block = await self._rpc('eth_getBlockByNumber', ['latest', False])
        return parse_quantity(block['timestamp'])

    async def get_limits(self) -> Optional[LedgerLimits]:
        try:
            (min_duration,) = await self._call(MIN_DURATION, [], ['uint256'])
            (max_options,) = await self._call(MAX_OPTIONS, [], ['uint256'])
        except (RpcError, LedgerError, ValueError) as e:
            logger.debug(f"Ledger does not report its limits: {e}")
            return None
        try:
            (min_options,) = await self._call(MIN_OPTIONS, [], ['uint256'])
        except (RpcError, LedgerError, ValueError):
            min_options = 2
        return LedgerLimits(min_duration, min_options, max_options)


def _revert_error(error: JsonRpcError) -> Exception:
    """LedgerError named by a revert, or the JSON-RPC error itself"""
    data = error.data
    if isinstance(data, dict):
        data = data.get('data', data.get('result'))

    reason = decode_revert(data, ERROR_TABLE) if data is not None else None
    if reason is None:
        match = _CUSTOM_ERROR_MESSAGE.search(error.message or '')
        if match:
            reason = match.group(1)

    if reason is None:
        if 'revert' in (error.message or '').lower():
            return TransactionFailed(error.message)
        return error
    return error_for_reason(reason, f"{reason}: {error.message}")


def _bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(value[2:] if value.startswith('0x') else value)


def _bytes32(value: Any) -> bytes:
    raw = _bytes(value)
    if len(raw) != 32:
        raise ValueError(f"Handle must be 32 bytes, got {len(raw)}")
    return raw
