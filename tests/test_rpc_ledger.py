"""JSON-RPC ledger binding against a scripted node."""

import asyncio

import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import to_checksum_address

from chain.abi import selector, to_hex
from chain.rpc import JsonRpcError
from config.config import LedgerConfig
from ledger.ledger import (AlreadyVoted, InvalidDuration, LedgerLimits, LedgerNotDeployed,
                           ProposalNotActive, TransactionFailed)
from ledger.rpc_ledger import (GET_PROPOSAL, HAS_VOTED, MAX_OPTIONS, MIN_DURATION,
                               PROPOSAL_COUNT, PROPOSAL_TUPLE, RpcLedger)

from tests.fakes import ScriptedProvider

LEDGER = to_checksum_address('0x' + '77' * 20)
SENDER = to_checksum_address('0x' + '88' * 20)
TX_HASH = '0x' + 'ab' * 32


def revert(name):
    return JsonRpcError(3, "execution reverted", to_hex(selector(f"{name}()")))


class FakeNode(ScriptedProvider):
    """Answers eth_call by function selector; ``views`` maps signature -> result hex or error"""

    def __init__(self, views=None, receipt=None, **responses):
        self.views = {to_hex(selector(sig)): result for sig, result in (views or {}).items()}
        base = {
            'eth_call': self._call,
            'eth_chainId': '0x7a69',
            'eth_sendTransaction': TX_HASH,
            'eth_sendRawTransaction': TX_HASH,
            'eth_getTransactionCount': '0x5',
            'eth_estimateGas': '0x186a0',
            'eth_gasPrice': '0x3b9aca00',
            'eth_getTransactionReceipt': receipt if receipt is not None else {
                'transactionHash': TX_HASH, 'status': '0x1', 'logs': []},
            'eth_getBlockByNumber': {'number': '0x10', 'timestamp': '0x6553f100'},
        }
        base.update(responses)
        super().__init__(base)

    def _call(self, params):
        tx, _ = params
        result = self.views.get(tx['data'][:10], '0x')
        if isinstance(result, Exception):
            raise result
        return result


def ledger_on(node, **kwargs):
    return RpcLedger(node, LEDGER, receipt_poll_interval=0, **kwargs)


def test_get_proposal_decodes_struct():
    creator = to_checksum_address('0x' + '99' * 20)
    encoded = to_hex(encode([PROPOSAL_TUPLE], [(
        "Budget", "Q3 spending", ["Yes", "No", "Abstain"], creator,
        1_700_000_000, 1_700_003_600, 2, 5, False)]))
    node = FakeNode({GET_PROPOSAL: encoded})

    proposal = asyncio.run(ledger_on(node).get_proposal(4))

    assert proposal.id == 4
    assert proposal.title == "Budget"
    assert proposal.options == ("Yes", "No", "Abstain")
    assert proposal.creator == creator
    assert proposal.end_time - proposal.start_time == 3600
    assert (proposal.min_voters, proposal.total_voters, proposal.is_revealed) == (2, 5, False)


def test_view_calls_are_encoded_for_the_ledger():
    node = FakeNode({HAS_VOTED: to_hex(encode(['bool'], [True])),
                     PROPOSAL_COUNT: to_hex(encode(['uint256'], [3]))})
    ledger = ledger_on(node)

    assert asyncio.run(ledger.has_voted(1, SENDER.lower())) is True
    assert asyncio.run(ledger.proposal_count()) == 3

    tx, block = node.calls[0][1]
    assert tx['to'] == LEDGER
    assert block == 'latest'
    assert tx['data'] == to_hex(selector(HAS_VOTED) + encode(['uint256', 'address'], [1, SENDER]))


def test_custom_error_revert_maps_to_named_error_before_sending():
    node = FakeNode({"vote(uint256,bytes32,bytes)": revert("AlreadyVoted")})

    with pytest.raises(AlreadyVoted):
        asyncio.run(ledger_on(node).vote(0, '0x' + '01' * 32, '0x0102', SENDER))

    assert 'eth_sendTransaction' not in node.methods()


def test_revert_data_nested_in_error_object():
    error = JsonRpcError(-32603, "Internal error",
                         {'message': "reverted", 'data': to_hex(selector("InvalidDuration()"))})
    node = FakeNode({"createProposal(string,string,string[],uint256,uint256)": error})

    with pytest.raises(InvalidDuration):
        asyncio.run(ledger_on(node).create_proposal("T", "", ["A", "B"], 60, 0, SENDER))


def test_revert_reason_in_node_message():
    error = JsonRpcError(-32603, "Error: VM Exception while processing transaction: "
                                 "reverted with custom error 'ProposalNotActive()'")
    node = FakeNode({"revealResult(uint256)": error})

    with pytest.raises(ProposalNotActive):
        asyncio.run(ledger_on(node).reveal_result(0, SENDER))


def test_unrecognized_revert_is_a_transaction_failure():
    node = FakeNode({"revealResult(uint256)": JsonRpcError(3, "execution reverted", '0xdeadbeef')})

    with pytest.raises(TransactionFailed):
        asyncio.run(ledger_on(node).reveal_result(0, SENDER))


def test_non_revert_rpc_errors_propagate_unchanged():
    node = FakeNode({PROPOSAL_COUNT: JsonRpcError(-32005, "rate limited")})

    with pytest.raises(JsonRpcError):
        asyncio.run(ledger_on(node).proposal_count())


def test_created_proposal_id_comes_from_receipt_log():
    receipt = {'transactionHash': TX_HASH, 'status': '0x1', 'logs': [
        {'address': '0x' + '12' * 20, 'topics': ['0x' + 'ee' * 32, '0x' + '00' * 31 + '09']},
        {'address': LEDGER.lower(), 'topics': ['0x' + 'ff' * 32, '0x' + '00' * 31 + '05']},
    ]}
    node = FakeNode(receipt=receipt)

    proposal_id = asyncio.run(ledger_on(node).create_proposal(
        "T", "", ["A", "B"], 3600, 0, SENDER))

    assert proposal_id == 5
    assert node.methods() == ['eth_call', 'eth_sendTransaction', 'eth_getTransactionReceipt']


def test_created_proposal_id_falls_back_to_count():
    node = FakeNode({PROPOSAL_COUNT: to_hex(encode(['uint256'], [8]))})

    proposal_id = asyncio.run(ledger_on(node).create_proposal(
        "T", "", ["A", "B"], 3600, 0, SENDER))

    assert proposal_id == 7


def test_receipt_is_polled_until_mined():
    receipts = [None, None, {'transactionHash': TX_HASH, 'status': '0x1', 'logs': []}]
    node = FakeNode(eth_getTransactionReceipt=lambda params: receipts.pop(0))

    assert asyncio.run(ledger_on(node).reveal_result(0, SENDER)) == TX_HASH
    assert node.methods().count('eth_getTransactionReceipt') == 3


def test_failed_receipt_raises():
    node = FakeNode(receipt={'transactionHash': TX_HASH, 'status': '0x0', 'logs': []})

    with pytest.raises(TransactionFailed):
        asyncio.run(ledger_on(node).reveal_result(0, SENDER))


def test_missing_receipt_times_out():
    node = FakeNode(eth_getTransactionReceipt=lambda params: None)
    ledger = RpcLedger(node, LEDGER, receipt_poll_interval=0, receipt_timeout=0)

    with pytest.raises(TransactionFailed, match="No receipt"):
        asyncio.run(ledger.reveal_result(0, SENDER))


def test_local_account_signs_and_sends_raw():
    account = Account.create()
    node = FakeNode()

    asyncio.run(ledger_on(node, accounts=[account]).vote(
        0, '0x' + '01' * 32, '0x0102', account.address))

    methods = node.methods()
    assert 'eth_sendRawTransaction' in methods
    assert 'eth_sendTransaction' not in methods
    raw = dict(node.calls)['eth_sendRawTransaction'][0]
    assert raw.startswith('0x') and len(raw) > 200


def test_vote_rejects_malformed_handle():
    with pytest.raises(ValueError):
        asyncio.run(ledger_on(FakeNode()).vote(0, '0x1234', '0x00', SENDER))


def test_limits_read_from_ledger_constants():
    node = FakeNode({MIN_DURATION: to_hex(encode(['uint256'], [3600])),
                     MAX_OPTIONS: to_hex(encode(['uint256'], [10])),
                     "MIN_OPTIONS()": JsonRpcError(3, "execution reverted")})

    assert asyncio.run(ledger_on(node).get_limits()) == LedgerLimits(3600, 2, 10)


def test_limits_absent_when_ledger_has_no_constants():
    node = FakeNode({MIN_DURATION: JsonRpcError(3, "execution reverted")})

    assert asyncio.run(ledger_on(node).get_limits()) is None


def test_current_time_is_latest_block_timestamp():
    assert asyncio.run(ledger_on(FakeNode()).current_time()) == 0x6553f100


def test_binding_from_config():
    config = LedgerConfig(addresses={31337: LEDGER.lower()}, receipt_timeout=5)

    ledger = RpcLedger.from_config(FakeNode(), config, 31337)

    assert ledger.address == LEDGER
    assert ledger.receipt_timeout == 5
    with pytest.raises(LedgerNotDeployed):
        RpcLedger.from_config(FakeNode(), config, 1)
