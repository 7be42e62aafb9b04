"""Relayer-backed backend and session creation for production networks."""

import asyncio

import aiohttp
import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from config.config import RelayerConfig
from fhevm.cancellation import CancellationToken
from fhevm.decryption import authorize, decrypt
from fhevm.errors import AbortError, DecryptionNotAllowed, RelayerError
from fhevm.keys import handle_context, seal_value
from fhevm.mock_backend import MockBackend
from fhevm.mock_coprocessor import MockCoprocessor
from fhevm.relayer_backend import INPUT_PROOF_PATH, USER_DECRYPT_PATH, RelayerBackend
from fhevm.session import EncryptionSession, create_encryption_session
from fhevm.types import BackendDescriptor, BackendKind, FheType, TypedValue
from wallet.signers import LocalAccountSigner

from tests.fakes import HARDHAT_VERSION, METADATA, ScriptedProvider, StubHttpSession

RELAYER_URL = "https://relayer.test"
SEPOLIA = 11155111
CONTRACT = to_checksum_address('0x' + '44' * 20)
DECRYPTION_CONTRACT = to_checksum_address('0x' + '55' * 20)
USER = to_checksum_address('0x' + '66' * 20)
HANDLES = ['0x' + 'AB' * 32, '0x' + 'cd' * 32]


class FakeRelayer:
    """Relayer answering from a table of cleartexts per handle"""

    def __init__(self, cleartexts=None):
        self.cleartexts = {h.lower(): v for h, v in (cleartexts or {}).items()}

    def __call__(self, url, body):
        if url == RELAYER_URL + INPUT_PROOF_PATH:
            return 200, {'handles': HANDLES[:len(body['values'])], 'inputProof': 'beef'}
        if url == RELAYER_URL + USER_DECRYPT_PATH:
            public_key = '0x' + body['publicKey']
            response = []
            for pair in body['handleContractPairs']:
                handle = pair['handle'].lower()
                response.append({'handle': handle,
                                 'sealed': seal_value(self.cleartexts[handle], public_key,
                                                      handle_context(handle))})
            return 200, {'response': response}
        return 404, {'message': "no such route"}


def relayer_backend(handler, **kwargs):
    http = StubHttpSession(handler)
    kwargs.setdefault('verifying_contract_decryption', DECRYPTION_CONTRACT)
    return RelayerBackend(RELAYER_URL + "/", SEPOLIA, session=http, **kwargs), http


def relayer_session(backend):
    return EncryptionSession(backend, BackendDescriptor(BackendKind.PRODUCTION, SEPOLIA))


def test_input_proof_request_and_answer():
    backend, http = relayer_backend(FakeRelayer())

    payload = asyncio.run(backend.encrypt(CONTRACT.lower(), USER, [
        TypedValue(FheType.UINT8, 2), TypedValue(FheType.BOOL, 1)]))

    url, body = http.requests[0]
    assert url == RELAYER_URL + INPUT_PROOF_PATH
    assert body == {
        'contractChainId': '0xaa36a7',
        'contractAddress': CONTRACT,
        'userAddress': USER,
        'values': [{'type': 'euint8', 'value': '2'}, {'type': 'ebool', 'value': '1'}],
    }
    assert payload.handles == tuple(h.lower() for h in HANDLES)
    assert payload.input_proof == '0xbeef'


def test_incomplete_input_proof_answer():
    backend, _ = relayer_backend(lambda url, body: (200, {'handles': HANDLES[:1]}))

    with pytest.raises(RelayerError, match="incomplete"):
        asyncio.run(backend.encrypt(CONTRACT, USER, [TypedValue(FheType.UINT8, 2)]))


def test_user_decryption_round_trip(clock):
    backend, http = relayer_backend(FakeRelayer({HANDLES[0]: 7, HANDLES[1]: 123456}))
    session = relayer_session(backend)
    account = Account.create()

    grant = asyncio.run(authorize(session, CONTRACT, LocalAccountSigner(account), clock=clock))
    values = asyncio.run(decrypt(session, grant, [(h, CONTRACT) for h in HANDLES], clock=clock))

    assert values == {HANDLES[0]: 7, HANDLES[1]: 123456}

    url, body = http.requests[0]
    assert url == RELAYER_URL + USER_DECRYPT_PATH
    assert body['publicKey'] == grant.public_key[2:]
    assert body['signature'] == grant.signature[2:]
    assert body['userAddress'] == account.address
    assert body['contractAddresses'] == [CONTRACT]
    assert body['contractsChainId'] == str(SEPOLIA)
    assert body['requestValidity'] == {'startTimestamp': str(grant.start_timestamp),
                                       'durationDays': '365'}
    assert [p['handle'] for p in body['handleContractPairs']] == HANDLES
    assert grant.private_key[2:] not in str(body)


def test_eip712_uses_configured_verifying_contract_and_gateway_chain():
    backend, _ = relayer_backend(FakeRelayer(), gateway_chain_id=55815)

    payload = backend.create_eip712('0x' + '01' * 32, [CONTRACT], 1_700_000_000, 365)

    assert payload.domain['verifyingContract'] == DECRYPTION_CONTRACT
    assert payload.domain['chainId'] == 55815


def test_eip712_needs_a_verifying_contract():
    backend, _ = relayer_backend(FakeRelayer(), verifying_contract_decryption=None)

    with pytest.raises(RelayerError):
        backend.create_eip712('0x' + '01' * 32, [CONTRACT], 1_700_000_000, 365)


def test_missing_handle_in_decrypt_answer(clock):
    relayer = FakeRelayer({HANDLES[0]: 1})

    def answer_first_only(url, body):
        body = dict(body, handleContractPairs=body['handleContractPairs'][:1])
        return relayer(url, body)

    backend, _ = relayer_backend(answer_first_only)
    session = relayer_session(backend)
    grant = asyncio.run(authorize(session, CONTRACT, LocalAccountSigner(Account.create()),
                                  clock=clock))

    with pytest.raises(RelayerError, match="no value"):
        asyncio.run(decrypt(session, grant, [(h, CONTRACT) for h in HANDLES], clock=clock))


@pytest.mark.parametrize("answer", [
    {'response': "not a list"},
    {'response': [{'handle': HANDLES[0]}]},
    {'response': [{'handle': 5, 'sealed': '0x00'}]},
])
def test_malformed_decrypt_answer(clock, answer):
    backend, _ = relayer_backend(lambda url, body: (200, answer))
    session = relayer_session(backend)
    grant = asyncio.run(authorize(session, CONTRACT, LocalAccountSigner(Account.create()),
                                  clock=clock))

    with pytest.raises(RelayerError):
        asyncio.run(decrypt(session, grant, [(HANDLES[0], CONTRACT)], clock=clock))


def test_forbidden_answer_is_decryption_not_allowed(clock):
    backend, _ = relayer_backend(
        lambda url, body: (403, {'message': "user is not allowed to decrypt handle"}))
    session = relayer_session(backend)
    grant = asyncio.run(authorize(session, CONTRACT, LocalAccountSigner(Account.create()),
                                  clock=clock))

    with pytest.raises(DecryptionNotAllowed, match="not allowed"):
        asyncio.run(decrypt(session, grant, [(HANDLES[0], CONTRACT)], clock=clock))


@pytest.mark.parametrize("outcome", [
    (500, {'error': "internal"}),
    (200, ValueError("not json")),
    (200, ["not", "an", "object"]),
    aiohttp.ClientConnectionError("connection refused"),
    asyncio.TimeoutError(),
])
def test_relayer_failures_are_relayer_errors(outcome):
    backend, _ = relayer_backend(lambda url, body: outcome)

    with pytest.raises(RelayerError):
        asyncio.run(backend.encrypt(CONTRACT, USER, [TypedValue(FheType.UINT8, 1)]))


def test_relayer_url_is_required():
    with pytest.raises(RelayerError):
        RelayerBackend("", SEPOLIA)


def test_close_leaves_a_borrowed_http_session_open():
    backend, http = relayer_backend(FakeRelayer())
    asyncio.run(backend.close())
    assert not http.closed


# ============================================================================
# SESSION CREATION
# ============================================================================


def test_session_on_dev_node_uses_mock_backend():
    coprocessor = MockCoprocessor()
    dev_node = ScriptedProvider({'web3_clientVersion': HARDHAT_VERSION,
                                 'fhevm_relayer_metadata': dict(METADATA)})

    session = asyncio.run(create_encryption_session(
        ScriptedProvider({'eth_chainId': '0x7a69'}), coprocessor=coprocessor,
        rpc_factory=lambda url: dev_node))

    assert session.kind is BackendKind.MOCK
    assert isinstance(session.backend, MockBackend)
    assert session.backend.coprocessor is coprocessor
    assert session.chain_id == 31337


def test_session_on_production_chain_uses_relayer():
    relayer = RelayerConfig(url=RELAYER_URL, verifying_contract_decryption=DECRYPTION_CONTRACT,
                            timeout=12.0)

    session = asyncio.run(create_encryption_session(
        ScriptedProvider({'eth_chainId': hex(SEPOLIA)}), relayer=relayer))

    assert session.kind is BackendKind.PRODUCTION
    assert isinstance(session.backend, RelayerBackend)
    assert session.backend.url == RELAYER_URL
    assert session.backend.chain_id == SEPOLIA
    assert session.backend.timeout == 12.0
    asyncio.run(session.invalidate())


def test_production_chain_without_relayer_url_fails():
    with pytest.raises(RelayerError, match="relayer.url"):
        asyncio.run(create_encryption_session(
            ScriptedProvider({'eth_chainId': hex(SEPOLIA)}), relayer=RelayerConfig()))


def test_session_creation_cancelled_during_resolution():
    token = CancellationToken()

    def chain_id_then_teardown(params):
        token.cancel("wallet disconnected")
        return hex(SEPOLIA)

    with pytest.raises(AbortError):
        asyncio.run(create_encryption_session(
            ScriptedProvider({'eth_chainId': chain_id_then_teardown}), token=token,
            relayer=RelayerConfig(url=RELAYER_URL)))
