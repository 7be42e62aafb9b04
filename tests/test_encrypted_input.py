"""Encrypted input builder: widths, ranges, ordering and single use."""

import asyncio

import pytest
from eth_account import Account

from fhevm.errors import (EncryptedInputError, OutOfRangeError, SessionNotReadyError,
                          UnsupportedWidthError, UseAfterFinalizeError)
from fhevm.mock_coprocessor import InvalidInputProofError, MockCoprocessor, handle_type
from fhevm.types import FheType

from tests.fakes import CHAIN_ID, mock_session

CONTRACT = '0x' + '44' * 20


@pytest.fixture
def coprocessor():
    return MockCoprocessor(CHAIN_ID)


@pytest.fixture
def session(coprocessor):
    return mock_session(coprocessor)


@pytest.fixture
def user():
    return Account.create().address


def test_handles_follow_insertion_order(session, coprocessor, user):
    builder = session.create_encrypted_input(CONTRACT, user)
    builder.add8(3).add16(500).add_bool(True).add64(2 ** 64 - 1).add32(7)
    assert len(builder) == 5

    payload = asyncio.run(builder.finalize())

    assert len(payload.handles) == 5
    assert [coprocessor.cleartext(h) for h in payload.handles] == [3, 500, 1, 2 ** 64 - 1, 7]
    assert [handle_type(h) for h in payload.handles] == [
        FheType.UINT8, FheType.UINT16, FheType.BOOL, FheType.UINT64, FheType.UINT32]
    for handle in payload.handles:
        assert coprocessor.verify_input(handle, payload.input_proof, CONTRACT, user) == handle


def test_handle_layout_carries_chain_and_index(session, user):
    payload = asyncio.run(session.create_encrypted_input(CONTRACT, user)
                          .add8(1).add8(2).finalize())

    for index, handle in enumerate(payload.handles):
        raw = bytes.fromhex(handle[2:])
        assert len(raw) == 32
        assert raw[21] == index
        assert int.from_bytes(raw[22:30], 'big') == CHAIN_ID
        assert raw[31] == 0


@pytest.mark.parametrize("width,value", [(8, 256), (8, -1), (16, 1 << 16), (32, 1 << 32),
                                         (64, 1 << 64)])
def test_value_must_fit_declared_width(session, user, width, value):
    builder = session.create_encrypted_input(CONTRACT, user)
    with pytest.raises(OutOfRangeError):
        builder.add_scalar(width, value)
    assert len(builder) == 0


@pytest.mark.parametrize("width,value", [(8, 255), (16, 65535), (32, 0), (64, 2 ** 63)])
def test_boundary_values_are_accepted(session, user, width, value):
    builder = session.create_encrypted_input(CONTRACT, user)
    builder.add_scalar(width, value)
    assert len(builder) == 1


def test_out_of_range_is_a_value_error(session, user):
    with pytest.raises(ValueError):
        session.create_encrypted_input(CONTRACT, user).add8(300)


@pytest.mark.parametrize("width", [1, 4, 12, 128, 256])
def test_unsupported_width(session, user, width):
    with pytest.raises(UnsupportedWidthError):
        session.create_encrypted_input(CONTRACT, user).add_scalar(width, 1)


def test_non_integer_values_are_rejected(session, user):
    builder = session.create_encrypted_input(CONTRACT, user)
    with pytest.raises(TypeError):
        builder.add8("1")
    with pytest.raises(TypeError):
        builder.add8(True)
    with pytest.raises(OutOfRangeError):
        builder.add_bool(2)


def test_builder_is_single_use(session, user):
    builder = session.create_encrypted_input(CONTRACT, user).add8(1)
    asyncio.run(builder.finalize())

    assert builder.finalized
    with pytest.raises(UseAfterFinalizeError):
        builder.add8(2)
    with pytest.raises(UseAfterFinalizeError):
        builder.add_bool(False)
    with pytest.raises(UseAfterFinalizeError):
        asyncio.run(builder.finalize())


def test_empty_input_cannot_be_finalized(session, user):
    with pytest.raises(EncryptedInputError):
        asyncio.run(session.create_encrypted_input(CONTRACT, user).finalize())


def test_finalize_on_discarded_session_fails(session, user):
    async def scenario():
        builder = session.create_encrypted_input(CONTRACT, user).add8(1)
        await session.invalidate()
        with pytest.raises(SessionNotReadyError):
            await builder.finalize()

    asyncio.run(scenario())


def test_proof_is_bound_to_contract_and_user(session, coprocessor, user):
    payload = asyncio.run(session.create_encrypted_input(CONTRACT, user).add8(1).finalize())
    handle = payload.handles[0]

    with pytest.raises(InvalidInputProofError):
        coprocessor.verify_input(handle, payload.input_proof, CONTRACT,
                                 Account.create().address)
    with pytest.raises(InvalidInputProofError):
        coprocessor.verify_input(handle, payload.input_proof, '0x' + '99' * 20, user)
