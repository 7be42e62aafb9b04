#!/usr/bin/env python3
"""
Confidential Voting Client
==========================
Drives proposals on the voting ledger through their lifecycle:

    PENDING -> ACTIVE -> ENDED -> REVEALED

Ballots leave this process only as encrypted 8-bit choice indices with an
input proof; tallies are accumulated homomorphically by the ledger and become
decryptable once a proposal is revealed. The ledger enforces every rule; the
client checks the same rules first so a doomed transaction is never sent,
and always lets the ledger's named revert stand when the two disagree.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from config.config import SystemConfig
from fhevm.cancellation import CancellationToken
from fhevm.decryption import DecryptionGrant, authorize, decrypt
from fhevm.manager import SessionManager
from fhevm.types import HandleContractPair
from ledger.ledger import (AlreadyRevealed, AlreadyVoted, InvalidDuration, Ledger, LedgerError,
                           LedgerLimits, NotVoted, Proposal, ProposalNotActive, ProposalState,
                           TooFewOptions, TooManyOptions)
from utils.utils import format_duration

logger = logging.getLogger(__name__)

CHOICE_WIDTH = 8

# ============================================================================
# EXCEPTIONS
# ============================================================================


class InvalidChoice(LedgerError):
    """Choice index outside the proposal's options"""
    reason = "InvalidChoice"


class ResultsNotRevealed(LedgerError):
    """Tallies are only decryptable after revealResult"""
    reason = "ResultsNotRevealed"


# ============================================================================
# RESULTS
# ============================================================================


@dataclass(frozen=True)
class ProposalResults:
    """Decrypted tally of a revealed proposal"""
    proposal_id: int
    options: Tuple[str, ...]
    counts: Tuple[int, ...]

    @property
    def total(self) -> int:
        return sum(self.counts)

    @property
    def percentages(self) -> Tuple[float, ...]:
        total = self.total
        return tuple((count / total * 100) if total > 0 else 0.0 for count in self.counts)

    @property
    def winners(self) -> Tuple[str, ...]:
        """Options sharing the highest count; empty when nobody voted"""
        if self.total == 0:
            return ()
        top = max(self.counts)
        return tuple(o for o, c in zip(self.options, self.counts) if c == top)

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(self.options, self.counts))


# ============================================================================
# CONTROLLER
# ============================================================================


class VeilVotingClient:
    """
    Proposal lifecycle operations for one account.

    ``signer`` supplies the account (``get_address``) and signs decryption
    grants; the encryption session is borrowed from ``session_manager`` for
    each operation and never kept.
    """

    def __init__(self, ledger: Ledger, session_manager: SessionManager, signer,
                 config: Optional[SystemConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.ledger = ledger
        self.session_manager = session_manager
        self.signer = signer
        self.config = config or SystemConfig()
        self._clock = clock

    async def _account(self) -> str:
        return await self.signer.get_address()

    async def _limits(self) -> Tuple[LedgerLimits, bool]:
        limits = await self.ledger.get_limits()
        if limits is None:
            return LedgerLimits.soft_defaults(self.config.ledger), False
        return limits, True

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    async def create_proposal(self, title: str, description: str, options: Sequence[str],
                              duration_seconds: int, min_voters: int = 0) -> int:
        options = tuple(options)
        limits, reported = await self._limits()

        if len(options) < limits.min_options:
            raise TooFewOptions(
                f"A proposal needs at least {limits.min_options} options, got {len(options)}")
        if len(options) > limits.max_options:
            raise TooManyOptions(
                f"A proposal allows at most {limits.max_options} options, got {len(options)}")
        # without a ledger-reported minimum the ledger's revert decides
        if reported and duration_seconds < limits.min_duration:
            raise InvalidDuration(
                f"Duration {duration_seconds}s is below the ledger minimum "
                f"of {limits.min_duration}s")

        creator = await self._account()
        logger.info(f"Creating proposal '{title}' with {len(options)} options "
                    f"for {duration_seconds}s")
        proposal_id = await self.ledger.create_proposal(
            title, description, options, int(duration_seconds), int(min_voters), creator)
        logger.info(f"Proposal {proposal_id} created by {creator}")
        return proposal_id

    async def vote(self, proposal_id: int, choice_index: int) -> str:
        """
        Cast an encrypted vote.

        1. Check the proposal is active and the choice exists
        2. Ask the ledger whether this account already voted
        3. Encrypt the choice index as one 8-bit value
        4. Submit handle and input proof

        The pre-check in step 2 only saves a wasted transaction; when two
        submissions race, the ledger's AlreadyVoted rejection is the answer.
        """
        proposal = await self.ledger.get_proposal(proposal_id)
        now = await self.ledger.current_time()
        state = proposal.state(now)
        if state is not ProposalState.ACTIVE:
            raise ProposalNotActive(f"Proposal {proposal_id} is {state.value}, not active")
        if not 0 <= choice_index < len(proposal.options):
            raise InvalidChoice(
                f"Choice {choice_index} is not an option of proposal {proposal_id} "
                f"(0-{len(proposal.options) - 1})")

        voter = await self._account()
        if await self.ledger.has_voted(proposal_id, voter):
            raise AlreadyVoted(f"{voter} already voted on proposal {proposal_id}")

        session = self.session_manager.require_session()
        encrypted = session.create_encrypted_input(self.ledger.address, voter)
        encrypted.add_scalar(CHOICE_WIDTH, choice_index)
        payload = await encrypted.finalize()
        logger.info(f"Encrypted ballot for proposal {proposal_id} ready, submitting")

        tx_hash = await self.ledger.vote(proposal_id, payload.handles[0],
                                         payload.input_proof, voter)
        logger.info(f"Vote on proposal {proposal_id} accepted: {tx_hash}")
        return tx_hash

    async def reveal_result(self, proposal_id: int) -> str:
        proposal = await self.ledger.get_proposal(proposal_id)
        now = await self.ledger.current_time()
        if now < proposal.end_time:
            raise ProposalNotActive(
                f"Proposal {proposal_id} ends in {format_duration(proposal.time_remaining(now))}")
        if proposal.is_revealed:
            raise AlreadyRevealed(f"Proposal {proposal_id} is already revealed")

        tx_hash = await self.ledger.reveal_result(proposal_id, await self._account())
        logger.info(f"Proposal {proposal_id} revealed: {tx_hash}")
        return tx_hash

    async def reveal_my_vote(self, proposal_id: int) -> str:
        """Handle of this account's encrypted choice, made decryptable for it"""
        voter = await self._account()
        if not await self.ledger.has_voted(proposal_id, voter):
            raise NotVoted(f"{voter} did not vote on proposal {proposal_id}")
        return await self.ledger.reveal_my_vote(proposal_id, voter)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    async def get_option_votes(self, proposal_id: int, option_index: int) -> str:
        return await self.ledger.get_option_votes(proposal_id, option_index)

    async def get_proposal(self, proposal_id: int) -> Proposal:
        return await self.ledger.get_proposal(proposal_id)

    async def proposal_count(self) -> int:
        return await self.ledger.proposal_count()

    async def has_voted(self, proposal_id: int, voter: Optional[str] = None) -> bool:
        return await self.ledger.has_voted(proposal_id, voter or await self._account())

    async def is_active(self, proposal_id: int) -> bool:
        return await self.ledger.is_active(proposal_id)

    async def proposal_state(self, proposal_id: int) -> ProposalState:
        proposal = await self.ledger.get_proposal(proposal_id)
        return proposal.state(await self.ledger.current_time())

    async def list_proposals(self) -> List[Proposal]:
        count = await self.ledger.proposal_count()
        return [await self.ledger.get_proposal(i) for i in range(count)]

    async def voting_history(self, voter: Optional[str] = None) -> List[Proposal]:
        """Proposals ``voter`` (default: this account) has voted on"""
        voter = voter or await self._account()
        history = []
        for proposal in await self.list_proposals():
            if await self.ledger.has_voted(proposal.id, voter):
                history.append(proposal)
        return history

    # ------------------------------------------------------------------
    # decryption
    # ------------------------------------------------------------------

    async def authorize_decryption(self, contract_addresses: Optional[Sequence[str]] = None
                                   ) -> DecryptionGrant:
        session = self.session_manager.require_session()
        return await authorize(session, contract_addresses or self.ledger.address, self.signer,
                               duration_days=self.config.authorization.duration_days,
                               clock=self._clock)

    async def _decrypt(self, handles: Sequence[str],
                       grant: Optional[DecryptionGrant]) -> Dict[str, int]:
        session = self.session_manager.require_session()
        if grant is None:
            grant = await self.authorize_decryption()
        pairs = [HandleContractPair(h, self.ledger.address) for h in handles]
        return await decrypt(session, grant, pairs, clock=self._clock)

    async def decrypt_results(self, proposal_id: int,
                              grant: Optional[DecryptionGrant] = None) -> ProposalResults:
        proposal = await self.ledger.get_proposal(proposal_id)
        if not proposal.is_revealed:
            raise ResultsNotRevealed(
                f"Proposal {proposal_id} must be revealed before its tally can be decrypted")

        handles = [await self.ledger.get_option_votes(proposal_id, i)
                   for i in range(len(proposal.options))]
        values = await self._decrypt(handles, grant)
        results = ProposalResults(proposal_id, proposal.options,
                                  tuple(values[h] for h in handles))
        logger.info(f"Proposal {proposal_id} tally decrypted: {results.total} vote(s)")
        return results

    async def decrypt_my_vote(self, proposal_id: int,
                              grant: Optional[DecryptionGrant] = None) -> int:
        handle = await self.reveal_my_vote(proposal_id)
        values = await self._decrypt([handle], grant)
        return values[handle]


# ============================================================================
# DEMONSTRATION
# ============================================================================


class _DemoClock:
    """Wall clock that can be moved forward to skip a voting period"""

    def __init__(self):
        self.offset = 0.0

    def __call__(self) -> float:
        return time.time() + self.offset

    def advance(self, seconds: float):
        self.offset += seconds


def local_session_factory(coprocessor, metadata, clock: Callable[[], float] = time.time):
    """Session factory serving every wallet from one in-process mock coprocessor"""
    from fhevm.mock_backend import MockBackend
    from fhevm.session import EncryptionSession
    from fhevm.types import BackendDescriptor, BackendKind

    async def factory(provider: Any, token: Optional[CancellationToken] = None):
        if token is not None:
            token.check()
        backend = MockBackend(coprocessor.chain_id, metadata, coprocessor=coprocessor,
                              clock=clock)
        session = EncryptionSession(
            backend, BackendDescriptor(BackendKind.MOCK, coprocessor.chain_id, metadata=metadata))
        if token is not None and token.cancelled:
            await session.invalidate()
            token.check()
        return session

    return factory


async def demonstrate(config: Optional[SystemConfig] = None):
    """Run one proposal end to end against an in-process ledger and mock backend"""
    from eth_account import Account

    from fhevm.mock_coprocessor import MockCoprocessor
    from fhevm.types import RelayerMetadata
    from ledger.memory_ledger import InMemoryLedger
    from utils.utils import format_results
    from wallet.signers import LocalAccountSigner

    print("\n" + "=" * 60)
    print("CONFIDENTIAL VOTING DEMONSTRATION")
    print("=" * 60 + "\n")

    config = config or SystemConfig()
    chain_id = 31337
    clock = _DemoClock()
    coprocessor = MockCoprocessor(chain_id)
    ledger = InMemoryLedger(coprocessor, clock=clock)
    metadata = RelayerMetadata(*(Account.create().address for _ in range(3)))

    manager = SessionManager(session_factory=local_session_factory(coprocessor, metadata, clock),
                             config=config)
    await manager.initialize(provider=None)
    print(f"Encryption session: {manager.session}\n")

    voters = [LocalAccountSigner(Account.create()) for _ in range(3)]
    clients = [VeilVotingClient(ledger, manager, v, config=config, clock=clock) for v in voters]

    proposal_id = await clients[0].create_proposal(
        "Treasury allocation", "Where should next quarter's budget go?",
        ["Research", "Marketing", "Reserve"], duration_seconds=3600, min_voters=2)
    print(f"Proposal {proposal_id} created\n")

    for client, choice in zip(clients, [0, 1, 0]):
        await client.vote(proposal_id, choice)
        print(f"  {await client.signer.get_address()} voted (choice stays encrypted)")

    clock.advance(3600)
    await clients[0].reveal_result(proposal_id)

    results = await clients[0].decrypt_results(proposal_id)
    proposal = await clients[0].get_proposal(proposal_id)
    print("\n" + format_results(proposal, results))

    my_vote = await clients[1].decrypt_my_vote(proposal_id)
    print(f"\nVoter 2 decrypted their own ballot: option {my_vote} "
          f"({proposal.options[my_vote]})\n")

    await manager.reset("demonstration finished")


if __name__ == "__main__":
    from config.config import load_config
    from utils.utils import setup_logging

    system_config = load_config()
    setup_logging(system_config.log_level, log_dir=system_config.log_dir)
    asyncio.run(demonstrate(system_config))
