"""
In-process voting ledger for local development and tests.

Applies the same rules as the deployed contract and keeps encrypted tallies
through the mock coprocessor: every vote adds ``select(choice == i, 1, 0)``
to each option's counter, so the ledger never sees a plaintext choice.
Transactions are serialized by a lock, mirroring block ordering.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from eth_utils import to_checksum_address

from fhevm.mock_coprocessor import InvalidInputProofError, MockCoprocessor, UnknownHandleError
from fhevm.types import FheType

from .ledger import (AlreadyRevealed, AlreadyVoted, InvalidDuration, InvalidInputProof,
                     InvalidOption, InvalidProposal, Ledger, LedgerLimits, NotVoted,
                     Proposal, ProposalNotActive, TooManyOptions)

logger = logging.getLogger(__name__)

TALLY_TYPE = FheType.UINT32


@dataclass
class _ProposalRecord:
    proposal: Proposal
    tallies: List[str]
    voters: Set[str] = field(default_factory=set)
    choices: Dict[str, str] = field(default_factory=dict)


def _tx_hash() -> str:
    return '0x' + secrets.token_hex(32)


class InMemoryLedger(Ledger):

    def __init__(self, coprocessor: MockCoprocessor, address: Optional[str] = None,
                 clock: Callable[[], float] = time.time,
                 min_duration: int = 3600, min_options: int = 2, max_options: int = 10,
                 report_limits: bool = True):
        self.coprocessor = coprocessor
        self.address = to_checksum_address(address or '0x' + secrets.token_hex(20))
        self._clock = clock
        self.min_duration = min_duration
        self.min_options = min_options
        self.max_options = max_options
        self.report_limits = report_limits
        self._records: List[_ProposalRecord] = []
        self._lock = asyncio.Lock()

    def _record(self, proposal_id: int) -> _ProposalRecord:
        if not 0 <= proposal_id < len(self._records):
            raise InvalidProposal(f"Proposal {proposal_id} does not exist")
        return self._records[proposal_id]

    def _now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    async def create_proposal(self, title: str, description: str, options: Sequence[str],
                              duration_seconds: int, min_voters: int, sender: str) -> int:
        async with self._lock:
            if not self.min_options <= len(options) <= self.max_options:
                raise TooManyOptions(
                    f"{len(options)} options; {self.min_options}-{self.max_options} allowed")
            if duration_seconds < self.min_duration:
                raise InvalidDuration(
                    f"Duration {duration_seconds}s is below {self.min_duration}s")

            now = self._now()
            proposal = Proposal(
                id=len(self._records),
                title=title,
                description=description,
                options=tuple(options),
                creator=to_checksum_address(sender),
                start_time=now,
                end_time=now + int(duration_seconds),
                min_voters=int(min_voters),
                total_voters=0,
                is_revealed=False,
            )
            tallies = []
            for _ in options:
                tally = self.coprocessor.trivial_encrypt(0, TALLY_TYPE)
                self.coprocessor.allow(tally, self.address)
                tallies.append(tally)

            self._records.append(_ProposalRecord(proposal, tallies))
            logger.debug(f"Ledger created proposal {proposal.id} ({len(options)} options)")
            return proposal.id

    async def vote(self, proposal_id: int, encrypted_choice: str, input_proof: str,
                   sender: str) -> str:
        async with self._lock:
            record = self._record(proposal_id)
            voter = to_checksum_address(sender)
            now = self._now()
            if not record.proposal.start_time <= now < record.proposal.end_time:
                raise ProposalNotActive(f"Proposal {proposal_id} is not accepting votes")
            if voter in record.voters:
                raise AlreadyVoted(f"{voter} already voted on proposal {proposal_id}")

            try:
                choice = self.coprocessor.verify_input(
                    encrypted_choice, input_proof, self.address, voter)
            except (InvalidInputProofError, UnknownHandleError) as e:
                raise InvalidInputProof(str(e)) from e

            one = self.coprocessor.trivial_encrypt(1, TALLY_TYPE)
            zero = self.coprocessor.trivial_encrypt(0, TALLY_TYPE)
            for index, tally in enumerate(record.tallies):
                hit = self.coprocessor.eq_scalar(choice, index)
                updated = self.coprocessor.add(tally, self.coprocessor.select(hit, one, zero))
                self.coprocessor.allow(updated, self.address)
                record.tallies[index] = updated

            self.coprocessor.allow(choice, self.address)
            record.choices[voter] = choice
            record.voters.add(voter)
            record.proposal = replace(record.proposal,
                                      total_voters=record.proposal.total_voters + 1)
            return _tx_hash()

    async def reveal_result(self, proposal_id: int, sender: str) -> str:
        async with self._lock:
            record = self._record(proposal_id)
            if self._now() < record.proposal.end_time:
                raise ProposalNotActive(f"Proposal {proposal_id} has not ended")
            if record.proposal.is_revealed:
                raise AlreadyRevealed(f"Proposal {proposal_id} is already revealed")

            for tally in record.tallies:
                self.coprocessor.allow_for_decryption(tally)
            record.proposal = replace(record.proposal, is_revealed=True)
            return _tx_hash()

    async def reveal_my_vote(self, proposal_id: int, sender: str) -> str:
        async with self._lock:
            record = self._record(proposal_id)
            voter = to_checksum_address(sender)
            choice = record.choices.get(voter)
            if choice is None:
                raise NotVoted(f"{voter} did not vote on proposal {proposal_id}")
            self.coprocessor.allow(choice, voter)
            return choice

    # ------------------------------------------------------------------
    # views
    # ------------------------------------------------------------------

    async def proposal_count(self) -> int:
        return len(self._records)

    async def get_proposal(self, proposal_id: int) -> Proposal:
        return self._record(proposal_id).proposal

    async def has_voted(self, proposal_id: int, voter: str) -> bool:
        return to_checksum_address(voter) in self._record(proposal_id).voters

    async def get_option_votes(self, proposal_id: int, option_index: int) -> str:
        record = self._record(proposal_id)
        if not 0 <= option_index < len(record.tallies):
            raise InvalidOption(f"Proposal {proposal_id} has no option {option_index}")
        return record.tallies[option_index]

    async def is_active(self, proposal_id: int) -> bool:
        proposal = self._record(proposal_id).proposal
        return proposal.start_time <= self._now() < proposal.end_time

    async def current_time(self) -> int:
        return self._now()

    async def get_limits(self) -> Optional[LedgerLimits]:
        if not self.report_limits:
            return None
        return LedgerLimits(self.min_duration, self.min_options, self.max_options)
