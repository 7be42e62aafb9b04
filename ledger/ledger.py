"""
Ledger contract port
====================
The voting ledger is the system of record for proposals and encrypted
tallies. This module defines what the client consumes from it: the proposal
model, the ledger's named failure reasons and the abstract ``Ledger``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type

from config.config import LedgerConfig

# ============================================================================
# EXCEPTIONS
# ============================================================================


class LedgerError(Exception):
    """Base ledger error; ``reason`` is the ledger's own failure name"""
    reason = "LedgerError"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


class AlreadyVoted(LedgerError):
    reason = "AlreadyVoted"


class InvalidDuration(LedgerError):
    reason = "InvalidDuration"


class TooManyOptions(LedgerError):
    """Option count outside the ledger's bounds (both ends report this name)"""
    reason = "TooManyOptions"


class TooFewOptions(TooManyOptions):
    """Fewer than the minimum number of options, detected before submission"""
    reason = "TooFewOptions"


class ProposalNotActive(LedgerError):
    reason = "ProposalNotActive"


class AlreadyRevealed(LedgerError):
    reason = "AlreadyRevealed"


class NotVoted(LedgerError):
    reason = "NotVoted"


class InvalidProposal(LedgerError):
    reason = "InvalidProposal"


class InvalidOption(LedgerError):
    reason = "InvalidOption"


class InvalidInputProof(LedgerError):
    reason = "InvalidInputProof"


class TransactionFailed(LedgerError):
    """Transaction reverted or was dropped without a recognizable reason"""
    reason = "TransactionFailed"


class LedgerNotDeployed(LedgerError):
    reason = "LedgerNotDeployed"


NAMED_ERRORS: Dict[str, Type[LedgerError]] = {
    cls.reason: cls for cls in (
        AlreadyVoted, InvalidDuration, TooManyOptions, TooFewOptions,
        ProposalNotActive, AlreadyRevealed, NotVoted, InvalidProposal,
        InvalidOption, InvalidInputProof,
    )
}


def error_for_reason(reason: Optional[str], detail: Optional[str] = None) -> LedgerError:
    """Exception instance for a revert reason name, TransactionFailed if unknown"""
    if reason in NAMED_ERRORS:
        return NAMED_ERRORS[reason](detail)
    return TransactionFailed(detail or (f"Transaction reverted: {reason}" if reason
                                        else "Transaction reverted"))


# ============================================================================
# DATA MODEL
# ============================================================================


class ProposalState(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"
    REVEALED = "revealed"


@dataclass(frozen=True)
class Proposal:
    id: int
    title: str
    description: str
    options: Tuple[str, ...]
    creator: str
    start_time: int
    end_time: int
    min_voters: int
    total_voters: int
    is_revealed: bool

    def state(self, now: float) -> ProposalState:
        if now < self.start_time:
            return ProposalState.PENDING
        if now < self.end_time:
            return ProposalState.ACTIVE
        if self.is_revealed:
            return ProposalState.REVEALED
        return ProposalState.ENDED

    def time_remaining(self, now: float) -> int:
        return max(0, int(self.end_time - now))


@dataclass(frozen=True)
class LedgerLimits:
    min_duration: int
    min_options: int
    max_options: int

    @classmethod
    def soft_defaults(cls, config: Optional[LedgerConfig] = None) -> 'LedgerLimits':
        config = config or LedgerConfig()
        return cls(config.min_duration, config.min_options, config.max_options)


# ============================================================================
# PORT
# ============================================================================


class Ledger(ABC):
    """
    Voting ledger surface.

    Transactions take the submitting account as ``sender`` and raise the
    LedgerError named by the ledger's revert reason.
    """

    address: str

    @abstractmethod
    async def create_proposal(self, title: str, description: str, options: Tuple[str, ...],
                              duration_seconds: int, min_voters: int, sender: str) -> int:
        """Id of the created proposal"""

    @abstractmethod
    async def vote(self, proposal_id: int, encrypted_choice: str, input_proof: str,
                   sender: str) -> str:
        """Transaction hash"""

    @abstractmethod
    async def reveal_result(self, proposal_id: int, sender: str) -> str:
        """Transaction hash"""

    @abstractmethod
    async def reveal_my_vote(self, proposal_id: int, sender: str) -> str:
        """Handle of ``sender``'s encrypted choice"""

    @abstractmethod
    async def proposal_count(self) -> int:
        pass

    @abstractmethod
    async def get_proposal(self, proposal_id: int) -> Proposal:
        pass

    @abstractmethod
    async def has_voted(self, proposal_id: int, voter: str) -> bool:
        pass

    @abstractmethod
    async def get_option_votes(self, proposal_id: int, option_index: int) -> str:
        """Handle of the option's encrypted vote count"""

    @abstractmethod
    async def is_active(self, proposal_id: int) -> bool:
        pass

    @abstractmethod
    async def current_time(self) -> int:
        """Ledger clock (latest block timestamp)"""

    async def get_limits(self) -> Optional[LedgerLimits]:
        """Ledger-reported limits; None when the ledger does not expose them"""
        return None


def resolve_ledger_address(config: LedgerConfig, chain_id: int) -> str:
    try:
        return config.addresses[int(chain_id)]
    except KeyError:
        raise LedgerNotDeployed(f"No voting ledger deployed on chain {chain_id}") from None
