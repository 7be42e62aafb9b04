"""Voting ledger: proposal model, failure reasons and ledger bindings."""

from .ledger import (
    Ledger,
    Proposal,
    ProposalState,
    LedgerLimits,
    LedgerError,
    AlreadyVoted,
    InvalidDuration,
    TooManyOptions,
    TooFewOptions,
    ProposalNotActive,
    AlreadyRevealed,
    NotVoted,
    InvalidProposal,
    InvalidOption,
    InvalidInputProof,
    TransactionFailed,
    LedgerNotDeployed,
    NAMED_ERRORS,
    error_for_reason,
    resolve_ledger_address
)
from .memory_ledger import InMemoryLedger
from .rpc_ledger import RpcLedger

__all__ = [
    # Data structures
    'Proposal',
    'ProposalState',
    'LedgerLimits',

    # Bindings
    'Ledger',
    'InMemoryLedger',
    'RpcLedger',
    'resolve_ledger_address',

    # Exceptions
    'LedgerError',
    'AlreadyVoted',
    'InvalidDuration',
    'TooManyOptions',
    'TooFewOptions',
    'ProposalNotActive',
    'AlreadyRevealed',
    'NotVoted',
    'InvalidProposal',
    'InvalidOption',
    'InvalidInputProof',
    'TransactionFailed',
    'LedgerNotDeployed',
    'NAMED_ERRORS',
    'error_for_reason'
]
