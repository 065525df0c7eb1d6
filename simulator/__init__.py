"""
Simulator Module

Constrained execution simulator for untrusted script snippets.

This module provides:
- Pre-checks for source size and memory budget
- Advisory capability scanning and authoritative removal of denied bindings
- Deadline-raced execution with cooperative interruption
- Stack depth enforcement
- Post-run classification into a closed error taxonomy

WARNING: This is NOT an isolation boundary. It predicts whether code would
breach a restrictive host's limits; it does not protect the calling process
from hostile code.
"""

__version__ = "0.1.0"

from .deferred import SyncDeferred
from .executor import RuntimeSimulator, run_in_simulator
from .ledger import MemoryLedger
from .schemas import (
    ErrorCategory,
    ExecutionOutcome,
    ExecutionRequest,
    ResourceBudget,
    SimulatorPolicy,
    Violation,
    ViolationCategory,
)

__all__ = [
    "ErrorCategory",
    "ExecutionOutcome",
    "ExecutionRequest",
    "MemoryLedger",
    "ResourceBudget",
    "RuntimeSimulator",
    "SimulatorPolicy",
    "SyncDeferred",
    "Violation",
    "ViolationCategory",
    "run_in_simulator",
]
