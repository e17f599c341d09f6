from .state import Account, StateProvider, StateView, ZERO_ADDRESS
from .vm import BlockEnv, ExecutionResult, LocalVM, Run, Transaction, VMError

__all__ = [
    "Account",
    "BlockEnv",
    "ExecutionResult",
    "LocalVM",
    "Run",
    "StateProvider",
    "StateView",
    "Transaction",
    "VMError",
    "ZERO_ADDRESS",
]
