"""
Token balance simulation: discover an ERC20 balance slot by mutation, then
simulate a call as if the user held an arbitrary balance.
"""

from .errors import BalanceSimError
from .simulation.simulator import Simulator, simulate
from .slots.finder import find_balance_slot
from .slots.recorder import SlotWithAddress

__version__ = "0.1.0"

__all__ = ["BalanceSimError", "Simulator", "SlotWithAddress", "find_balance_slot", "simulate"]
