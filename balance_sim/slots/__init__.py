from .finder import find_balance_slot
from .recorder import SloadRecorder, SlotWithAddress
from .tester import MARKER_VALUE, check_candidate

__all__ = [
    "MARKER_VALUE",
    "SloadRecorder",
    "SlotWithAddress",
    "check_candidate",
    "find_balance_slot",
]
