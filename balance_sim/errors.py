# errors.py
"""
Error taxonomy for balance-slot discovery and simulation.

Every error carries a ``stage`` tag naming the step that produced it, so a
caller can branch on one attribute instead of walking wrapper chains.
"""

from typing import Optional


class BalanceSimError(Exception):
    """Base class for all errors raised by this package."""

    stage = "unknown"


class ValidationError(BalanceSimError):
    """Malformed caller input, detected before any work begins."""

    stage = "validation"

    def __init__(self, field: str, message: str):
        super().__init__(f"invalid {field}: {message}")
        self.field = field


class StateFetchError(BalanceSimError):
    """The state provider failed to deliver account, storage or block data."""

    stage = "state"


class DiscoveryError(BalanceSimError):
    stage = "discovery"


class InspectionError(DiscoveryError):
    """The recorded balanceOf query did not complete normally."""

    def __init__(self, token: str, reason: str):
        super().__init__(f"inspecting balanceOf on {token} failed: {reason}")
        self.token = token
        self.reason = reason


class SlotNotFoundError(DiscoveryError):
    """
    No recorded storage read reflected the marker value.

    This is terminal: the token's balance layout cannot be discovered by
    mutation, retrying will not help.
    """

    def __init__(self, token: str, holder: str, candidates: int):
        super().__init__(
            f"no balance slot found for holder {holder} on {token} "
            f"({candidates} candidates tested)"
        )
        self.token = token
        self.holder = holder
        self.candidates = candidates


class PathError(BalanceSimError):
    """Failure of one simulation path (remote batch call or local execution)."""

    stage = "simulation"

    def __init__(self, path: str, message: str):
        super().__init__(f"{path} simulation failed: {message}")
        self.path = path
        self.reason = message


class RemoteSimulationError(PathError):
    def __init__(self, message: str):
        super().__init__("remote", message)


class LocalSimulationError(PathError):
    def __init__(self, message: str):
        super().__init__("local", message)


class ApproveFailedError(PathError):
    """The max-allowance approve failed; a setup problem, not a result."""

    stage = "approve"

    def __init__(self, path: str, reason: str):
        super().__init__(path, f"approve transaction failed: {reason}")


class BothPathsFailedError(BalanceSimError):
    """
    Neither path produced an outcome.

    ``remote_error`` is the primary cause; ``local_error`` is chained as
    ``__cause__`` when raised by the simulator.
    """

    stage = "simulation"

    def __init__(self, remote_error: PathError, local_error: Optional[PathError]):
        message = f"all simulation paths failed: {remote_error}"
        if local_error is not None:
            message += f" (local fallback: {local_error})"
        super().__init__(message)
        self.remote_error = remote_error
        self.local_error = local_error
