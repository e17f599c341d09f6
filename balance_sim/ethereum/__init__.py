from .call_many import EthCallMany
from .provider import RpcStateProvider

__all__ = ["EthCallMany", "RpcStateProvider"]
