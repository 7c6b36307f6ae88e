"""
RPC clients: the async JSON-RPC transport and the typed operator API.
"""

from .http import RpcTransport
from .operator import OperatorClient

__all__ = ["RpcTransport", "OperatorClient"]
