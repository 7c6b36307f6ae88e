"""
Base-chain side: L1 gateway interface and priority-operation tracking.
"""

from .gateway import EthJsonRpcGateway, L1Gateway, L1Log, L1Receipt
from .priority import PriorityOpTracker, decode_priority_requests

__all__ = [
    "L1Gateway",
    "EthJsonRpcGateway",
    "L1Log",
    "L1Receipt",
    "PriorityOpTracker",
    "decode_priority_requests",
]
