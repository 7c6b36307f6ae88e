"""
zk-rollup client SDK for Python
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import ClientConfig, PollConfig  # noqa: F401
from .errors import (  # noqa: F401
    FeeTooHigh,
    FeeUnavailable,
    PrecisionLoss,
    Rejected,
    RejectReason,
    RpcError,
    SigningError,
    Timeout,
    Transient,
    ValidationError,
    ZkRollupError,
)

# Types
from .types.core import (  # noqa: F401
    AccountState,
    ChangePubKeyAuth,
    FeeEstimate,
    L1AuthPolicy,
    PriorityOpState,
    SignatureBundle,
    Token,
    TxReceipt,
    TxState,
    TxType,
)

# Amounts
from .amounts import closest_packable_amount, closest_packable_fee  # noqa: F401

# Tx helpers
from .tx.build import build, build_order  # noqa: F401
from .tx.encode import encode, tx_hash  # noqa: F401
from .tx.sign import DualSigner  # noqa: F401
from .tx.fees import FeeEstimator  # noqa: F401
from .tx.confirm import ConfirmationTracker  # noqa: F401

# RPC
from .rpc.http import RpcTransport  # noqa: F401
from .rpc.operator import OperatorClient  # noqa: F401

# Accounts
from .account.nonce import NonceTracker  # noqa: F401

# Wallet
from .wallet.signer import RollupSigner, create_signer_from_seed  # noqa: F401
from .wallet.eth import LocalL1Signer, derive_rollup_signer  # noqa: F401
from .wallet.wallet import SubmittedTx, Wallet  # noqa: F401

# Priority operations
from .l1.gateway import EthJsonRpcGateway  # noqa: F401
from .l1.priority import PriorityOpTracker  # noqa: F401

# Utilities
from .utils.clock import SystemClock, VirtualClock  # noqa: F401

__all__ = [
    "__version__",
    # Core
    "ClientConfig", "PollConfig",
    "ZkRollupError", "ValidationError", "PrecisionLoss", "SigningError",
    "RpcError", "Transient", "Rejected", "RejectReason", "Timeout",
    "FeeTooHigh", "FeeUnavailable",
    # Types
    "AccountState", "ChangePubKeyAuth", "FeeEstimate", "L1AuthPolicy",
    "PriorityOpState", "SignatureBundle", "Token", "TxReceipt", "TxState", "TxType",
    # Amounts
    "closest_packable_amount", "closest_packable_fee",
    # Tx
    "build", "build_order", "encode", "tx_hash",
    "DualSigner", "FeeEstimator", "ConfirmationTracker",
    # RPC
    "RpcTransport", "OperatorClient",
    # Accounts / wallet
    "NonceTracker", "RollupSigner", "create_signer_from_seed", "LocalL1Signer", "derive_rollup_signer",
    "Wallet", "SubmittedTx",
    # Priority operations
    "EthJsonRpcGateway", "PriorityOpTracker",
    # Utilities
    "SystemClock", "VirtualClock",
]
