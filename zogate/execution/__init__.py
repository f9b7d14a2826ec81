# Execution package exports

# Request and response models
from .models import OrderType, OrderView, PositionView

# Transaction assembly
from .builder import TransactionBuilder
from .instructions import Operation

# Gateway service
from .service import GatewayService, load_snapshot

__all__ = [
    # Models
    "OrderType",
    "OrderView",
    "PositionView",

    # Transactions
    "TransactionBuilder",
    "Operation",

    # Service
    "GatewayService",
    "load_snapshot",
]
