# Core package exports

from .errors import GatewayError
from .identity import Identity
from .registry import ProgramIds, SymbolRegistry
from .slab import BookSide, Slab, decode_slab

__all__ = [
    "GatewayError",
    "Identity",
    "ProgramIds",
    "SymbolRegistry",
    "BookSide",
    "Slab",
    "decode_slab",
]
