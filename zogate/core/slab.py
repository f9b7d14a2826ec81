"""Order-book slab decoding.

A slab is a crit-bit tree over a flat array of 72 byte nodes. Inner nodes
branch on a key bit, leaves hold resting orders, and unused nodes form a
singly linked free list. The tree is validated once at decode time so that
traversal never follows a dangling or cyclic pointer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Set

from construct import ConstructError
from solders.pubkey import Pubkey

from . import layouts
from .errors import CorruptAccountError

_KIND = "Slab"


class BookSide(str, Enum):
    BID = "bid"
    ASK = "ask"


@dataclass(frozen=True, slots=True)
class SlabOrder:
    owner_slot: int
    fee_tier: int
    control: Pubkey
    order_id: int
    client_order_id: int
    quantity: int

    @property
    def price_lots(self) -> int:
        return self.order_id >> 64


@dataclass(frozen=True, slots=True)
class _Inner:
    key: int
    children: tuple


class Slab:
    """Validated, read-only view over one side of an order book."""

    def __init__(self, side: BookSide, root: int | None, inner: Dict[int, _Inner], leaves: Dict[int, SlabOrder]) -> None:
        self.side = side
        self._root = root
        self._inner = inner
        self._leaves = leaves

    def __len__(self) -> int:
        return len(self._leaves)

    def iter_front(self) -> Iterator[SlabOrder]:
        """Yield orders best price first: bids high to low, asks low to high."""
        if self._root is None:
            return
        # children[0] holds keys with the crit bit clear, i.e. the lower keys
        first, second = (1, 0) if self.side is BookSide.BID else (0, 1)
        stack: List[int] = [self._root]
        while stack:
            handle = stack.pop()
            leaf = self._leaves.get(handle)
            if leaf is not None:
                yield leaf
                continue
            node = self._inner[handle]
            stack.append(node.children[second])
            stack.append(node.children[first])


def _node_tag(data: bytes, handle: int) -> int:
    offset = layouts.SLAB_NODES_OFFSET + handle * layouts.SLAB_NODE_SIZE
    return int.from_bytes(data[offset : offset + 4], "little")


def _node_bytes(data: bytes, handle: int) -> bytes:
    offset = layouts.SLAB_NODES_OFFSET + handle * layouts.SLAB_NODE_SIZE
    return data[offset : offset + layouts.SLAB_NODE_SIZE]


def decode_slab(data: bytes) -> Slab:
    data = bytes(data)
    min_size = layouts.SLAB_NODES_OFFSET + len(layouts.SERUM_TAIL)
    if len(data) < min_size:
        raise CorruptAccountError(_KIND, f"expected at least {min_size} bytes, got {len(data)}")
    if not data.endswith(layouts.SERUM_TAIL):
        raise CorruptAccountError(_KIND, "missing padding tail")
    try:
        prefix = layouts.SlabPrefix.parse(data)
        header = layouts.SlabHeader.parse(data[layouts.SlabPrefix.sizeof():])
    except ConstructError as exc:
        raise CorruptAccountError(_KIND, str(exc)) from exc

    flags = prefix.account_flags
    if not flags & layouts.FLAG_INITIALIZED:
        raise CorruptAccountError(_KIND, "slab not initialized")
    is_bids = bool(flags & layouts.FLAG_BIDS)
    is_asks = bool(flags & layouts.FLAG_ASKS)
    if is_bids == is_asks:
        raise CorruptAccountError(_KIND, f"ambiguous side flags {flags:#x}")
    side = BookSide.BID if is_bids else BookSide.ASK

    capacity = (len(data) - len(layouts.SERUM_TAIL) - layouts.SLAB_NODES_OFFSET) // layouts.SLAB_NODE_SIZE
    bump = header.bump_index
    if bump > capacity:
        raise CorruptAccountError(_KIND, f"bump index {bump} exceeds capacity {capacity}")

    visited: Set[int] = set()
    inner: Dict[int, _Inner] = {}
    leaves: Dict[int, SlabOrder] = {}

    root = None
    if header.leaf_count:
        root = header.root_node
        if root >= bump:
            raise CorruptAccountError(_KIND, f"root {root} outside bump index {bump}")
        stack = [root]
        while stack:
            handle = stack.pop()
            if handle >= bump:
                raise CorruptAccountError(_KIND, f"child {handle} outside bump index {bump}")
            if handle in visited:
                raise CorruptAccountError(_KIND, f"node {handle} reachable twice")
            visited.add(handle)
            tag = _node_tag(data, handle)
            if tag == layouts.NODE_INNER:
                node = layouts.InnerNode.parse(_node_bytes(data, handle))
                inner[handle] = _Inner(key=node.key, children=tuple(node.children))
                stack.extend(node.children)
            elif tag == layouts.NODE_LEAF:
                node = layouts.LeafNode.parse(_node_bytes(data, handle))
                leaves[handle] = SlabOrder(
                    owner_slot=node.owner_slot,
                    fee_tier=node.fee_tier,
                    control=Pubkey.from_bytes(bytes(node.control)),
                    order_id=node.key,
                    client_order_id=node.client_order_id,
                    quantity=node.quantity,
                )
            else:
                raise CorruptAccountError(_KIND, f"node {handle} has tag {tag} inside the tree")
        if len(leaves) != header.leaf_count:
            raise CorruptAccountError(
                _KIND, f"header counts {header.leaf_count} leaves, tree holds {len(leaves)}"
            )

    handle = header.free_list_head
    for _ in range(header.free_list_len):
        if handle >= bump or handle in visited:
            raise CorruptAccountError(_KIND, f"free list node {handle} invalid")
        visited.add(handle)
        tag = _node_tag(data, handle)
        if tag == layouts.NODE_FREE:
            handle = layouts.FreeNode.parse(_node_bytes(data, handle)).next
        elif tag == layouts.NODE_LAST_FREE:
            handle = bump
        else:
            raise CorruptAccountError(_KIND, f"free list node {handle} has tag {tag}")

    return Slab(side, root, inner, leaves)


__all__ = ["BookSide", "SlabOrder", "Slab", "decode_slab"]
