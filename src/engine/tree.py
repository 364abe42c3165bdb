"""
Component tree stored as an arena of nodes keyed by integer id.

Traversal is pre-order: parent before children, siblings in insertion
order. A disabled node skips its whole subtree and does not move the cursor.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from engine.component import (
    ComponentNode,
    NodeStatus,
    create_strategy,
    lookup_kind,
)
from engine.contracts import ConstructionStrategy

logger = logging.getLogger(__name__)


class ComponentTree:
    """Ordered rooted tree with a single root."""

    def __init__(self):
        self._nodes: Dict[int, ComponentNode] = {}
        self._ids = itertools.count(1)
        self.root_id: Optional[int] = None

    @classmethod
    def from_kind(cls, kind: str) -> "ComponentTree":
        """New tree whose root is ``kind`` plus its declared children."""
        tree = cls()
        tree.set_root(kind)
        return tree

    # ── Structure ────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    @property
    def root(self) -> Optional[ComponentNode]:
        return self._nodes.get(self.root_id) if self.root_id is not None else None

    def node(self, node_id: int) -> ComponentNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"No component node with id {node_id}") from None

    def _insert(self, strategy: ConstructionStrategy, kind: str, parent_id: Optional[int]) -> ComponentNode:
        node = ComponentNode(strategy, kind, node_id=next(self._ids))
        node.parent_id = parent_id
        self._nodes[node.node_id] = node
        if parent_id is not None:
            self.node(parent_id).children.append(node.node_id)
        return node

    def set_root(self, kind: str) -> ComponentNode:
        """Replace the whole tree with a fresh ``kind`` root and its declared children."""
        spec = lookup_kind(kind)
        self._nodes.clear()
        root = self._insert(spec.factory(), kind, None)
        self.root_id = root.node_id
        for child_kind in spec.children:
            self.add_child(root.node_id, child_kind)
        logger.info("New %s tree (%d nodes)", spec.label, len(self._nodes))
        return root

    def add_root_strategy(self, strategy: ConstructionStrategy, kind: str = "custom") -> ComponentNode:
        self._nodes.clear()
        root = self._insert(strategy, kind, None)
        self.root_id = root.node_id
        return root

    def add_child(self, parent_id: int, kind: str) -> ComponentNode:
        return self._insert(create_strategy(kind), kind, parent_id)

    def add_child_strategy(self, parent_id: int, strategy: ConstructionStrategy, kind: str = "custom") -> ComponentNode:
        return self._insert(strategy, kind, parent_id)

    def remove(self, node_id: int) -> None:
        """Remove a node and its subtree. Removing the root empties the tree."""
        node = self.node(node_id)
        doomed = [n.node_id for n in self.walk(node_id)]
        if node.parent_id is not None:
            self.node(node.parent_id).children.remove(node_id)
        for nid in doomed:
            del self._nodes[nid]
        if node_id == self.root_id:
            self.root_id = None

    def children_of(self, node_id: int) -> List[ComponentNode]:
        return [self._nodes[c] for c in self.node(node_id).children]

    def walk(self, start_id: Optional[int] = None, skip_disabled: bool = False) -> Iterator[ComponentNode]:
        """Pre-order walk from ``start_id`` (default root)."""
        if start_id is None:
            start_id = self.root_id
        if start_id is None:
            return
        stack = [start_id]
        while stack:
            node = self._nodes[stack.pop()]
            if skip_disabled and not node.enabled:
                continue
            yield node
            stack.extend(reversed(node.children))

    # ── Pipeline walks ───────────────────────────────────────────────────

    def run_physics(self, ctx) -> None:
        for node in self.walk(skip_disabled=True):
            node.run_physics(ctx)

    def run_build(self, ctx, epsilon: float = 0.1) -> Dict[int, NodeStatus]:
        """Setup, preview and construct every enabled node in pre-order."""
        statuses: Dict[int, NodeStatus] = {}
        enabled = set()
        for node in self.walk(skip_disabled=True):
            enabled.add(node.node_id)
            statuses[node.node_id] = node.build(ctx, epsilon)
        for node in self.walk():
            if node.node_id not in enabled:
                node.last_status = NodeStatus.DISABLED
                statuses[node.node_id] = NodeStatus.DISABLED
        return statuses


@dataclass
class ApplicationState:
    """Tree plus UI selection, owned by whoever runs the scheduler."""
    tree: ComponentTree = field(default_factory=ComponentTree)
    selected_node: Optional[int] = None

    def select(self, node_id: Optional[int]) -> None:
        if node_id is not None and node_id not in self.tree:
            raise KeyError(f"No component node with id {node_id}")
        self.selected_node = node_id
