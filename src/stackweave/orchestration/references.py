"""Reference annotation store.

Records every reference edge of the application graph, indexed by source and
by target, and the write-once resolution outcome of each edge.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from stackweave.core.errors import (
    DuplicateBindingError,
    GraphFrozenError,
    StackweaveError,
)
from stackweave.model.annotations import ReferenceEdge


class EdgeResolution:
    """Write-once outcome of resolving one edge."""

    def __init__(self, edge: ReferenceEdge) -> None:
        self.edge = edge
        self._event = asyncio.Event()
        self.error: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def resolve(self, error: Optional[BaseException] = None) -> None:
        if self._event.is_set():
            raise StackweaveError(f"Edge {self.edge.describe()} was already resolved")
        self.error = error
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class ReferenceStore:
    """In-memory store of reference edges keyed by source and target."""

    def __init__(self) -> None:
        self._by_source: Dict[str, List[ReferenceEdge]] = defaultdict(list)
        self._by_target: Dict[str, List[ReferenceEdge]] = defaultdict(list)
        self._binding_keys: Dict[Tuple[str, str], ReferenceEdge] = {}
        self._resolutions: Dict[ReferenceEdge, EdgeResolution] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def add(self, edge: ReferenceEdge) -> None:
        """Register an edge, rejecting a binding key already used on the target."""
        if self._frozen:
            raise GraphFrozenError(
                f"Cannot add reference {edge.describe()} after provisioning started"
            )
        key = (edge.target, edge.binding_key)
        existing = self._binding_keys.get(key)
        if existing is not None:
            raise DuplicateBindingError(edge.target, edge.binding_key, existing.source)

        self._binding_keys[key] = edge
        self._by_source[edge.source].append(edge)
        self._by_target[edge.target].append(edge)
        self._resolutions[edge] = EdgeResolution(edge)

    def outgoing(self, source: str) -> List[ReferenceEdge]:
        return list(self._by_source.get(source, ()))

    def incoming(self, target: str) -> List[ReferenceEdge]:
        return list(self._by_target.get(target, ()))

    def edges(self) -> List[ReferenceEdge]:
        return list(self._resolutions)

    def resolution(self, edge: ReferenceEdge) -> EdgeResolution:
        return self._resolutions[edge]

    def __len__(self) -> int:
        return len(self._resolutions)
