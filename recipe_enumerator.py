"""
Distinct recipe-tree enumeration.

For each recipe of the target, every ingredient contributes a bounded list
of its own variations (at most ceil(max_count / 2), three levels deep, the
flavor builder below that). The Cartesian product of those lists gives
candidate trees, kept only when their canonical signature is new.
"""

import logging
import math
import threading
from itertools import product
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from constants import ENUMERATION_MAX_DEPTH
from element_graph import ElementGraph
from tree_service import RecipeTree, TreeBuilder

log = logging.getLogger(__name__)


class RecipeEnumerator:
    def __init__(
        self,
        graph: ElementGraph,
        flavor: str = "dfs",
        max_depth: int = ENUMERATION_MAX_DEPTH,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.graph = graph
        self.builder = TreeBuilder(graph, flavor)
        self.max_depth = max_depth
        self.cancel = cancel
        self._memo: Dict[Tuple[str, int, FrozenSet[str], int], List[RecipeTree]] = {}

    @property
    def visited(self) -> int:
        return self.builder.visited

    def _halted(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def enumerate(self, target: str, max_count: int) -> List[RecipeTree]:
        if target not in self.graph or max_count <= 0:
            return []
        local_cap = max(1, math.ceil(max_count / 2))
        trees = self._variations(target, 0, frozenset(), max_count, local_cap)
        log.debug("Enumerated %d trees for '%s' (cap %d)", len(trees), target, max_count)
        return trees

    def _variations(
        self, name: str, depth: int, active: FrozenSet[str], cap: int, local_cap: int
    ) -> List[RecipeTree]:
        key = (name, depth, active, cap)
        cached = self._memo.get(key)
        if cached is not None:
            return cached

        if name in active:
            out = [self.builder.circular(name)]
        elif self.graph.is_primitive(name) or self.graph.is_dead_end(name):
            out = [self.builder.leaf(name)]
        elif depth >= self.max_depth:
            out = [self.builder.build(name, active)]
        else:
            out = self._combine(name, depth, active, cap, local_cap)
            if not out:
                out = [self.builder.build(name, active)]

        self._memo[key] = out
        return out

    def _combine(
        self, name: str, depth: int, active: FrozenSet[str], cap: int, local_cap: int
    ) -> List[RecipeTree]:
        branch = active | {name}
        seen: Set[str] = set()
        out: List[RecipeTree] = []
        for recipe in self.builder.candidates(name):
            if any(ingredient in branch for ingredient in recipe.ingredients):
                continue
            per_ingredient = [
                self._variations(ingredient, depth + 1, branch, local_cap, local_cap)
                for ingredient in recipe.ingredients
            ]
            for combination in product(*per_ingredient):
                if self._halted():
                    return out
                tree = self.builder.node(name, list(combination))
                signature = tree.signature()
                if signature in seen:
                    continue
                seen.add(signature)
                out.append(tree)
                if len(out) >= cap:
                    return out
        return out


def enumerate_trees(
    graph: ElementGraph,
    target: str,
    max_count: int,
    flavor: str = "dfs",
    cancel: Optional[threading.Event] = None,
) -> Tuple[List[RecipeTree], int]:
    """Up to `max_count` signature-distinct trees plus the nodes built."""
    enumerator = RecipeEnumerator(graph, flavor, cancel=cancel)
    trees = enumerator.enumerate(target, max_count)
    return trees, enumerator.visited


def distinct_top_level(trees: List[RecipeTree], limit: Optional[int] = None) -> List[RecipeTree]:
    """Keep one tree per distinct pair of direct ingredients."""
    seen: Set[str] = set()
    out: List[RecipeTree] = []
    for tree in trees:
        signature = tree.top_level_signature()
        if signature in seen:
            continue
        seen.add(signature)
        out.append(tree)
        if limit is not None and len(out) >= limit:
            break
    return out
