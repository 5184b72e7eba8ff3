"""
Element graph: producing and consuming recipe index over the effective corpus.

Built once from the tier-validated corpus and never mutated afterwards, so
concurrent searches read it without locking.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set

from constants import PRIMITIVES, PRIMITIVE_SET
from corpus import Corpus, Element, Recipe


@dataclass
class GraphNode:
    name: str
    image_ref: str
    tier: int
    produces: List[Recipe] = field(default_factory=list)
    consumes: List[Recipe] = field(default_factory=list)


class ElementGraph:
    def __init__(self, corpus: Corpus) -> None:
        self.corpus = corpus
        self.nodes: Dict[str, GraphNode] = {
            name: GraphNode(name=name, image_ref=element.image_ref, tier=element.tier)
            for name, element in corpus.items()
        }

        for name, element in corpus.items():
            for recipe in element.recipe_objects():
                self.nodes[name].produces.append(recipe)
                for ingredient in set(recipe.ingredients):
                    node = self.nodes.get(ingredient)
                    if node is not None:
                        node.consumes.append(recipe)

        self.primitives: List[str] = [name for name in PRIMITIVES if name in self.nodes]
        self.reachable: FrozenSet[str] = self._compute_reachable()

    def _compute_reachable(self) -> FrozenSet[str]:
        known: Set[str] = set(self.primitives)
        frontier = list(self.primitives)
        while frontier:
            next_frontier: List[str] = []
            for name in frontier:
                for recipe in self.nodes[name].consumes:
                    if recipe.result in known:
                        continue
                    if all(i in known for i in recipe.ingredients):
                        known.add(recipe.result)
                        next_frontier.append(recipe.result)
            frontier = next_frontier
        return frozenset(known)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, name: str) -> Optional[GraphNode]:
        return self.nodes.get(name)

    def element(self, name: str) -> Optional[Element]:
        return self.corpus.get(name)

    def image_ref(self, name: str) -> str:
        node = self.nodes.get(name)
        return node.image_ref if node else ""

    def produces(self, name: str) -> List[Recipe]:
        node = self.nodes.get(name)
        return node.produces if node else []

    def consumes(self, name: str) -> List[Recipe]:
        node = self.nodes.get(name)
        return node.consumes if node else []

    def is_primitive(self, name: str) -> bool:
        return name in PRIMITIVE_SET

    def is_dead_end(self, name: str) -> bool:
        """Derived element that no effective recipe produces."""
        return not self.is_primitive(name) and not self.produces(name)

    def is_reachable(self, name: str) -> bool:
        return name in self.reachable

    def combine(self, first: str, second: str) -> List[str]:
        """Results of every recipe whose ingredients are exactly {first, second}."""
        wanted = tuple(sorted((first, second)))
        return [
            recipe.result
            for recipe in self.consumes(first)
            if tuple(sorted(recipe.ingredients)) == wanted
        ]

    def recipe_count(self) -> int:
        return sum(len(node.produces) for node in self.nodes.values())
