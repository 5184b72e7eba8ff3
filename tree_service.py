"""
Recipe trees: the path-to-tree reconstruction and the two recursive
flavor builders it falls back on.

  bfs flavor   pick the recipe with the most primitive ingredients
  dfs flavor   pick the recipe with the cheapest ingredients
               (primitive 1, derived 2, dead end 1)

Ties go to corpus order. Every builder carries the set of elements active
on the current branch and emits an isCircularReference leaf on revisit.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Sequence

from constants import TREE_ALGORITHMS
from corpus import Recipe
from element_graph import ElementGraph
from errors import InvalidAlgorithm
from paths import PathNode


@dataclass
class RecipeTree:
    name: str
    image_ref: str = ""
    ingredients: List["RecipeTree"] = field(default_factory=list)
    is_base_element: bool = False
    no_recipe: bool = False
    is_circular_reference: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "imagePath": self.image_ref,
            "ingredients": [child.to_dict() for child in self.ingredients],
        }
        if self.is_base_element:
            payload["isBaseElement"] = True
        if self.no_recipe:
            payload["noRecipe"] = True
        if self.is_circular_reference:
            payload["isCircularReference"] = True
        return payload

    def walk(self) -> Iterator["RecipeTree"]:
        yield self
        for child in self.ingredients:
            yield from child.walk()

    def count_nodes(self) -> int:
        return sum(1 for _ in self.walk())

    def signature(self) -> str:
        """Canonical form up to sibling order: name|[sorted child signatures]."""
        children = sorted(child.signature() for child in self.ingredients)
        return f"{self.name}|[{';'.join(children)}]"

    def top_level_signature(self) -> str:
        return "+".join(sorted(child.name for child in self.ingredients))


def validate_flavor(algorithm: str) -> str:
    flavor = (algorithm or "").strip().lower()
    if flavor not in TREE_ALGORITHMS:
        raise InvalidAlgorithm(algorithm, TREE_ALGORITHMS)
    return flavor


class TreeBuilder:
    """Builds trees over one graph and counts every node it creates."""

    def __init__(self, graph: ElementGraph, flavor: str = "dfs") -> None:
        self.graph = graph
        self.flavor = validate_flavor(flavor)
        self.visited = 0

    # ── Nodes ──────────────────────────────────────────────

    def node(self, name: str, ingredients: Optional[List[RecipeTree]] = None) -> RecipeTree:
        self.visited += 1
        return RecipeTree(name=name, image_ref=self.graph.image_ref(name), ingredients=ingredients or [])

    def leaf(self, name: str) -> RecipeTree:
        tree = self.node(name)
        if self.graph.is_primitive(name):
            tree.is_base_element = True
        elif self.graph.is_dead_end(name):
            tree.no_recipe = True
        return tree

    def circular(self, name: str) -> RecipeTree:
        tree = self.node(name)
        tree.is_circular_reference = True
        return tree

    # ── Flavor builders ────────────────────────────────────

    def _cost(self, ingredient: str) -> int:
        if self.graph.is_primitive(ingredient) or self.graph.is_dead_end(ingredient):
            return 1
        return 2

    def candidates(self, name: str) -> List[Recipe]:
        recipes = [r for r in self.graph.produces(name) if not r.is_self_referential]
        traceable = [r for r in recipes if all(self.graph.is_reachable(i) for i in r.ingredients)]
        return traceable or recipes

    def choose_recipe(self, name: str) -> Optional[Recipe]:
        recipes = self.candidates(name)
        if not recipes:
            return None
        if self.flavor == "bfs":
            ranked = [
                (-sum(1 for i in recipe.ingredients if self.graph.is_primitive(i)), index)
                for index, recipe in enumerate(recipes)
            ]
        else:
            ranked = [
                (sum(self._cost(i) for i in recipe.ingredients), index)
                for index, recipe in enumerate(recipes)
            ]
        _, best = min(ranked)
        return recipes[best]

    def build(self, name: str, active: FrozenSet[str] = frozenset()) -> RecipeTree:
        if name in active:
            return self.circular(name)
        if self.graph.is_primitive(name) or self.graph.is_dead_end(name):
            return self.leaf(name)
        recipe = self.choose_recipe(name)
        if recipe is None:
            return self.leaf(name)
        return self.expand(name, recipe, active)

    def expand(self, name: str, recipe: Recipe, active: FrozenSet[str] = frozenset()) -> RecipeTree:
        branch = active | {name}
        tree = self.node(name)
        tree.ingredients = [self.build(ingredient, branch) for ingredient in recipe.ingredients]
        return tree

    # ── Path to tree ───────────────────────────────────────

    def from_path(self, path: Sequence[PathNode], target: Optional[str] = None) -> Optional[RecipeTree]:
        """Rebuild the tree a path witnesses.

        Forward paths are turned target first. For each recipe of the head
        every ingredient must occur later in the path; each sub-tree is then
        built from the suffix starting at that ingredient's first occurrence.
        The first matching recipe wins; the one recorded on the path node is
        tried before the rest. No match falls back to the flavor builder.
        """
        nodes = list(path)
        if not nodes:
            return None
        if target is None:
            target = nodes[-1].element if self.graph.is_primitive(nodes[0].element) else nodes[0].element
        if nodes[0].element != target and nodes[-1].element == target:
            nodes.reverse()
        if len(nodes) == 1:
            return self.leaf(nodes[0].element)
        return self._from_suffix(nodes, [node.element for node in nodes], 0, frozenset())

    def _ordered_recipes(self, node: PathNode) -> List[Recipe]:
        """Corpus order, with the recipe the path recorded for `node` tried first."""
        recipes = self.graph.produces(node.element)
        if not node.ingredients:
            return recipes
        recorded = tuple(sorted(node.ingredients))
        first = [r for r in recipes if tuple(sorted(r.ingredients)) == recorded]
        return first + [r for r in recipes if tuple(sorted(r.ingredients)) != recorded]

    def _from_suffix(self, nodes: List[PathNode], names: List[str], start: int, active: FrozenSet[str]) -> RecipeTree:
        head = names[start]
        if head in active:
            return self.circular(head)
        if self.graph.is_primitive(head) or self.graph.is_dead_end(head):
            return self.leaf(head)

        branch = active | {head}
        for recipe in self._ordered_recipes(nodes[start]):
            if recipe.is_self_referential:
                continue
            positions = []
            for ingredient in recipe.ingredients:
                try:
                    positions.append(names.index(ingredient, start + 1))
                except ValueError:
                    break
            if len(positions) != len(recipe.ingredients):
                continue
            tree = self.node(head)
            tree.ingredients = [self._from_suffix(nodes, names, position, branch) for position in positions]
            return tree

        return self.build(head, active)


def path_to_tree(graph: ElementGraph, path: Sequence[PathNode], target: Optional[str] = None,
                 flavor: str = "dfs") -> Optional[RecipeTree]:
    return TreeBuilder(graph, flavor).from_path(path, target)


def build_tree(graph: ElementGraph, name: str, flavor: str = "dfs") -> RecipeTree:
    return TreeBuilder(graph, flavor).build(name)


def distinct_trees(trees: Sequence[RecipeTree], limit: Optional[int] = None) -> List[RecipeTree]:
    seen = set()
    out: List[RecipeTree] = []
    for tree in trees:
        signature = tree.signature()
        if signature in seen:
            continue
        seen.add(signature)
        out.append(tree)
        if limit is not None and len(out) >= limit:
            break
    return out
