"""
Path nodes and the helpers that reshape linear recipe paths.

A forward path starts with primitives and ends with the target; every
derived node's ingredients appear before it. A backward path starts with
the target; the producers of a node appear after it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from element_graph import ElementGraph


@dataclass(frozen=True)
class PathNode:
    element: str
    image_ref: str = ""
    ingredients: Optional[Tuple[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"element": self.element, "imagePath": self.image_ref}
        if self.ingredients:
            payload["ingredients"] = list(self.ingredients)
        return payload


Path = List[PathNode]


def leaf(graph: ElementGraph, name: str) -> PathNode:
    return PathNode(element=name, image_ref=graph.image_ref(name))


def derived(graph: ElementGraph, name: str, ingredients: Sequence[str]) -> PathNode:
    first, second = ingredients
    return PathNode(element=name, image_ref=graph.image_ref(name), ingredients=(first, second))


def merge_paths(*paths: Iterable[PathNode]) -> Path:
    """Concatenate paths keeping the first occurrence of every element."""
    seen: Set[str] = set()
    merged: Path = []
    for path in paths:
        for node in path:
            if node.element in seen:
                continue
            seen.add(node.element)
            merged.append(node)
    return merged


def forward_path(path: Sequence[PathNode]) -> Path:
    """Primitives-first view of a backward (target-first) path."""
    return merge_paths(reversed(path))


def element_names(path: Sequence[PathNode]) -> List[str]:
    return [node.element for node in path]


def anchor_set(path: Sequence[PathNode], graph: ElementGraph) -> Tuple[str, ...]:
    """Sorted leaves a path rests on: primitives plus derived elements without recipes."""
    anchors = {
        node.element
        for node in path
        if graph.is_primitive(node.element) or (not node.ingredients and graph.is_dead_end(node.element))
    }
    return tuple(sorted(anchors))


def path_signature(path: Sequence[PathNode]) -> str:
    parts = []
    for node in merge_paths(path):
        if node.ingredients:
            parts.append(f"{node.element}({','.join(sorted(node.ingredients))})")
        else:
            parts.append(node.element)
    return "-".join(parts)


def target_ingredients(path: Sequence[PathNode], target: str) -> Optional[Tuple[str, str]]:
    for node in path:
        if node.element == target and node.ingredients:
            return node.ingredients
    return None


def paths_to_dicts(paths: Iterable[Sequence[PathNode]]) -> List[List[Dict[str, Any]]]:
    return [[node.to_dict() for node in path] for path in paths]
