"""
Recipe search kernels over the element graph.

Three strategies, each returning a SearchResult (paths + visited counter):
  - bfs_forward     synthesis from the primitives, breadth first
  - dfs_backward    decomposition from the target, depth first
  - bidirectional   forward frontier from primitives, backward frontier from
                    the target, joined where they meet

Producing an element needs *both* ingredients of a recipe, so every kernel
treats the graph as an AND/OR graph rather than a plain digraph.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from element_graph import ElementGraph
from corpus import Recipe
from paths import Path, PathNode, anchor_set, derived, leaf, merge_paths

log = logging.getLogger(__name__)

# (expanded element, recipe used, ingredient followed downwards)
ChainStep = Tuple[str, Tuple[str, str], str]
Chain = Tuple[ChainStep, ...]


@dataclass
class SearchResult:
    paths: List[Path] = field(default_factory=list)
    visited: int = 0
    meeting_points: List[str] = field(default_factory=list)


def limit_reached(count: int, max_results: Optional[int]) -> bool:
    return max_results is not None and max_results > 0 and count >= max_results


def _halted(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def _primitive_result(graph: ElementGraph, target: str) -> SearchResult:
    return SearchResult(paths=[[leaf(graph, target)]], visited=1, meeting_points=[target])


def _derivation_key(recipe: Recipe) -> Tuple[str, ...]:
    return tuple(sorted(recipe.ingredients))


# ── Forward BFS ────────────────────────────────────────────

def bfs_forward(
    graph: ElementGraph,
    target: str,
    max_results: Optional[int] = 1,
    single_path: bool = False,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    """Synthesize `target` from the primitives, one BFS insertion per element.

    pathMap[w] is the merged derivation of both ingredients followed by w.
    Once the target is known, every further distinct recipe of it that
    becomes satisfiable yields another path; the target itself still enters
    the frontier once.
    """
    if target not in graph:
        return SearchResult()
    if graph.is_primitive(target):
        return _primitive_result(graph, target)

    path_map: Dict[str, Path] = {}
    queue: Deque[str] = deque()
    visited = 0
    for name in graph.primitives:
        path_map[name] = [leaf(graph, name)]
        queue.append(name)
        visited += 1

    results: List[Path] = []
    target_derivations: Set[Tuple[str, ...]] = set()

    while queue and not _halted(cancel):
        current = queue.popleft()
        for recipe in graph.consumes(current):
            if recipe.is_self_referential:
                continue
            partner = recipe.other(current)
            if partner not in path_map:
                continue
            produced = recipe.result
            is_target = produced == target
            if produced in path_map and not is_target:
                continue
            if is_target:
                key = _derivation_key(recipe)
                if key in target_derivations:
                    continue
                target_derivations.add(key)

            first, second = recipe.ingredients
            path = merge_paths(path_map[first], path_map[second]) + [derived(graph, produced, recipe.ingredients)]
            if produced not in path_map:
                path_map[produced] = path
                queue.append(produced)
                visited += 1

            if is_target:
                log.debug("BFS reached '%s' via %s + %s (path length %d)", target, first, second, len(path))
                results.append(path)
                if single_path or limit_reached(len(results), max_results):
                    return SearchResult(paths=results, visited=visited)

    return SearchResult(paths=results, visited=visited)


# ── Backward DFS ───────────────────────────────────────────

def _usable(graph: ElementGraph, recipe: Recipe, branch: FrozenSet[str]) -> bool:
    if recipe.is_self_referential:
        return False
    for ingredient in recipe.ingredients:
        if ingredient in branch or not graph.is_reachable(ingredient):
            return False
    return True


def dfs_backward(
    graph: ElementGraph,
    target: str,
    max_results: Optional[int] = 1,
    reverse: bool = False,
    recipes: Optional[Sequence[Recipe]] = None,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    """Decompose `target` depth first until every frontier element is a primitive.

    Paths are target first: each expanded node carries the recipe chosen
    for it and both ingredients are appended after it. Derived ingredients
    are expanded before the next recipe of their parent is considered.
    `recipes` restricts the recipes tried for the target itself; `reverse`
    returns primitives-first paths.
    """
    if target not in graph:
        return SearchResult()
    if graph.is_primitive(target):
        return _primitive_result(graph, target)

    top_recipes = list(recipes) if recipes is not None else graph.produces(target)
    results: List[Path] = []
    visited = 1

    # Each state: (path so far, pending derived nodes as (index, ancestors)).
    Pending = List[Tuple[int, FrozenSet[str]]]
    stack: List[Tuple[Path, Pending]] = [([leaf(graph, target)], [(0, frozenset())])]

    while stack:
        if _halted(cancel) or limit_reached(len(results), max_results):
            break
        path, pending = stack.pop()
        if not pending:
            results.append(list(reversed(path)) if reverse else path)
            continue

        index, ancestors = pending[-1]
        name = path[index].element
        branch = ancestors | {name}
        candidates = top_recipes if index == 0 else graph.produces(name)

        branches: List[Tuple[Path, Pending]] = []
        for recipe in candidates:
            if not _usable(graph, recipe, branch):
                continue
            new_path = list(path)
            new_path[index] = derived(graph, name, recipe.ingredients)
            children: Pending = []
            for ingredient in recipe.ingredients:
                visited += 1
                new_path.append(leaf(graph, ingredient))
                if not graph.is_primitive(ingredient):
                    children.append((len(new_path) - 1, branch))
            branches.append((new_path, pending[:-1] + list(reversed(children))))

        # Corpus order: the first recipe is explored first.
        stack.extend(reversed(branches))

    log.debug("DFS for '%s' found %d paths, visited %d", target, len(results), visited)
    return SearchResult(paths=results, visited=visited)


# ── Bidirectional BFS ──────────────────────────────────────

def _sibling(step: ChainStep) -> str:
    _, pair, child = step
    return pair[1] if child == pair[0] else pair[0]


def bidirectional(
    graph: ElementGraph,
    target: str,
    max_results: Optional[int] = 1,
    single_path: bool = False,
    top_recipes: Optional[Sequence[Recipe]] = None,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    """Meet-in-the-middle search.

    The backward side maps each element to the chain of recipes leading
    down from the target. A backward element meets the forward side once it
    and every sibling ingredient along its chain are forward-known; the
    meeting point reported is the lowest chain element, whose ingredients
    are then all synthesizable. Paths are deduplicated by primitive anchors.
    """
    if target not in graph:
        return SearchResult()
    if graph.is_primitive(target):
        return _primitive_result(graph, target)

    forward: Dict[str, Path] = {}
    forward_queue: Deque[str] = deque()
    backward: Dict[str, Chain] = {target: ()}
    backward_queue: Deque[str] = deque([target])
    visited = 1

    for name in graph.primitives:
        forward[name] = [leaf(graph, name)]
        forward_queue.append(name)
        visited += 1

    result = SearchResult()
    joined: Set[str] = set()
    anchors_seen: Set[Tuple[str, ...]] = set()

    def expand_forward() -> None:
        nonlocal visited
        level = list(forward_queue)
        forward_queue.clear()
        for current in level:
            for recipe in graph.consumes(current):
                if recipe.is_self_referential:
                    continue
                partner = recipe.other(current)
                produced = recipe.result
                if partner not in forward or produced in forward:
                    continue
                first, second = recipe.ingredients
                forward[produced] = merge_paths(forward[first], forward[second]) + [
                    derived(graph, produced, recipe.ingredients)
                ]
                forward_queue.append(produced)
                visited += 1

    def expand_backward() -> None:
        nonlocal visited
        level = list(backward_queue)
        backward_queue.clear()
        for current in level:
            chain = backward[current]
            branch = frozenset(step[0] for step in chain) | {current}
            if current == target and top_recipes is not None:
                recipes = list(top_recipes)
            else:
                recipes = graph.produces(current)
            for recipe in recipes:
                if not _usable(graph, recipe, branch):
                    continue
                for ingredient in recipe.ingredients:
                    if ingredient in backward:
                        continue
                    backward[ingredient] = chain + ((current, recipe.ingredients, ingredient),)
                    visited += 1
                    if not graph.is_primitive(ingredient):
                        backward_queue.append(ingredient)

    def assemble(name: str, chain: Chain) -> Path:
        parts = [forward[name]] + [forward[_sibling(step)] for step in reversed(chain)]
        path = merge_paths(*parts)
        present = {node.element for node in path}
        for element, pair, _ in reversed(chain):
            if element in present:
                continue
            path.append(derived(graph, element, pair))
            present.add(element)
        return path

    def meet() -> bool:
        for name, chain in list(backward.items()):
            if name in joined or name not in forward:
                continue
            if any(_sibling(step) not in forward for step in chain):
                continue
            joined.add(name)
            path = assemble(name, chain)
            anchors = anchor_set(path, graph)
            if anchors in anchors_seen:
                continue
            anchors_seen.add(anchors)
            meeting_point = chain[-1][0] if chain else name
            log.debug("Bidirectional meet for '%s' at '%s' (anchors %s)", target, meeting_point, anchors)
            result.paths.append(path)
            result.meeting_points.append(meeting_point)
            if single_path or limit_reached(len(result.paths), max_results):
                return True
        return False

    done = meet()
    while not done and (forward_queue or backward_queue) and not _halted(cancel):
        if forward_queue and (not backward_queue or len(forward_queue) <= len(backward_queue)):
            expand_forward()
        else:
            expand_backward()
        done = meet()

    result.visited = visited
    return result


# ── Helpers shared by the query layer ──────────────────────

def sort_by_length(paths: Sequence[Path]) -> List[Path]:
    return sorted(paths, key=len)


def distinct_by_anchors(paths: Sequence[Path], graph: ElementGraph) -> List[Path]:
    seen: Set[Tuple[str, ...]] = set()
    out: List[Path] = []
    for path in paths:
        anchors = anchor_set(path, graph)
        if anchors in seen:
            continue
        seen.add(anchors)
        out.append(path)
    return out


def is_sound_forward(path: Sequence[PathNode], graph: ElementGraph) -> bool:
    """Every derived node's ingredients appear before it."""
    seen: Set[str] = set()
    for node in path:
        if node.ingredients:
            if not all(i in seen for i in node.ingredients):
                return False
        elif not graph.is_primitive(node.element) and not graph.is_dead_end(node.element):
            return False
        seen.add(node.element)
    return True
