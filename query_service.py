"""
Query functions, one per HTTP endpoint.

Every function takes the RecipeStore, validates its inputs, runs the
kernels / builders and returns a JSON-ready dict. Routers stay thin.
"""

import asyncio
import logging
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder

from constants import (
    ALL_TREES_SAFETY_CAP,
    BEST_RECIPES_EXPLORATION_MAX,
    DEFAULT_TREE_COUNT_MAX,
    DISCONNECT_POLL_SECONDS,
    MULTIPLE_RECIPES_EXPLORATION_MAX,
    PATH_ALGORITHMS,
    PATH_COUNT_MAX,
)
from element_graph import ElementGraph
from errors import EncodeFailure, InvalidAlgorithm, MalformedRequest, UnknownElement
from parallel_search import bfs_forward_parallel, bidirectional_parallel, dfs_backward_parallel
from paths import Path, anchor_set, forward_path, path_signature, paths_to_dicts
from recipe_enumerator import distinct_top_level, enumerate_trees
from search_service import SearchResult, bfs_forward, bidirectional, dfs_backward, sort_by_length
from store import RecipeStore
from tree_service import RecipeTree, TreeBuilder, distinct_trees, validate_flavor

log = logging.getLogger(__name__)


# ── Helpers ────────────────────────────────────────────────

def tree_count_max() -> int:
    raw = os.environ.get("TREE_COUNT_MAX", str(DEFAULT_TREE_COUNT_MAX))
    try:
        return max(1, int(raw))
    except ValueError:
        log.warning("Ignoring invalid TREE_COUNT_MAX=%r", raw)
        return DEFAULT_TREE_COUNT_MAX


def clamp(value: Optional[int], low: int, high: int, default: int) -> int:
    if value is None:
        return default
    return max(low, min(high, int(value)))


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


def _require_element(graph: ElementGraph, name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise MalformedRequest("Element name is required")
    if name not in graph:
        raise UnknownElement(name)
    return name


def _path_algorithm(algorithm: str) -> str:
    algo = (algorithm or "").strip().lower()
    if algo not in PATH_ALGORITHMS:
        raise InvalidAlgorithm(algorithm, PATH_ALGORITHMS)
    return algo


def encode_payload(payload: Any) -> Any:
    try:
        return jsonable_encoder(payload)
    except (TypeError, ValueError) as exc:
        log.exception("Failed to encode response payload")
        raise EncodeFailure("Failed to encode response") from exc


def _paths_payload(result: SearchResult, started: float, paths: Optional[Sequence[Path]] = None) -> Dict[str, Any]:
    return {
        "paths": paths_to_dicts(result.paths if paths is None else paths),
        "visited": result.visited,
        "elapsedMs": _elapsed_ms(started),
    }


def _trees_payload(trees: Sequence[RecipeTree], visited: int, started: float, algorithm: str) -> Dict[str, Any]:
    return {
        "trees": [tree.to_dict() for tree in trees],
        "visited": visited,
        "totalTreeNodes": sum(tree.count_nodes() for tree in trees),
        "elapsedMs": _elapsed_ms(started),
        "algorithm": algorithm,
    }


def run_search(
    graph: ElementGraph,
    algorithm: str,
    target: str,
    max_results: int = 1,
    single_path: bool = False,
    multithreaded: bool = False,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    if algorithm == "bfs":
        if multithreaded:
            return bfs_forward_parallel(graph, target, 1 if single_path else max_results, cancel=cancel)
        return bfs_forward(graph, target, max_results, single_path, cancel=cancel)
    if algorithm == "dfs":
        limit = 1 if single_path else max_results
        if multithreaded:
            return dfs_backward_parallel(graph, target, limit, cancel=cancel)
        return dfs_backward(graph, target, limit, cancel=cancel)
    if multithreaded:
        return bidirectional_parallel(graph, target, max_results, single_path, cancel=cancel)
    return bidirectional(graph, target, max_results, single_path, cancel=cancel)


async def run_until_disconnect(request: Request, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run `func(*args, cancel=event, **kwargs)` in the threadpool.

    The event is set as soon as the client disconnects, or when the calling
    handler itself goes away, so every search worker stops early.
    """
    cancel = threading.Event()
    work = asyncio.create_task(run_in_threadpool(func, *args, cancel=cancel, **kwargs))
    try:
        while True:
            done, _ = await asyncio.wait({work}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return work.result()
            if not cancel.is_set() and await request.is_disconnected():
                log.info("Client disconnected, cancelling %s", getattr(func, "__name__", "search"))
                cancel.set()
    finally:
        cancel.set()
        if not work.done():
            work.cancel()


# ── Elements ───────────────────────────────────────────────

def list_elements(store: RecipeStore) -> List[Dict[str, Any]]:
    return [element.to_dict() for element in store.corpus.values()]


def get_element(store: RecipeStore, name: str) -> Dict[str, Any]:
    element = store.corpus.get((name or "").strip())
    if element is None:
        raise UnknownElement(name)
    return element.to_dict()


# ── Paths ──────────────────────────────────────────────────

def find_paths(
    store: RecipeStore,
    algorithm: str,
    target: str,
    max_results: Optional[int] = 1,
    single_path: bool = False,
    multithreaded: bool = False,
    cancel: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    started = time.perf_counter()
    algo = _path_algorithm(algorithm)
    graph = store.graph
    target = _require_element(graph, target)
    limit = clamp(max_results, 1, PATH_COUNT_MAX, 1)

    result = run_search(graph, algo, target, limit, single_path, multithreaded, cancel)
    if multithreaded:
        result.paths = sort_by_length(result.paths)
    log.info("%s search for '%s': %d paths, visited %d", algo, target, len(result.paths), result.visited)

    payload = _paths_payload(result, started)
    if algo == "bidirectional":
        payload["meetingPoints"] = result.meeting_points
    return payload


def multiple_recipes(
    store: RecipeStore, target: str, count: Optional[int] = 5, cancel: Optional[threading.Event] = None
) -> Dict[str, Any]:
    """Paths that rest on different primitive-anchor sets, shortest first to fill up."""
    started = time.perf_counter()
    graph = store.graph
    target = _require_element(graph, target)
    count = clamp(count, 1, PATH_COUNT_MAX, 5)

    result = dfs_backward(graph, target, max_results=min(count * 2, MULTIPLE_RECIPES_EXPLORATION_MAX), cancel=cancel)
    candidates = [forward_path(path) for path in result.paths]

    chosen: List[Path] = []
    used_anchors = set()
    used_signatures = set()
    for path in candidates:
        anchors = anchor_set(path, graph)
        if anchors in used_anchors:
            continue
        used_anchors.add(anchors)
        used_signatures.add(path_signature(path))
        chosen.append(path)
        if len(chosen) >= count:
            break

    if len(chosen) < count:
        for path in sort_by_length(candidates):
            signature = path_signature(path)
            if signature in used_signatures:
                continue
            used_signatures.add(signature)
            chosen.append(path)
            if len(chosen) >= count:
                break

    return _paths_payload(result, started, chosen)


def best_recipes(
    store: RecipeStore, target: str, count: Optional[int] = 1, cancel: Optional[threading.Event] = None
) -> Dict[str, Any]:
    """Shortest distinct paths, ascending by length."""
    started = time.perf_counter()
    graph = store.graph
    target = _require_element(graph, target)
    count = clamp(count, 1, PATH_COUNT_MAX, 1)

    result = dfs_backward(graph, target, max_results=min(count + 5, BEST_RECIPES_EXPLORATION_MAX), cancel=cancel)
    seen = set()
    distinct: List[Path] = []
    for path in result.paths:
        path = forward_path(path)
        signature = path_signature(path)
        if signature in seen:
            continue
        seen.add(signature)
        distinct.append(path)

    return _paths_payload(result, started, sort_by_length(distinct)[:count])


# ── Trees ──────────────────────────────────────────────────

def single_tree(store: RecipeStore, algorithm: str, target: str) -> Dict[str, Any]:
    started = time.perf_counter()
    flavor = validate_flavor(algorithm)
    target = _require_element(store.graph, target)
    builder = TreeBuilder(store.graph, flavor)
    tree = builder.build(target)
    return {
        "tree": tree.to_dict(),
        "visited": builder.visited,
        "elapsedMs": _elapsed_ms(started),
        "algorithm": flavor,
    }


def _trees_from_paths(
    graph: ElementGraph, target: str, paths: Sequence[Path], flavor: str
) -> Tuple[List[RecipeTree], int]:
    builder = TreeBuilder(graph, flavor)
    trees = [builder.from_path(path, target) for path in paths]
    return [tree for tree in trees if tree is not None], builder.visited


def _top_up(trees: List[RecipeTree], extra: Sequence[RecipeTree], count: int) -> List[RecipeTree]:
    return distinct_trees(list(trees) + list(extra), count)


def _leaf_payload(graph: ElementGraph, target: str, started: float, algorithm: str, flavor: str) -> Dict[str, Any]:
    builder = TreeBuilder(graph, flavor)
    return _trees_payload([builder.leaf(target)], builder.visited, started, algorithm)


def multiple_recipes_tree(
    store: RecipeStore,
    target: str,
    count: Optional[int] = 5,
    algorithm: str = "dfs",
    cancel: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """Fully expanded, signature-distinct trees."""
    flavor = validate_flavor(algorithm)
    if flavor == "bfs":
        return bfs_tree(store, target, count, multithreaded=True, cancel=cancel)

    started = time.perf_counter()
    target = _require_element(store.graph, target)
    count = clamp(count, 1, tree_count_max(), 5)
    trees, visited = enumerate_trees(store.graph, target, count, flavor, cancel=cancel)
    return _trees_payload(distinct_trees(trees, count), visited, started, flavor)


def best_recipes_tree(
    store: RecipeStore,
    target: str,
    count: Optional[int] = 1,
    algorithm: str = "bfs",
    cancel: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """One tree per recipe of the target, distinct by direct ingredients."""
    started = time.perf_counter()
    flavor = validate_flavor(algorithm)
    graph = store.graph
    target = _require_element(graph, target)
    count = clamp(count, 1, tree_count_max(), 1)

    if graph.is_primitive(target) or graph.is_dead_end(target):
        return _leaf_payload(graph, target, started, flavor, flavor)

    builder = TreeBuilder(graph, flavor)
    per_recipe = [builder.expand(target, recipe) for recipe in builder.candidates(target)]
    trees = distinct_top_level(per_recipe, count)
    visited = builder.visited

    if len(trees) < count:
        result = run_search(graph, flavor, target, min(count + 5, PATH_COUNT_MAX), cancel=cancel)
        from_paths, built = _trees_from_paths(graph, target, result.paths, flavor)
        visited += result.visited + built
        trees = _top_up(trees, from_paths, count)

    return _trees_payload(trees, visited, started, flavor)


def bfs_tree(
    store: RecipeStore,
    target: str,
    count: Optional[int] = 5,
    multithreaded: bool = False,
    cancel: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    started = time.perf_counter()
    graph = store.graph
    target = _require_element(graph, target)
    count = clamp(count, 1, tree_count_max(), 5)

    if graph.is_primitive(target):
        return _leaf_payload(graph, target, started, "bfs", "bfs")

    if multithreaded:
        result = bfs_forward_parallel(graph, target, count, cancel=cancel)
        result.paths = sort_by_length(result.paths)
    else:
        result = bfs_forward(graph, target, count, cancel=cancel)
    trees, built = _trees_from_paths(graph, target, result.paths, "bfs")
    trees = distinct_trees(trees, count)
    visited = result.visited + built

    if len(trees) < count:
        extra, enumerated = enumerate_trees(graph, target, count, "bfs", cancel=cancel)
        visited += enumerated
        trees = _top_up(trees, extra, count)

    return _trees_payload(trees, visited, started, "bfs")


def parse_tree_count(raw: Optional[str], all_trees: bool = False, default: int = 5) -> Optional[int]:
    """Tree count from a query string; None means every distinct tree."""
    if all_trees:
        return None
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value == "all":
        return None
    try:
        return int(value)
    except ValueError:
        raise MalformedRequest(f"Invalid count '{raw}'. Use a positive integer or 'all'")


def dfs_tree(
    store: RecipeStore, target: str, count: Optional[int] = 5, cancel: Optional[threading.Event] = None
) -> Dict[str, Any]:
    """DFS-flavor trees; count=None enumerates up to the safety cap."""
    started = time.perf_counter()
    target = _require_element(store.graph, target)
    if count is None:
        limit = ALL_TREES_SAFETY_CAP
    else:
        limit = clamp(count, 1, tree_count_max(), 5)
    trees, visited = enumerate_trees(store.graph, target, limit, "dfs", cancel=cancel)
    return _trees_payload(distinct_trees(trees, limit), visited, started, "dfs")


def bidirectional_query(
    store: RecipeStore,
    target: str,
    count: Optional[int] = 1,
    multithreaded: bool = False,
    single: bool = False,
    as_tree: bool = False,
    cancel: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    started = time.perf_counter()
    graph = store.graph
    target = _require_element(graph, target)
    count = clamp(count, 1, PATH_COUNT_MAX, 1)

    if as_tree and graph.is_primitive(target):
        payload = _leaf_payload(graph, target, started, "bidirectional", "bfs")
        payload["meetingPoints"] = [target]
        return payload

    result = run_search(graph, "bidirectional", target, count, single, multithreaded, cancel)
    if not as_tree:
        payload = _paths_payload(result, started)
        payload["meetingPoints"] = result.meeting_points
        return payload

    trees, built = _trees_from_paths(graph, target, result.paths, "bfs")
    payload = _trees_payload(distinct_trees(trees), result.visited + built, started, "bidirectional")
    payload["meetingPoints"] = result.meeting_points
    return payload
