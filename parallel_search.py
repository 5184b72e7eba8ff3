"""
Multi-threaded variants of the search kernels.

Workers share one visited map and one path map behind a single lock and
push found paths onto a bounded queue.Queue; a threading.Event tells every
worker to stop once the queue is full or the caller cancels. Delivery order
between workers is not deterministic, callers sort or deduplicate.
"""

import logging
import queue
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

from element_graph import ElementGraph
from errors import InternalSearchFailure
from paths import Path, anchor_set, derived, leaf, merge_paths, path_signature
from search_service import SearchResult, bidirectional, dfs_backward

log = logging.getLogger(__name__)


class _SearchRun:
    """Shared state for one parallel search."""

    def __init__(self, max_results: Optional[int], cancel: Optional[threading.Event]) -> None:
        bounded = max_results is not None and max_results > 0
        self.found: "queue.Queue[Tuple[Path, str]]" = queue.Queue(maxsize=max_results if bounded else 0)
        self.stop = threading.Event()
        self.cancel = cancel
        self.lock = threading.Lock()
        self.visited = 0

    def halted(self) -> bool:
        return self.stop.is_set() or (self.cancel is not None and self.cancel.is_set())

    # The sequential kernels poll this run as their cancel signal.
    is_set = halted

    def offer(self, path: Path, meeting_point: str = "") -> bool:
        """Queue a found path; False once the channel is full."""
        try:
            self.found.put_nowait((path, meeting_point))
        except queue.Full:
            self.stop.set()
            return False
        if self.found.full():
            self.stop.set()
        return True

    def drain(self) -> List[Tuple[Path, str]]:
        items: List[Tuple[Path, str]] = []
        while True:
            try:
                items.append(self.found.get_nowait())
            except queue.Empty:
                return items


def _run_workers(name: str, target: str, jobs: List[Callable[[], None]]) -> None:
    if not jobs:
        return
    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix=f"{name}-search") as pool:
        futures = [pool.submit(job) for job in jobs]
        failure: Optional[BaseException] = None
        for future in futures:
            exc = future.exception()
            if exc is not None and failure is None:
                failure = exc
    if failure is not None:
        log.error("%s worker failed while searching '%s'", name, target, exc_info=failure)
        raise InternalSearchFailure(f"{name} search failed for '{target}'") from failure


# ── Parallel forward BFS ───────────────────────────────────

def bfs_forward_parallel(
    graph: ElementGraph,
    target: str,
    max_results: Optional[int] = 1,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    """One worker per primitive, each draining a private queue.

    An element is queued only by the worker that first inserted it into the
    shared path map, so every element enters a frontier once.
    """
    if target not in graph:
        return SearchResult()
    if graph.is_primitive(target):
        return SearchResult(paths=[[leaf(graph, target)]], visited=1)

    run = _SearchRun(max_results, cancel)
    path_map: Dict[str, Path] = {}
    target_derivations: Set[Tuple[str, ...]] = set()
    for name in graph.primitives:
        path_map[name] = [leaf(graph, name)]
        run.visited += 1

    def worker(start: str) -> None:
        own: Deque[str] = deque([start])
        while own and not run.halted():
            current = own.popleft()
            for recipe in graph.consumes(current):
                if run.halted():
                    return
                if recipe.is_self_referential:
                    continue
                produced = recipe.result
                is_target = produced == target
                with run.lock:
                    partner = recipe.other(current)
                    if partner not in path_map:
                        continue
                    if produced in path_map and not is_target:
                        continue
                    if is_target:
                        key = tuple(sorted(recipe.ingredients))
                        if key in target_derivations:
                            continue
                        target_derivations.add(key)
                    first, second = recipe.ingredients
                    path = merge_paths(path_map[first], path_map[second]) + [
                        derived(graph, produced, recipe.ingredients)
                    ]
                    fresh = produced not in path_map
                    if fresh:
                        path_map[produced] = path
                        run.visited += 1
                if fresh:
                    own.append(produced)
                if is_target and not run.offer(path):
                    return

    _run_workers("bfs", target, [lambda start=start: worker(start) for start in graph.primitives])
    paths = [path for path, _ in run.drain()]
    return SearchResult(paths=paths, visited=run.visited)


# ── Parallel backward DFS ──────────────────────────────────

def dfs_backward_parallel(
    graph: ElementGraph,
    target: str,
    max_results: Optional[int] = 1,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    """One worker per top-level recipe of the target."""
    if target not in graph:
        return SearchResult()
    if graph.is_primitive(target):
        return SearchResult(paths=[[leaf(graph, target)]], visited=1)

    run = _SearchRun(max_results, cancel)
    seen: Set[str] = set()

    def worker(recipe) -> None:
        partial = dfs_backward(graph, target, max_results=max_results, recipes=[recipe], cancel=run)
        with run.lock:
            run.visited += partial.visited
        for path in partial.paths:
            with run.lock:
                signature = path_signature(path)
                if signature in seen:
                    continue
                seen.add(signature)
            if not run.offer(path):
                return

    _run_workers("dfs", target, [lambda recipe=recipe: worker(recipe) for recipe in graph.produces(target)])
    paths = [path for path, _ in run.drain()]
    return SearchResult(paths=paths, visited=max(run.visited, 1))


# ── Parallel bidirectional ─────────────────────────────────

def bidirectional_parallel(
    graph: ElementGraph,
    target: str,
    max_results: Optional[int] = 1,
    single_path: bool = False,
    cancel: Optional[threading.Event] = None,
) -> SearchResult:
    """One bidirectional search per top-level recipe, merged by primitive anchors."""
    if target not in graph:
        return SearchResult()
    if graph.is_primitive(target):
        return SearchResult(paths=[[leaf(graph, target)]], visited=1, meeting_points=[target])

    limit = 1 if single_path else max_results
    run = _SearchRun(limit, cancel)
    anchors_seen: Set[Tuple[str, ...]] = set()

    def worker(recipe) -> None:
        partial = bidirectional(graph, target, max_results=limit, top_recipes=[recipe], cancel=run)
        with run.lock:
            run.visited += partial.visited
        for path, meeting_point in zip(partial.paths, partial.meeting_points):
            with run.lock:
                anchors = anchor_set(path, graph)
                if anchors in anchors_seen:
                    continue
                anchors_seen.add(anchors)
            if not run.offer(path, meeting_point):
                return

    _run_workers("bidirectional", target, [lambda recipe=recipe: worker(recipe) for recipe in graph.produces(target)])
    items = run.drain()
    return SearchResult(
        paths=[path for path, _ in items],
        visited=max(run.visited, 1),
        meeting_points=[meeting for _, meeting in items],
    )
