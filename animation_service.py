"""
Animation steps for a search, and the paced WebSocket streamer.

plan_animation() runs the chosen kernel for a single path and lays its
elements out as node / link steps:

  bfs            primitives first, derived nodes level by level, links last
  dfs            target first in path order, links between adjacent
                 related nodes inline, the rest appended
  bidirectional  target, primitives, then the remaining nodes alternating
                 from the forward and backward end, links appended
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from fastapi import WebSocket

from constants import DEFAULT_ANIMATION_STEP_DELAY_MS, PATH_ALGORITHMS
from element_graph import ElementGraph
from errors import InvalidAlgorithm, UnknownElement
from paths import Path, leaf, merge_paths
from search_service import bfs_forward, bidirectional, dfs_backward

log = logging.getLogger(__name__)

Link = Tuple[str, str]


def animation_delay_ms(override: Optional[int] = None) -> int:
    if override is not None:
        return max(0, int(override))
    raw = os.environ.get("ANIMATION_STEP_DELAY_MS", str(DEFAULT_ANIMATION_STEP_DELAY_MS))
    try:
        return max(0, int(raw))
    except ValueError:
        log.warning("Ignoring invalid ANIMATION_STEP_DELAY_MS=%r", raw)
        return DEFAULT_ANIMATION_STEP_DELAY_MS


@dataclass
class AnimationPlan:
    algorithm: str
    element: str
    # ("node", name) or ("link", (source, target)), in emission order
    steps: List[Tuple[str, Any]] = field(default_factory=list)
    nodes_visited: int = 0
    image_refs: Dict[str, str] = field(default_factory=dict)
    base_nodes: Set[str] = field(default_factory=set)

    def events(self) -> Iterator[Dict[str, Any]]:
        total = len(self.steps)
        yield {"type": "metadata", "algorithm": self.algorithm, "element": self.element}
        yield {"type": "steps", "totalSteps": total}
        for index, (kind, value) in enumerate(self.steps):
            if kind == "node":
                yield {
                    "type": "node",
                    "node": {"name": value, "imagePath": self.image_refs.get(value, "")},
                    "isBaseNode": value in self.base_nodes,
                    "stepIndex": index + 1,
                    "totalSteps": total,
                }
            else:
                source, target = value
                yield {
                    "type": "link",
                    "link": {"source": source, "target": target},
                    "stepIndex": index + 1,
                    "totalSteps": total,
                }
        yield {"type": "complete", "nodesVisited": self.nodes_visited}


def _recipe_links(path: Path) -> List[Link]:
    links: List[Link] = []
    seen: Set[Link] = set()
    for node in path:
        if not node.ingredients:
            continue
        for ingredient in node.ingredients:
            link = (ingredient, node.element)
            if link not in seen:
                seen.add(link)
                links.append(link)
    return links


def _bfs_steps(graph: ElementGraph, path: Path) -> List[Tuple[str, Any]]:
    levels: Dict[str, int] = {name: 0 for name in graph.primitives}
    for node in path:
        if node.element in levels:
            continue
        if node.ingredients:
            levels[node.element] = 1 + max(levels.get(i, 0) for i in node.ingredients)
        else:
            levels[node.element] = 1

    derived = [(levels[node.element], index, node.element)
               for index, node in enumerate(path) if not graph.is_primitive(node.element)]
    steps: List[Tuple[str, Any]] = [("node", name) for name in graph.primitives]
    steps.extend(("node", name) for _, _, name in sorted(derived))
    steps.extend(("link", link) for link in _recipe_links(path))
    return steps


def _dfs_steps(path: Path) -> List[Tuple[str, Any]]:
    recipes: Dict[str, Tuple[str, str]] = {}
    for node in path:
        if node.ingredients and node.element not in recipes:
            recipes[node.element] = node.ingredients

    steps: List[Tuple[str, Any]] = []
    emitted: Set[Link] = set()
    previous: Optional[str] = None
    for node in merge_paths(path):
        name = node.element
        steps.append(("node", name))
        if previous is not None:
            if name in recipes.get(previous, ()):
                link = (name, previous)
            elif previous in recipes.get(name, ()):
                link = (previous, name)
            else:
                link = None
            if link is not None and link not in emitted:
                emitted.add(link)
                steps.append(("link", link))
        previous = name

    steps.extend(("link", link) for link in _recipe_links(path) if link not in emitted)
    return steps


def _bidirectional_steps(graph: ElementGraph, target: str, path: Path) -> List[Tuple[str, Any]]:
    order: List[str] = [target]
    order.extend(name for name in graph.primitives if name != target)
    placed = set(order)

    remaining = [node.element for node in path if node.element not in placed]
    front, back = 0, len(remaining) - 1
    take_front = True
    while front <= back:
        if take_front:
            name = remaining[front]
            front += 1
        else:
            name = remaining[back]
            back -= 1
        take_front = not take_front
        if name not in placed:
            placed.add(name)
            order.append(name)

    steps: List[Tuple[str, Any]] = [("node", name) for name in order]
    steps.extend(("link", link) for link in _recipe_links(path))
    return steps


def plan_animation(
    graph: ElementGraph, target: str, algorithm: str = "bfs", cancel: Optional[threading.Event] = None
) -> AnimationPlan:
    algo = (algorithm or "").strip().lower()
    if algo not in PATH_ALGORITHMS:
        raise InvalidAlgorithm(algorithm, PATH_ALGORITHMS)
    if target not in graph:
        raise UnknownElement(target)

    if algo == "bfs":
        result = bfs_forward(graph, target, 1, single_path=True, cancel=cancel)
    elif algo == "dfs":
        result = dfs_backward(graph, target, 1, cancel=cancel)
    else:
        result = bidirectional(graph, target, 1, single_path=True, cancel=cancel)
    path = result.paths[0] if result.paths else [leaf(graph, target)]

    if algo == "bfs":
        steps = _bfs_steps(graph, path)
    elif algo == "dfs":
        steps = _dfs_steps(path)
    else:
        steps = _bidirectional_steps(graph, target, path)

    names = {value for kind, value in steps if kind == "node"}
    return AnimationPlan(
        algorithm=algo,
        element=target,
        steps=steps,
        nodes_visited=result.visited,
        image_refs={name: graph.image_ref(name) for name in names},
        base_nodes={name for name in names if graph.is_primitive(name)},
    )


async def stream_animation(
    websocket: WebSocket, plan: AnimationPlan, delay_ms: int, cancel: Optional[threading.Event] = None
) -> int:
    """Send every event of `plan`, pausing `delay_ms` after each node or link.

    Stops early once `cancel` is set.
    """
    sent = 0
    delay = delay_ms / 1000.0
    for event in plan.events():
        if cancel is not None and cancel.is_set():
            break
        await websocket.send_json(event)
        sent += 1
        if delay > 0 and event["type"] in ("node", "link"):
            await asyncio.sleep(delay)
    return sent
