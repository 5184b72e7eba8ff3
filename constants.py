"""
Canonical shared constants for the alchemy recipe finder.

Search kernels, tree builders and the query layer all read from here;
this module is the single source of truth.
"""

from typing import FrozenSet, List, Tuple

# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------

PRIMITIVES: Tuple[str, ...] = ("Water", "Fire", "Earth", "Air")
PRIMITIVE_SET: FrozenSet[str] = frozenset(PRIMITIVES)

# Ingredients that can never appear in an effective recipe.
FORBIDDEN_INGREDIENTS: FrozenSet[str] = frozenset({"Time"})

DEFAULT_TIER = 1

# ---------------------------------------------------------------------------
# Algorithms
# ---------------------------------------------------------------------------

PATH_ALGORITHMS: List[str] = ["bfs", "dfs", "bidirectional"]
TREE_ALGORITHMS: List[str] = ["bfs", "dfs"]

# ---------------------------------------------------------------------------
# Caps
# ---------------------------------------------------------------------------

PATH_COUNT_MAX = 10
DEFAULT_TREE_COUNT_MAX = 5

# Explicit `count=all` on the DFS tree endpoint still stops here.
ALL_TREES_SAFETY_CAP = 1000

# Recursive recipe enumeration never descends deeper than this.
ENUMERATION_MAX_DEPTH = 3

# Exploration limits used by the diverse/best path endpoints.
MULTIPLE_RECIPES_EXPLORATION_MAX = 20
BEST_RECIPES_EXPLORATION_MAX = 20

DEFAULT_ANIMATION_STEP_DELAY_MS = 50

# How often a running HTTP search checks whether its client is still there.
DISCONNECT_POLL_SECONDS = 0.1
