"""
Shared pytest fixtures for the recipe finder tests.

Provides:
  - A small corpus written to a temp file and exported via ELEMENTS_PATH
  - Store / graph fixtures built from that corpus
  - FastAPI TestClient
  - Soundness checkers for paths and trees
"""

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so we can import app modules
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def _element(name: str, tier: int, *recipes: List[str]) -> Dict[str, Any]:
    return {
        "name": name,
        "localImage": f"images/{name}.svg",
        "recipes": [{"ingredients": list(pair)} for pair in recipes],
        "tier": tier,
    }


# The minimal corpus the scenarios are phrased against, plus a few
# elements with several recipes, dropped recipes and dead ends.
TEST_CORPUS: List[Dict[str, Any]] = [
    {"name": "Water", "recipes": [], "tier": 1},
    {"name": "Fire", "image": "https://example.org/Fire.svg", "tier": 1},
    {"name": "Earth", "recipes": [], "tier": 1},
    {"name": "Air", "recipes": [], "tier": 1},
    _element("Steam", 2, ["Water", "Fire"]),
    _element("Lava", 2, ["Fire", "Earth"]),
    _element("Energy", 2, ["Fire", "Air"]),
    _element("Stone", 3, ["Lava", "Air"]),
    _element("Brick", 4, ["Stone", "Fire"]),
    _element("Mud", 2, ["Water", "Earth"]),
    _element("Rain", 2, ["Water", "Air"]),
    _element("Pressure", 2, ["Air", "Air"]),
    _element("Plant", 3, ["Mud", "Energy"], ["Rain", "Earth"]),
    _element("Swamp", 4, ["Mud", "Plant"], ["Rain", "Plant"]),
    # Steam has the same tier as Fog: only Water + Air survives.
    _element("Fog", 2, ["Steam", "Air"], ["Water", "Air"]),
    _element("Time", 2, ["Fire", "Air"]),
    # Time is never a valid ingredient: Clock ends up without recipes.
    _element("Clock", 5, ["Time", "Brick"]),
    # Spirit is not in the corpus.
    _element("Ghost", 3, ["Spirit", "Air"]),
    {"name": "Broken", "recipes": [{"ingredients": ["Water"]}, "junk", {"ingredients": ["Water", "Earth"]}], "tier": 3},
]

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="recipes_test_")
_TEST_ELEMENTS_PATH = Path(_TEST_DATA_DIR) / "elements.json"
_TEST_ELEMENTS_PATH.write_text(json.dumps(TEST_CORPUS), encoding="utf-8")

os.environ["DATA_DIR"] = _TEST_DATA_DIR
os.environ["ELEMENTS_PATH"] = str(_TEST_ELEMENTS_PATH)
os.environ["ANIMATION_STEP_DELAY_MS"] = "0"
os.environ.setdefault("TREE_COUNT_MAX", "5")


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def store():
    from store import load_store
    return load_store()


@pytest.fixture(scope="session")
def graph(store):
    return store.graph


@pytest.fixture()
def corpus_file(tmp_path):
    """Write an arbitrary corpus to a temp file and return its path."""
    def _write(raw: Any) -> Path:
        path = tmp_path / "elements.json"
        path.write_text(raw if isinstance(raw, str) else json.dumps(raw), encoding="utf-8")
        return path
    return _write


# ---------------------------------------------------------------------------
# FastAPI TestClient
# ---------------------------------------------------------------------------

@pytest.fixture()
def client():
    """Return a Starlette TestClient wired to the FastAPI app."""
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Soundness helpers
# ---------------------------------------------------------------------------

class Checks:
    """Assertions shared by kernel, tree and API tests."""

    @staticmethod
    def forward_sound(graph, path) -> bool:
        """Each derived node's ingredients occur earlier in the path."""
        seen = set()
        for node in path:
            if node.ingredients:
                if not all(i in seen for i in node.ingredients):
                    return False
                if sorted(node.ingredients) not in [sorted(r.ingredients) for r in graph.produces(node.element)]:
                    return False
            elif not graph.is_primitive(node.element):
                return False
            seen.add(node.element)
        return True

    @staticmethod
    def backward_sound(graph, path) -> bool:
        """Target first; each derived node's ingredients occur later in the path."""
        names = [node.element for node in path]
        for index, node in enumerate(path):
            if node.ingredients:
                if not all(i in names[index + 1:] for i in node.ingredients):
                    return False
            elif not graph.is_primitive(node.element):
                return False
        return True

    @staticmethod
    def tree_sound(graph, tree: Dict[str, Any], ancestors=frozenset()) -> bool:
        """Children match a recipe and no element repeats on a root-to-leaf walk."""
        name = tree["name"]
        if name in ancestors:
            return False
        children = tree.get("ingredients") or []
        if tree.get("isCircularReference") or tree.get("noRecipe"):
            return not children
        if not children:
            return graph.is_primitive(name) or bool(tree.get("isBaseElement"))
        recipes = [sorted(r.ingredients) for r in graph.produces(name)]
        if sorted(child["name"] for child in children) not in recipes:
            return False
        return all(Checks.tree_sound(graph, child, ancestors | {name}) for child in children)

    @staticmethod
    def tree_nodes(tree: Dict[str, Any]) -> List[Dict[str, Any]]:
        out = [tree]
        for child in tree.get("ingredients") or []:
            out.extend(Checks.tree_nodes(child))
        return out


@pytest.fixture()
def checks() -> Checks:
    return Checks()
