import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from corpus import Corpus, load_corpus, validate_tiers
from element_graph import ElementGraph

APP_DIR = Path(__file__).resolve().parent


def data_dir() -> Path:
    return Path(os.environ.get("DATA_DIR", str(APP_DIR / "data")))


def elements_path() -> Path:
    return Path(os.environ.get("ELEMENTS_PATH", str(data_dir() / "elements.json")))


@dataclass(frozen=True)
class RecipeStore:
    """Raw corpus, effective (tier-validated) corpus and the graph over it."""

    raw: Corpus
    corpus: Corpus
    graph: ElementGraph


def build_store(raw: Corpus) -> RecipeStore:
    effective = validate_tiers(raw)
    return RecipeStore(raw=raw, corpus=effective, graph=ElementGraph(effective))


@lru_cache(maxsize=1)
def load_store() -> RecipeStore:
    return build_store(load_corpus(elements_path()))


def get_store() -> RecipeStore:
    """FastAPI dependency returning the process-wide store."""
    return load_store()
