"""
Recipe corpus model, JSON loader and tier validator.

The corpus file is a JSON array of elements:
  {name, image?, localImage?, recipes?: [{ingredients: [a, b]}], tier}

load_corpus() parses it (missing fields default, malformed recipes are
dropped with a warning); validate_tiers() produces the effective corpus
the graph and every search run on.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from constants import DEFAULT_TIER, FORBIDDEN_INGREDIENTS, PRIMITIVE_SET
from errors import CorpusLoadFailure

log = logging.getLogger(__name__)

Corpus = Dict[str, "Element"]


@dataclass(frozen=True, eq=False)
class Recipe:
    """An unordered two-ingredient recipe producing `result`.

    Ingredient order is kept as recorded in the corpus (searches and tree
    builders honour it as a tie-break) but equality ignores it.
    """

    result: str
    ingredients: Tuple[str, str]

    @property
    def key(self) -> Tuple[str, Tuple[str, ...]]:
        return (self.result, tuple(sorted(self.ingredients)))

    @property
    def is_self_referential(self) -> bool:
        return self.result in self.ingredients

    @property
    def has_duplicate_ingredients(self) -> bool:
        return self.ingredients[0] == self.ingredients[1]

    def other(self, ingredient: str) -> str:
        """Return the partner of `ingredient` in this recipe."""
        first, second = self.ingredients
        return second if ingredient == first else first

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Recipe):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True)
class Element:
    name: str
    tier: int = DEFAULT_TIER
    image: str = ""
    local_image: str = ""
    recipes: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def image_ref(self) -> str:
        return self.local_image or self.image

    @property
    def is_primitive(self) -> bool:
        return self.name in PRIMITIVE_SET

    def recipe_objects(self) -> List[Recipe]:
        return [Recipe(result=self.name, ingredients=pair) for pair in self.recipes]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name}
        if self.image:
            payload["image"] = self.image
        if self.local_image:
            payload["localImage"] = self.local_image
        payload["recipes"] = [{"ingredients": list(pair)} for pair in self.recipes]
        payload["tier"] = self.tier
        return payload


# ── Parsing helpers ────────────────────────────────────────

def _require_name(entry: Dict[str, Any], index: int) -> str:
    value = entry.get("name")
    if not isinstance(value, str) or not value.strip():
        raise CorpusLoadFailure(f"elements[{index}].name must be a non-empty string")
    return value.strip()


def _optional_str(entry: Dict[str, Any], key: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip()


def _as_tier(value: Any, name: str) -> int:
    if value is None:
        return DEFAULT_TIER
    if isinstance(value, bool):
        raise CorpusLoadFailure(f"{name}.tier must be an integer")
    try:
        tier = int(value)
    except (TypeError, ValueError):
        raise CorpusLoadFailure(f"{name}.tier must be an integer")
    if tier < 1:
        raise CorpusLoadFailure(f"{name}.tier must be >= 1, got {tier}")
    return tier


def _parse_recipe(raw: Any, name: str) -> Optional[Tuple[str, str]]:
    if not isinstance(raw, dict):
        log.warning("Dropping malformed recipe for '%s': %r", name, raw)
        return None
    ingredients = raw.get("ingredients")
    if (
        not isinstance(ingredients, list)
        or len(ingredients) != 2
        or not all(isinstance(i, str) and i.strip() for i in ingredients)
    ):
        log.warning("Dropping malformed recipe for '%s': ingredients=%r", name, ingredients)
        return None
    return (ingredients[0].strip(), ingredients[1].strip())


def parse_corpus(raw: Any) -> Corpus:
    if not isinstance(raw, list):
        raise CorpusLoadFailure("Corpus root must be an array of elements")

    corpus: Corpus = {}
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise CorpusLoadFailure(f"elements[{index}] must be an object")
        name = _require_name(entry, index)
        if name in corpus:
            raise CorpusLoadFailure(f"Duplicate element name: {name}")

        recipes: List[Tuple[str, str]] = []
        for raw_recipe in entry.get("recipes") or []:
            pair = _parse_recipe(raw_recipe, name)
            if pair is not None:
                recipes.append(pair)

        corpus[name] = Element(
            name=name,
            tier=_as_tier(entry.get("tier"), name),
            image=_optional_str(entry, "image"),
            local_image=_optional_str(entry, "localImage"),
            recipes=tuple(recipes),
        )
    return corpus


def load_corpus(path: Path) -> Corpus:
    if not path.exists():
        raise CorpusLoadFailure(f"Corpus not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CorpusLoadFailure(f"Invalid JSON in {path}: {exc}") from exc
    corpus = parse_corpus(raw)
    log.info("Loaded %d elements from %s", len(corpus), path)
    return corpus


# ── Tier validation ────────────────────────────────────────

def recipe_rejection(corpus: Corpus, result: Element, pair: Tuple[str, str]) -> Optional[str]:
    """Return why `pair` is not an effective recipe for `result`, or None."""
    for ingredient in pair:
        if ingredient in FORBIDDEN_INGREDIENTS:
            return f"forbidden ingredient '{ingredient}'"
        source = corpus.get(ingredient)
        if source is None:
            return f"unknown ingredient '{ingredient}'"
        if source.tier >= result.tier:
            return f"ingredient '{ingredient}' (tier {source.tier}) >= result tier {result.tier}"
    return None


def validate_tiers(corpus: Corpus) -> Corpus:
    """Drop every recipe that breaks tier monotonicity or uses a forbidden ingredient."""
    total = 0
    dropped = 0
    effective: Corpus = {}

    for name, element in corpus.items():
        kept: List[Tuple[str, str]] = []
        for pair in element.recipes:
            total += 1
            reason = recipe_rejection(corpus, element, pair)
            if reason is None:
                kept.append(pair)
                continue
            dropped += 1
            if reason.startswith("unknown"):
                log.warning("Dropping recipe %s + %s -> %s: %s", pair[0], pair[1], name, reason)
            else:
                log.debug("Dropping recipe %s + %s -> %s: %s", pair[0], pair[1], name, reason)
        effective[name] = replace(element, recipes=tuple(kept))

    log.info("Tier validation complete: kept %d of %d recipes (%d dropped)", total - dropped, total, dropped)
    return effective
