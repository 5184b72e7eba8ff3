"""
Corpus loader and tier validator tests.
"""

import pytest

from corpus import Element, Recipe, load_corpus, parse_corpus, recipe_rejection, validate_tiers
from errors import CorpusLoadFailure


class TestRecipe:
    def test_equality_ignores_ingredient_order(self):
        assert Recipe("Steam", ("Water", "Fire")) == Recipe("Steam", ("Fire", "Water"))
        assert len({Recipe("Steam", ("Water", "Fire")), Recipe("Steam", ("Fire", "Water"))}) == 1

    def test_different_result_is_different_recipe(self):
        assert Recipe("Steam", ("Water", "Fire")) != Recipe("Fog", ("Water", "Fire"))

    def test_other_ingredient(self):
        recipe = Recipe("Stone", ("Lava", "Air"))
        assert recipe.other("Lava") == "Air"
        assert recipe.other("Air") == "Lava"
        assert Recipe("Pressure", ("Air", "Air")).other("Air") == "Air"

    def test_self_referential(self):
        assert Recipe("Sea", ("Sea", "Water")).is_self_referential
        assert not Recipe("Sea", ("Water", "Water")).is_self_referential


class TestParseCorpus:
    def test_missing_fields_default(self):
        corpus = parse_corpus([{"name": "Water"}])
        water = corpus["Water"]
        assert water.tier == 1
        assert water.recipes == ()
        assert water.image_ref == ""

    def test_image_ref_prefers_local_image(self):
        corpus = parse_corpus([
            {"name": "A", "image": "http://x/a.svg", "localImage": "images/a.svg"},
            {"name": "B", "image": "http://x/b.svg"},
        ])
        assert corpus["A"].image_ref == "images/a.svg"
        assert corpus["B"].image_ref == "http://x/b.svg"

    def test_malformed_recipes_dropped(self, caplog):
        corpus = parse_corpus([{
            "name": "Mud",
            "tier": 2,
            "recipes": [{"ingredients": ["Water"]}, "junk", {"ingredients": ["Water", ""]}, {"ingredients": ["Water", "Earth"]}],
        }])
        assert corpus["Mud"].recipes == (("Water", "Earth"),)
        assert "Dropping malformed recipe" in caplog.text

    def test_duplicate_name_rejected(self):
        with pytest.raises(CorpusLoadFailure, match="Duplicate"):
            parse_corpus([{"name": "Water"}, {"name": "Water"}])

    @pytest.mark.parametrize("raw", [
        {"name": "Water"},
        [{"tier": 1}],
        [{"name": "Water", "tier": 0}],
        [{"name": "Water", "tier": "high"}],
        ["Water"],
    ])
    def test_invalid_shapes_rejected(self, raw):
        with pytest.raises(CorpusLoadFailure):
            parse_corpus(raw)

    def test_to_dict_omits_empty_images(self):
        payload = Element(name="Water").to_dict()
        assert payload == {"name": "Water", "recipes": [], "tier": 1}


class TestLoadCorpus:
    def test_missing_file(self, tmp_path):
        with pytest.raises(CorpusLoadFailure, match="not found"):
            load_corpus(tmp_path / "nope.json")

    def test_invalid_json(self, corpus_file):
        with pytest.raises(CorpusLoadFailure, match="Invalid JSON"):
            load_corpus(corpus_file("[{"))

    def test_loads_array(self, corpus_file):
        corpus = load_corpus(corpus_file([{"name": "Water"}, {"name": "Steam", "tier": 2, "recipes": [{"ingredients": ["Water", "Water"]}]}]))
        assert list(corpus) == ["Water", "Steam"]

    def test_load_failure_is_value_error(self, tmp_path):
        with pytest.raises(ValueError):
            load_corpus(tmp_path / "nope.json")


class TestTierValidation:
    def _corpus(self):
        return parse_corpus([
            {"name": "Water"}, {"name": "Fire"}, {"name": "Air"},
            {"name": "Steam", "tier": 2, "recipes": [{"ingredients": ["Water", "Fire"]}]},
            {"name": "Fog", "tier": 2, "recipes": [{"ingredients": ["Steam", "Air"]}, {"ingredients": ["Water", "Air"]}]},
            {"name": "Time", "tier": 2, "recipes": [{"ingredients": ["Fire", "Air"]}]},
            {"name": "Clock", "tier": 3, "recipes": [{"ingredients": ["Time", "Fire"]}]},
            {"name": "Ghost", "tier": 3, "recipes": [{"ingredients": ["Spirit", "Air"]}]},
        ])

    def test_equal_tier_dropped(self):
        effective = validate_tiers(self._corpus())
        assert effective["Fog"].recipes == (("Water", "Air"),)

    def test_forbidden_ingredient_dropped(self):
        effective = validate_tiers(self._corpus())
        assert effective["Clock"].recipes == ()
        # Time itself remains a valid element.
        assert effective["Time"].recipes == (("Fire", "Air"),)

    def test_unknown_ingredient_dropped_with_warning(self, caplog):
        effective = validate_tiers(self._corpus())
        assert effective["Ghost"].recipes == ()
        assert "unknown ingredient 'Spirit'" in caplog.text

    def test_rejection_reasons(self):
        corpus = self._corpus()
        assert recipe_rejection(corpus, corpus["Steam"], ("Water", "Fire")) is None
        assert "forbidden" in recipe_rejection(corpus, corpus["Clock"], ("Time", "Fire"))
        assert "tier" in recipe_rejection(corpus, corpus["Fog"], ("Steam", "Air"))

    def test_effective_corpus_is_monotone(self, store):
        for element in store.corpus.values():
            for pair in element.recipes:
                assert "Time" not in pair
                for ingredient in pair:
                    assert store.corpus[ingredient].tier < element.tier

    def test_raw_corpus_untouched(self, store):
        assert store.raw["Clock"].recipes == (("Time", "Brick"),)
        assert store.corpus["Clock"].recipes == ()
