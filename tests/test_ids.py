from __future__ import annotations

import unittest

from planbook.ids import (
    assign_tree_ids,
    extract_theme_abbr,
    is_valid_theme_id,
    next_task_id,
    suggest_abbreviation,
)
from planbook.models import KeyResult, Objective, Theme, record_from_theme


def _themes(*ids: str) -> list[Theme]:
    return [Theme(id=theme_id, name=theme_id) for theme_id in ids]


class TestSuggestAbbreviation(unittest.TestCase):
    def test_single_word_uses_shortest_free_prefix(self) -> None:
        self.assertEqual("H", suggest_abbreviation("Health", []))
        self.assertEqual("HE", suggest_abbreviation("Health", _themes("H")))
        self.assertEqual("HEA", suggest_abbreviation("Health", _themes("H", "HE")))

    def test_multi_word_prefers_initials(self) -> None:
        self.assertEqual("CF", suggest_abbreviation("Career Focus", []))
        self.assertEqual("PHF", suggest_abbreviation("Personal Health Fitness", []))

    def test_multi_word_falls_back_to_first_word_prefixes(self) -> None:
        self.assertEqual("C", suggest_abbreviation("Career Focus", _themes("CF")))
        self.assertEqual("CA", suggest_abbreviation("Career Focus", _themes("CF", "C")))

    def test_exhausted_prefixes_use_letter_combinations(self) -> None:
        self.assertEqual("HA", suggest_abbreviation("Health", _themes("H", "HE", "HEA")))
        self.assertEqual("HB", suggest_abbreviation("Health", _themes("H", "HE", "HEA", "HA")))

    def test_non_letters_are_ignored(self) -> None:
        self.assertEqual("LG", suggest_abbreviation("Learning & Growth", []))
        self.assertEqual("F", suggest_abbreviation("  2025 finances!  ", []))

    def test_empty_name_falls_back_to_x(self) -> None:
        self.assertEqual("X", suggest_abbreviation("", []))
        self.assertEqual("X", suggest_abbreviation("123", []))

    def test_suggestion_is_deterministic(self) -> None:
        existing = _themes("H", "HE")
        first = suggest_abbreviation("Health", existing)
        self.assertEqual(first, suggest_abbreviation("Health", existing))


class TestThemeIdHelpers(unittest.TestCase):
    def test_valid_theme_ids(self) -> None:
        self.assertTrue(is_valid_theme_id("H"))
        self.assertTrue(is_valid_theme_id("ABC"))
        self.assertFalse(is_valid_theme_id("ABCD"))
        self.assertFalse(is_valid_theme_id("h"))
        self.assertFalse(is_valid_theme_id(""))

    def test_extract_theme_abbr(self) -> None:
        self.assertEqual("CF", extract_theme_abbr("CF-KR2"))
        self.assertEqual("H", extract_theme_abbr("H-O3"))
        self.assertEqual("H", extract_theme_abbr("H-T12"))
        self.assertEqual("H", extract_theme_abbr("H"))
        self.assertEqual("", extract_theme_abbr("not-an-id"))


class TestAssignTreeIds(unittest.TestCase):
    def _tree(self) -> Theme:
        child = Objective(title="Build base")
        root = Objective(
            title="Run a marathon",
            key_results=[KeyResult(description="Run 10k", target_value=1)],
            objectives=[child],
        )
        return Theme(id="H", name="Health", objectives=[root])

    def test_assigns_theme_scoped_ids_depth_first(self) -> None:
        theme = assign_tree_ids(self._tree())
        root = theme.objectives[0]
        child = root.objectives[0]
        self.assertEqual("H-O1", root.id)
        self.assertEqual("H-KR1", root.key_results[0].id)
        self.assertEqual("H-O2", child.id)

    def test_parent_ids_follow_structure(self) -> None:
        theme = self._tree()
        theme.objectives[0].parent_id = "WRONG"
        theme.objectives[0].key_results[0].parent_id = "ALSO-WRONG"
        assign_tree_ids(theme)
        root = theme.objectives[0]
        self.assertEqual("H", root.parent_id)
        self.assertEqual(root.id, root.key_results[0].parent_id)
        self.assertEqual(root.id, root.objectives[0].parent_id)

    def test_rerun_is_idempotent(self) -> None:
        theme = assign_tree_ids(self._tree())
        before = record_from_theme(theme)
        assign_tree_ids(theme)
        self.assertEqual(before, record_from_theme(theme))

    def test_counters_seed_from_existing_max_within_theme(self) -> None:
        theme = Theme(
            id="H",
            name="Health",
            objectives=[
                Objective(id="H-O5", title="Existing", key_results=[KeyResult(id="H-KR9", description="kept")]),
                Objective(title="New", key_results=[KeyResult(description="fresh")]),
            ],
        )
        assign_tree_ids(theme)
        self.assertEqual("H-O5", theme.objectives[0].id)
        self.assertEqual("H-KR9", theme.objectives[0].key_results[0].id)
        self.assertEqual("H-O6", theme.objectives[1].id)
        self.assertEqual("H-KR10", theme.objectives[1].key_results[0].id)

    def test_foreign_prefixes_do_not_advance_counters(self) -> None:
        theme = Theme(
            id="C",
            name="Career",
            objectives=[Objective(id="H-O40", title="Imported"), Objective(title="New")],
        )
        assign_tree_ids(theme)
        self.assertEqual("H-O40", theme.objectives[0].id)
        self.assertEqual("C-O1", theme.objectives[1].id)


class TestNextTaskId(unittest.TestCase):
    def test_next_task_id_scans_theme_ids_only(self) -> None:
        self.assertEqual("H-T8", next_task_id("H", ["H-T1", "H-T7", "C-T9", "HX-T20"]))

    def test_first_task_id(self) -> None:
        self.assertEqual("H-T1", next_task_id("H", []))


if __name__ == "__main__":
    unittest.main()
