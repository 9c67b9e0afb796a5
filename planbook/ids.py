from __future__ import annotations

import re
from string import ascii_uppercase
from typing import Iterable

from .models import Objective, Theme


_THEME_ID_RE = re.compile(r"^[A-Z]{1,3}$")
_SCOPED_ID_RE = re.compile(r"^([A-Z]{1,3})-(?:O|KR|T)\d+$")
_NON_LETTERS = re.compile(r"[^A-Za-z]+")


def is_valid_theme_id(value: str) -> bool:
    return bool(_THEME_ID_RE.match(value or ""))


def extract_theme_abbr(entity_id: str) -> str:
    """Theme prefix of any theme-scoped ID: "CF-KR2" -> "CF", "H" -> "H"."""
    if is_valid_theme_id(entity_id):
        return entity_id
    match = _SCOPED_ID_RE.match(entity_id or "")
    return match.group(1) if match else ""


def suggest_abbreviation(name: str, existing_themes: Iterable[Theme]) -> str:
    existing = {theme.id for theme in existing_themes}
    words = [word for word in (_NON_LETTERS.sub("", raw) for raw in (name or "").split()) if word]
    if not words:
        return "X" if "X" not in existing else _first_free("X", existing)

    if len(words) > 1:
        candidate = "".join(word[0] for word in words[:3]).upper()
        if candidate not in existing:
            return candidate

    upper = words[0].upper()
    for length in range(1, min(3, len(upper)) + 1):
        candidate = upper[:length]
        if candidate not in existing:
            return candidate

    return _first_free(upper[0], existing)


def _first_free(first: str, existing: set[str]) -> str:
    for second in ascii_uppercase:
        candidate = first + second
        if candidate not in existing:
            return candidate
    for second in ascii_uppercase:
        for third in ascii_uppercase:
            candidate = first + second + third
            if candidate not in existing:
                return candidate
    return "X"


def _max_suffix(ids: Iterable[str], pattern: re.Pattern[str]) -> int:
    highest = 0
    for value in ids:
        match = pattern.match(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _walk(objectives: list[Objective]) -> Iterable[Objective]:
    for obj in objectives:
        yield obj
        yield from _walk(obj.objectives)


def assign_tree_ids(theme: Theme) -> Theme:
    """Fill in missing objective/key-result IDs and re-derive every parent_id.

    Counters start from the highest suffix already used inside this theme, so
    each theme numbers independently. Existing IDs are never touched, which
    makes the walk idempotent.
    """

    abbr = theme.id
    obj_re = re.compile(rf"^{re.escape(abbr)}-O(\d+)$")
    kr_re = re.compile(rf"^{re.escape(abbr)}-KR(\d+)$")
    nodes = list(_walk(theme.objectives))
    counters = {
        "O": _max_suffix((obj.id for obj in nodes), obj_re),
        "KR": _max_suffix((kr.id for obj in nodes for kr in obj.key_results), kr_re),
    }

    def visit(parent_id: str, objectives: list[Objective]) -> None:
        for obj in objectives:
            obj.parent_id = parent_id
            if not obj.id:
                counters["O"] += 1
                obj.id = f"{abbr}-O{counters['O']}"
            for kr in obj.key_results:
                kr.parent_id = obj.id
                if not kr.id:
                    counters["KR"] += 1
                    kr.id = f"{abbr}-KR{counters['KR']}"
            visit(obj.id, obj.objectives)

    visit(theme.id, theme.objectives)
    return theme


def next_task_id(theme_id: str, existing_ids: Iterable[str]) -> str:
    pattern = re.compile(rf"^{re.escape(theme_id)}-T(\d+)$")
    return f"{theme_id}-T{_max_suffix(existing_ids, pattern) + 1}"
