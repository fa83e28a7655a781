from __future__ import annotations

import re

from ..models import LineItem
from .loader import CategoriesRules, CategoryRule, RuleSet
from .normalization import normalize_item_name


def categorize(name_clean: str, tokens: list[str], rules: CategoriesRules) -> str | None:
    for rule in rules.rules:
        if _matches(rule, name_clean, tokens):
            return str(rule.then.get("category") or "other")
    return None


def assign_category_hints(items: list[LineItem], ruleset: RuleSet) -> list[LineItem]:
    if ruleset.is_empty:
        return items

    hinted: list[LineItem] = []
    for item in items:
        if item.category:
            hinted.append(item)
            continue
        name_clean, tokens = normalize_item_name(item.name, ruleset.normalization)
        category = categorize(name_clean, tokens, ruleset.categories)
        hinted.append(item.model_copy(update={"category": category}) if category else item)
    return hinted


def _matches(rule: CategoryRule, name_clean: str, tokens: list[str]) -> bool:
    for condition in rule.when_any:
        if "regex" in condition and _matches_regex(str(condition["regex"]), name_clean):
            return True
        if "contains_any" in condition and _matches_contains_any(list(condition["contains_any"]), name_clean, tokens):
            return True
    return False


def _matches_regex(pattern: str, name_clean: str) -> bool:
    return re.search(pattern, name_clean) is not None


def _matches_contains_any(values: list[str], name_clean: str, tokens: list[str]) -> bool:
    token_set = set(tokens)
    for value in values:
        v = str(value).casefold()
        if v in token_set:
            return True
        if v and " " in v and v in name_clean:
            return True
    return False
