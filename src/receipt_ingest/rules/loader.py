from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NormalizationRules:
    stopwords: set[str] = field(default_factory=set)
    synonyms: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CategoryRule:
    id: str
    priority: int
    when_any: list[dict]
    then: dict


@dataclass(frozen=True, slots=True)
class CategoriesRules:
    rules: list[CategoryRule] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RuleSet:
    normalization: NormalizationRules = field(default_factory=NormalizationRules)
    categories: CategoriesRules = field(default_factory=CategoriesRules)

    @property
    def is_empty(self) -> bool:
        return not self.categories.rules

    @classmethod
    def load_from_dir(cls, rules_dir: Path) -> "RuleSet":
        normalization = _load_yaml(rules_dir / "normalization.yml")
        categories = _load_yaml(rules_dir / "categories.yml")

        normalization_rules = NormalizationRules(
            stopwords={str(s).casefold() for s in ((normalization or {}).get("stopwords") or [])},
            synonyms={str(k).casefold(): str(v) for k, v in ((normalization or {}).get("synonyms") or {}).items()},
        )

        category_rules = []
        for rule in ((categories or {}).get("rules") or []):
            category_rules.append(
                CategoryRule(
                    id=str(rule["id"]),
                    priority=int(rule.get("priority") or 0),
                    when_any=list(((rule.get("when") or {}).get("any") or [])),
                    then=dict(rule.get("then") or {}),
                )
            )
        category_rules.sort(key=lambda r: r.priority, reverse=True)

        return cls(
            normalization=normalization_rules,
            categories=CategoriesRules(rules=category_rules),
        )

    @classmethod
    def load_if_present(cls, rules_dir: Path) -> "RuleSet":
        if not (rules_dir / "categories.yml").exists():
            logger.info("No category rules in %s; line items get no category hint", rules_dir)
            return cls()
        return cls.load_from_dir(rules_dir)


def _load_yaml(path: Path) -> dict | None:
    if not path.exists():
        return None
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping at {path}, got {type(data).__name__}.")
    return data
