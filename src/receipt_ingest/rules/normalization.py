from __future__ import annotations

import re
import unicodedata

from .loader import NormalizationRules

_WORD = re.compile(r"[0-9a-z]+")


def item_tokens(name: str) -> list[str]:
    """Split an OCR'd item name into lower-case ascii words.

    Punctuation and symbols ("2%", "/", "-") separate words and are dropped.
    """
    folded = unicodedata.normalize("NFKD", name.casefold())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return _WORD.findall(folded)


def normalize_item_name(name: str, rules: NormalizationRules) -> tuple[str, list[str]]:
    """Return the cleaned item name and its tokens with stopwords removed.

    Store shorthand ("BRD", "MLK") is expanded word by word before matching,
    and the cleaned name keeps every word so regex rules can still see sizes
    and quantities.
    """
    words = _expand_shorthand(item_tokens(name), rules.synonyms)
    return " ".join(words), [w for w in words if w not in rules.stopwords]


def _expand_shorthand(words: list[str], synonyms: dict[str, str]) -> list[str]:
    expanded: list[str] = []
    for word in words:
        replacement = synonyms.get(word)
        expanded.extend(item_tokens(replacement) if replacement else [word])
    return expanded
