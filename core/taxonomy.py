"""
taxonomy.py
------------
Category taxonomy and keyword classifier.

Loads the categories block from config.yaml: the closed label sets, the
ordered keyword table, the income keyword list, the parent groups used for
reporting, and the legacy label map. The classifier is a plain
first-match-wins substring scan; table order in the YAML is match priority.

Taxonomy updates happen in config.yaml; no code changes required.
"""

from typing import Dict, List, Optional

from config.config_loader import get_category_config


DEFAULT_CATEGORY = "Other"


class CategoryClassifier:
    """
    Keyword-driven category and income/expense classifier.

    Tables are injected at construction (defaulting to config) and never
    mutated afterwards, so one instance can be shared freely.
    """

    def __init__(
        self,
        keywords: Optional[Dict[str, List[str]]] = None,
        income_keywords: Optional[List[str]] = None,
        groups: Optional[Dict[str, List[str]]] = None,
        legacy_map: Optional[Dict[str, str]] = None,
    ):
        config = get_category_config()
        self._keywords = tuple(
            (category, tuple(k.lower() for k in words))
            for category, words in (keywords if keywords is not None else config["keywords"]).items()
        )
        self._income_keywords = tuple(
            k.lower() for k in (income_keywords if income_keywords is not None else config["income_keywords"])
        )
        self._group_index: Dict[str, str] = {}
        for group, categories in (groups if groups is not None else config["groups"]).items():
            for category in categories:
                self._group_index.setdefault(category, group)
        self._legacy_map = dict(legacy_map if legacy_map is not None else config["legacy_map"])

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect_category(self, text: Optional[str]) -> str:
        """
        Returns the first category whose keyword appears in the text, or
        "Other" when nothing matches.
        """
        lower_text = (text or "").lower()
        for category, words in self._keywords:
            if any(word in lower_text for word in words):
                return category
        return DEFAULT_CATEGORY

    def detect_type(self, amount: float | None, text: Optional[str] = None) -> str:
        """
        Returns "income" if the text carries an income keyword, else "expense".

        The amount's sign is deliberately not consulted: exports disagree on
        whether a negative amount is a charge or a credit.
        """
        if text:
            lower_text = text.lower()
            if any(keyword in lower_text for keyword in self._income_keywords):
                return "income"
        return "expense"

    def category_group(self, category: str) -> str:
        """Parent reporting group for a category, "Other" if ungrouped."""
        return self._group_index.get(category, DEFAULT_CATEGORY)

    def migrate_legacy_category(self, category: Optional[str]) -> str:
        """Maps a pre-expansion label (e.g. "Food", "Bills") to its current name."""
        if not category:
            return DEFAULT_CATEGORY
        return self._legacy_map.get(category, category)

    @property
    def categories(self) -> list[str]:
        """Categories in match-priority order."""
        return [category for category, _ in self._keywords]

    def __len__(self) -> int:
        return len(self._keywords)

    def __repr__(self) -> str:
        return f"CategoryClassifier(categories={len(self)}, income_keywords={len(self._income_keywords)})"


def expense_categories() -> list[str]:
    """The closed set of expense labels."""
    return list(get_category_config()["expense"])


def income_categories() -> list[str]:
    """The closed set of income labels."""
    return list(get_category_config()["income"])


def detect_category(text: Optional[str]) -> str:
    """Shortcut: classify with a config-backed classifier."""
    return CategoryClassifier().detect_category(text)


def detect_type(amount: float | None, text: Optional[str] = None) -> str:
    """Shortcut: income/expense with a config-backed classifier."""
    return CategoryClassifier().detect_type(amount, text)
