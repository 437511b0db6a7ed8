"""Deterministic category classification for extracted items."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from newsletter_ingest.config import DEFAULT_CATEGORY_LABELS, FALLBACK_CATEGORY

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 3

# Declaration order breaks score ties.
DEFAULT_CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "politics": (
        "government",
        "minister",
        "president",
        "congress",
        "senate",
        "election",
        "parliament",
        "supreme court",
        "governo",
        "ministro",
        "presidente",
        "congresso",
        "senado",
        "deputado",
        "política",
        "eleição",
        "partido",
        "stf",
        "supremo",
    ),
    "international": (
        "world",
        "international",
        "foreign",
        "europe",
        "china",
        "russia",
        "war",
        "conflict",
        "diplomacy",
        "embassy",
        "nato",
        "mundo",
        "internacional",
        "exterior",
        "europa",
        "guerra",
        "conflito",
        "diplomacia",
        "embaixada",
        "otan",
    ),
    "economy": (
        "economy",
        "market",
        "inflation",
        "interest rate",
        "central bank",
        "stock",
        "investment",
        "billion",
        "gdp",
        "economia",
        "mercado",
        "dólar",
        "inflação",
        "pib",
        "banco central",
        "juros",
        "selic",
        "bolsa",
        "investimento",
        "negócios",
        "bilhão",
    ),
    "technology": (
        "technology",
        "tech",
        "artificial intelligence",
        "ai",
        "startup",
        "software",
        "google",
        "apple",
        "microsoft",
        "internet",
        "app",
        "tecnologia",
        "inteligência artificial",
        "ia",
        "digital",
    ),
    "entertainment": (
        "entertainment",
        "culture",
        "movie",
        "cinema",
        "music",
        "celebrity",
        "streaming",
        "netflix",
        "entretenimento",
        "cultura",
        "música",
        "artista",
        "novela",
    ),
    "sports": (
        "sport",
        "football",
        "soccer",
        "world cup",
        "olympics",
        "athlete",
        "championship",
        "esporte",
        "futebol",
        "copa",
        "seleção",
        "olimpíadas",
        "atleta",
        "campeonato",
    ),
}


@dataclass(slots=True, frozen=True)
class Classification:
    """Category decision plus the evidence that produced it."""

    category: str
    explicit: bool
    scores: dict[str, int] = field(default_factory=dict)


class CategoryClassifier:
    """Map explicit section labels, or score keywords when no label exists."""

    def __init__(
        self,
        *,
        category_labels: Mapping[str, str] | None = None,
        keywords: Mapping[str, tuple[str, ...]] | None = None,
        fallback_category: str = FALLBACK_CATEGORY,
    ) -> None:
        labels = DEFAULT_CATEGORY_LABELS if category_labels is None else category_labels
        self.category_labels = {label.upper(): category for label, category in labels.items()}
        self.fallback_category = fallback_category
        self._patterns = {
            category: tuple(_keyword_pattern(keyword) for keyword in words)
            for category, words in (keywords or DEFAULT_CATEGORY_KEYWORDS).items()
        }
        self._known_categories = frozenset(self.category_labels.values()) | frozenset(
            self._patterns,
        )

    def classify(
        self,
        title: str,
        body_text: str,
        explicit_label: str | None = None,
    ) -> Classification:
        if explicit_label and explicit_label.strip():
            return Classification(category=self.map_label(explicit_label), explicit=True)

        scores = self.score(title, body_text)
        best_category = self.fallback_category
        best_score = 0
        for category, value in scores.items():
            if value > best_score:
                best_category = category
                best_score = value
        return Classification(category=best_category, explicit=False, scores=scores)

    def map_label(self, label: str) -> str:
        """Map a section label to the downstream taxonomy, falling back when unknown."""

        normalized = label.strip().upper()
        if normalized in self.category_labels:
            return self.category_labels[normalized]
        lowered = label.strip().lower()
        if lowered in self._known_categories:
            return lowered
        logger.warning(
            "Unknown category label %r, using fallback %s",
            label,
            self.fallback_category,
        )
        return self.fallback_category

    def score(self, title: str, body_text: str) -> dict[str, int]:
        return {
            category: sum(
                TITLE_WEIGHT * len(pattern.findall(title)) + len(pattern.findall(body_text))
                for pattern in patterns
            )
            for category, patterns in self._patterns.items()
        }


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)", re.IGNORECASE)
