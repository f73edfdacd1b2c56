"""Weighted relatedness score between two notes."""

from dataclasses import dataclass
from typing import AbstractSet, Iterable, Set

from loguru import logger

from .config import IndexingConfig, RelatedConfig
from .models import Note
from .normalize import normalize_content
from .tokenizer import tokenize_content, tokenize_title


def jaccard(a: AbstractSet, b: AbstractSet) -> float:
    """|A∩B| / |A∪B|, with 0.0 for two empty sets."""
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def keyword_chars(keywords: Iterable[str]) -> Set[str]:
    """
    Every character of the concatenated keyword list.

    Keyword boundaries are dropped, so partial and cross-language
    overlaps still count. ["cat"] and ["act"] are identical here.
    """
    return set("".join(keywords))


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class ScoreBreakdown:
    title: float
    keyword: float
    content: float
    total: float


class SimilarityScorer:
    """
    Combines title-token Jaccard with keyword-character Jaccard.

    An optional content-token component is off unless ``content_weight`` > 0.
    Every component is set-symmetric, so score(a, b) == score(b, a).
    """

    def __init__(self, config: RelatedConfig, indexing: IndexingConfig):
        self.config = config
        self.indexing = indexing

    def title_similarity(self, a: Note, b: Note) -> float:
        return jaccard(tokenize_title(a.title), tokenize_title(b.title))

    def keyword_similarity(self, a: Note, b: Note) -> float:
        return jaccard(
            keyword_chars(a.keywords(self.indexing)),
            keyword_chars(b.keywords(self.indexing)),
        )

    def content_similarity(self, a: Note, b: Note) -> float:
        return jaccard(
            tokenize_content(normalize_content(a.content)),
            tokenize_content(normalize_content(b.content)),
        )

    def explain(self, a: Note, b: Note) -> ScoreBreakdown:
        title = self.title_similarity(a, b)
        keyword = self.keyword_similarity(a, b)
        content = 0.0
        if self.config.content_weight > 0:
            content = self.content_similarity(a, b)

        total = clamp01(
            title * self.config.title_weight
            + keyword * self.config.keyword_weight
            + content * self.config.content_weight
        )
        logger.debug(
            f"{a.title} vs {b.title}: title={title:.3f} keyword={keyword:.3f} "
            f"content={content:.3f} total={total:.3f}"
        )
        return ScoreBreakdown(title=title, keyword=keyword, content=content, total=total)

    def score(self, a: Note, b: Note) -> float:
        return self.explain(a, b).total
