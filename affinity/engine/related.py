"""Ranked related-note lookup for a focal note."""

from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from .config import Config
from .errors import AffinityError
from .models import Note
from .normalize import make_excerpt
from .similarity import SimilarityScorer
from .store import MetadataStore


@dataclass
class RelatedNote:
    note: Note
    score: float
    excerpt: str
    keywords: List[str] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.note.path

    @property
    def title(self) -> str:
        return self.note.title

    def to_dict(self) -> dict:
        return {
            "path": self.note.path,
            "title": self.note.title,
            "score": self.score,
            "excerpt": self.excerpt,
            "keywords": self.keywords,
        }


class RelatedNotesQuery:
    """Scores a focal note against every other note and keeps the best."""

    def __init__(self, config: Config, store: MetadataStore, scorer: Optional[SimilarityScorer] = None):
        self.config = config
        self.related = config.related
        self.store = store
        self.scorer = scorer or SimilarityScorer(config.related, config.indexing)

    def rank(self, focal: Note, candidates: List[Note]) -> List[RelatedNote]:
        """Pure ranking over already-loaded notes."""
        results = []
        for other in candidates:
            if other.path == focal.path:
                continue
            score = self.scorer.score(focal, other)
            if score > self.related.similarity_threshold:
                results.append(RelatedNote(
                    note=other,
                    score=score,
                    excerpt=make_excerpt(other.content, self.related.excerpt_length),
                    keywords=other.keywords(self.config.indexing),
                ))

        # sort() is stable, so ties keep vault order
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:self.related.max_results]

    async def find_related(self, focal_path: str) -> List[RelatedNote]:
        focal = await self.store.read_note(focal_path)

        candidates = []
        for path in await self.store.list_notes():
            if path == focal_path:
                continue
            try:
                candidates.append(await self.store.read_note(path))
            except AffinityError as e:
                logger.warning(f"Skipping unreadable note {path}: {e}")

        results = self.rank(focal, candidates)
        logger.debug(f"Found {len(results)} notes related to {focal_path}")
        return results
