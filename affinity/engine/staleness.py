"""Decide whether a note's cached keywords need regenerating."""

import math
import re
from enum import Enum
from functools import lru_cache
from typing import Any, Optional

from loguru import logger

from .config import IndexingConfig
from .models import parse_timestamp


class Staleness(Enum):
    EXCLUDED = "excluded"
    NEVER_INDEXED = "never_indexed"
    INVALID_TIMESTAMP = "invalid_timestamp"
    MODIFIED = "modified"
    FRESH = "fresh"

    @property
    def stale(self) -> bool:
        return self in (Staleness.NEVER_INDEXED, Staleness.INVALID_TIMESTAMP, Staleness.MODIFIED)


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a path glob: ``**`` spans directories, ``*`` and ``?`` stay
    inside one path segment. ``**/`` may also match nothing.
    """
    i, parts = 0, []
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


class StalenessPolicy:
    """
    Pure staleness rules.

    Writing the index record touches the file's mtime, so a note only counts
    as modified once its mtime is more than ``min_reindex_gap_s`` past the
    stored index instant.
    """

    def __init__(self, config: IndexingConfig):
        self.config = config

    def is_excluded(self, path: str) -> bool:
        if any(path.startswith(prefix) for prefix in self.config.excluded_prefixes):
            return True
        if self.config.include_files and not glob_to_regex(self.config.include_files).match(path):
            return True
        return any(glob_to_regex(g).match(path) for g in self.config.excluded_globs)

    def evaluate(self, path: str, modified_ms: int, last_indexed: Optional[Any]) -> Staleness:
        if self.is_excluded(path):
            return Staleness.EXCLUDED

        if last_indexed is None or last_indexed == "":
            logger.debug(f"{path} has never been indexed")
            return Staleness.NEVER_INDEXED

        indexed_ms = parse_timestamp(last_indexed)
        if indexed_ms is None:
            logger.debug(f"{path} has an unreadable index time: {last_indexed!r}")
            return Staleness.INVALID_TIMESTAMP

        # Half-up rounding, so a 120.5s gap counts as 121s
        gap_s = math.floor((modified_ms - indexed_ms) / 1000 + 0.5)
        if gap_s > self.config.min_reindex_gap_s:
            logger.debug(f"{path} modified {gap_s}s after last index")
            return Staleness.MODIFIED
        if gap_s > 0:
            logger.debug(
                f"{path} gap {gap_s}s not above {self.config.min_reindex_gap_s}s, still fresh"
            )
        return Staleness.FRESH

    def is_stale(self, path: str, modified_ms: int, last_indexed: Optional[Any]) -> bool:
        return self.evaluate(path, modified_ms, last_indexed).stale
