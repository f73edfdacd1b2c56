"""Notes, metadata values and index records."""

import math
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple, Union

from .config import IndexingConfig


@dataclass(frozen=True)
class Text:
    value: str

    def to_raw(self) -> str:
        return self.value


@dataclass(frozen=True)
class Number:
    value: Union[int, float]

    def to_raw(self) -> Union[int, float]:
        return self.value


@dataclass(frozen=True)
class TextList:
    items: Tuple[str, ...]

    def to_raw(self) -> List[str]:
        return list(self.items)


MetaValue = Union[Text, Number, TextList]


def parse_value(raw: Any) -> Optional[MetaValue]:
    """
    Map a value loaded from a metadata block onto Text, Number or TextList.

    Booleans, mappings, dates and nulls have no counterpart and give None;
    the store keeps them as they are.
    """
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        return Number(raw)
    if isinstance(raw, str):
        return Text(raw)
    if isinstance(raw, (list, tuple)):
        items = []
        for item in raw:
            if item is None or isinstance(item, (dict, list, tuple)):
                continue
            items.append(str(item))
        return TextList(tuple(items))
    return None


def text_list(raw: Any) -> List[str]:
    """Read a keyword-ish value as a list of strings ([] when absent)."""
    value = parse_value(raw)
    if isinstance(value, TextList):
        return list(value.items)
    if isinstance(value, Text) and value.value:
        return [value.value]
    return []


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_timestamp(raw: Any) -> Optional[int]:
    """Epoch milliseconds from a stored value, or None if it is not one."""
    value = parse_value(raw)
    if isinstance(value, Number):
        # .nan and .inf load as floats but are not instants
        if not math.isfinite(value.value):
            return None
        return int(value.value)
    if isinstance(value, Text):
        match = _LEADING_INT.match(value.value)
        if match:
            return int(match.group(1))
    return None


@dataclass
class Note:
    """A markdown note as read from the store."""
    path: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    modified_ms: int = 0

    @property
    def title(self) -> str:
        return PurePosixPath(self.path).stem

    def keywords(self, config: IndexingConfig) -> List[str]:
        return text_list(self.metadata.get(config.keywords_property))

    def last_indexed(self, config: IndexingConfig) -> Any:
        return self.metadata.get(config.last_index_time_property)


@dataclass(frozen=True)
class IndexRecord:
    """Keywords plus the instant they were produced; written as one unit."""
    keywords: Tuple[str, ...]
    indexed_at_ms: int

    @property
    def valid(self) -> bool:
        return is_valid_keyword_set(self.keywords)

    def as_metadata(self, config: IndexingConfig) -> Dict[str, Any]:
        return {
            config.keywords_property: TextList(self.keywords).to_raw(),
            config.last_index_time_property: Number(self.indexed_at_ms).to_raw(),
        }

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any], config: IndexingConfig) -> Optional["IndexRecord"]:
        keywords = text_list(metadata.get(config.keywords_property))
        indexed_at = parse_timestamp(metadata.get(config.last_index_time_property))
        if not keywords or indexed_at is None:
            return None
        return cls(tuple(keywords), indexed_at)


def clean_keywords(keywords) -> List[str]:
    """Strip whitespace and drop empty entries, keeping order."""
    cleaned = []
    for keyword in keywords:
        if keyword is None:
            continue
        keyword = str(keyword).strip()
        if keyword:
            cleaned.append(keyword)
    return cleaned


def is_valid_keyword_set(keywords) -> bool:
    return len(set(clean_keywords(keywords))) >= 2
