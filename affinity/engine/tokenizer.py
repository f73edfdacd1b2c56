"""Dictionary-free bilingual tokenization.

Latin text splits into words. CJK text has no spaces, so runs of 2-4
characters stand in for compounds and every single character is a token too.
"""

import re
from typing import Set

CJK_CHAR = "\u4e00-\u9fff"

_LATIN_WORD = re.compile("[a-z\u00df-\u00f6\u00f8-\u024f]+")
_CJK_COMPOUND = re.compile(f"[{CJK_CHAR}]{{2,4}}")
_CJK_SINGLE = re.compile(f"[{CJK_CHAR}]")
_CJK_RUN = re.compile(f"[{CJK_CHAR}]+")

# Punctuation, symbols and underscores; \w already covers CJK
_TITLE_PUNCT = re.compile(r"[^\w\s]|_")
_DIGITS = re.compile(r"\d+")
_WHITESPACE = re.compile(r"\s+")


def tokenize_content(text: str) -> Set[str]:
    """Latin words, CJK 2-4 character compounds and single CJK characters."""
    if not text or not text.strip():
        return set()

    text = text.lower()
    tokens = set(_LATIN_WORD.findall(text))
    tokens.update(_CJK_COMPOUND.findall(text))
    tokens.update(_CJK_SINGLE.findall(text))
    return tokens


def tokenize_title(title: str) -> Set[str]:
    """
    Space-separated words (digits and punctuation dropped) plus every CJK
    character on its own. A CJK word stays a token as a whole too.
    """
    if not title or not title.strip():
        return set()

    text = title.lower()
    text = _TITLE_PUNCT.sub(" ", text)
    text = _DIGITS.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()

    tokens = {word for word in text.split(" ") if word}

    for run in _CJK_RUN.findall(text):
        tokens.update(run)
    return tokens
