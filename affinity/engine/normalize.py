"""Strip markdown noise from note text before extraction or excerpting."""

import re

_FRONTMATTER = re.compile(r"^---\n[\s\S]*?\n---\n")
_IMAGE_EMBED = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_WIKI_EMBED = re.compile(r"!\[\[[^\]]*\]\]")
_MARKDOWN_LINK = re.compile(r"\[[^\]]*\]\([^)]*\)")
_WIKI_LINK = re.compile(r"\[\[[^\]]*\]\]")
_FENCED_CODE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`]*`")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


def _strip_markup(text: str) -> str:
    text = _FRONTMATTER.sub("", text, count=1)
    text = _IMAGE_EMBED.sub("", text)
    text = _WIKI_EMBED.sub("", text)
    text = _MARKDOWN_LINK.sub("", text)
    text = _WIKI_LINK.sub("", text)
    text = _FENCED_CODE.sub("", text)
    text = _INLINE_CODE.sub("", text)
    text = _EXTRA_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def normalize_content(text: str) -> str:
    """
    Remove, in order: the leading metadata block, image embeds, links,
    fenced code, inline code; then collapse 3+ newlines to 2.

    A removal can expose new markup at the start of the text (a block behind
    an embed or blank lines), so passes repeat until nothing changes. Every
    pass that changes the text shortens it.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n")
    while True:
        cleaned = _strip_markup(text)
        if cleaned == text:
            return cleaned
        text = cleaned


def make_excerpt(text: str, length: int = 100, marker: str = "...") -> str:
    """First ``length`` characters of the normalized text plus a marker."""
    return normalize_content(text)[:length] + marker
