"""Plain-text extraction and diacritic folding."""

import re
import unicodedata
from typing import List, Tuple

from selectolax.parser import HTMLParser

# Templating conditionals live in comments but can wrap text, so they go before parsing
_TEMPLATE_COMMENT_RE = re.compile(r"<!--\s*\{%.*?%\}\s*-->", re.DOTALL)
_MERGE_TAG_RE = re.compile(r"\*\|[^|]+\|\*")
_WHITESPACE_RE = re.compile(r"\s+")

DROPPED_TAGS = ["script", "style", "noscript", "template"]


def extract_text_from_html(raw_html: str) -> str:
    """Extract indexable plain text from an HTML email body.

    Every text node is separated by a space, so block boundaries never fuse
    words together. Malformed markup degrades to whatever the parser recovers.
    """
    if not raw_html:
        return ""

    cleaned = _TEMPLATE_COMMENT_RE.sub("", raw_html)
    cleaned = _MERGE_TAG_RE.sub("", cleaned)

    tree = HTMLParser(cleaned)
    tree.strip_tags(DROPPED_TAGS)
    if tree.root is None:
        return ""

    comments = [node for node in tree.root.traverse() if node.tag == "_comment"]
    for node in comments:
        node.decompose()

    text = tree.root.text(separator=" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def remove_diacritics(text: str) -> str:
    """Fold accented characters to their base form ("Napoleón" -> "Napoleon")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def fold_with_offsets(text: str) -> Tuple[str, List[int]]:
    """Fold diacritics character by character, keeping a map back to ``text``.

    ``offsets[i]`` is the index in ``text`` of the character that produced
    position ``i`` of the folded string. Lone combining marks fold to nothing.
    """
    folded: List[str] = []
    offsets: List[int] = []
    for position, char in enumerate(text or ""):
        for folded_char in remove_diacritics(char):
            folded.append(folded_char)
            offsets.append(position)
    return "".join(folded), offsets
