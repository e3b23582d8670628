"""Match batch-export metadata rows to their HTML files."""

import re
from typing import List, Optional, Sequence, Tuple

from ..text import remove_diacritics
from .models import FileInventoryEntry

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_for_matching(text: str) -> str:
    """Lowercase, fold accents and keep only ASCII letters, digits and spaces."""
    text = remove_diacritics(text or "").lower()
    text = _NON_ALNUM_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text.strip())


def _longest_common_substring(first: str, second: str) -> Tuple[int, int, int]:
    """Return (pos_in_first, pos_in_second, length) of the first longest common run."""
    best_first = best_second = best_length = 0
    previous = [0] * (len(second) + 1)
    for i in range(1, len(first) + 1):
        current = [0] * (len(second) + 1)
        for j in range(1, len(second) + 1):
            if first[i - 1] == second[j - 1]:
                current[j] = previous[j - 1] + 1
                if current[j] > best_length:
                    best_length = current[j]
                    best_first = i - best_length
                    best_second = j - best_length
        previous = current
    return best_first, best_second, best_length


def _common_characters(first: str, second: str) -> int:
    if not first or not second:
        return 0
    pos_first, pos_second, length = _longest_common_substring(first, second)
    if not length:
        return 0
    return (
        length
        + _common_characters(first[:pos_first], second[:pos_second])
        + _common_characters(first[pos_first + length:], second[pos_second + length:])
    )


def similarity(first: str, second: str) -> float:
    """Percentage (0-100) of characters the two strings have in common.

    Common characters are counted by taking the longest common substring and
    recursing on the pieces to its left and right.
    """
    if not first or not second:
        return 0.0
    return _common_characters(first, second) * 2 * 100.0 / (len(first) + len(second))


class FileMatcher:
    """Find the content file belonging to a metadata row."""

    def __init__(self, threshold: float = 70.0) -> None:
        """
        Initialize file matcher.

        Args:
            threshold: Minimum similarity percentage (inclusive) for a fuzzy match
        """
        self.threshold = threshold

    def match(
        self,
        subject: str,
        title: str,
        source_id: Optional[str],
        inventory: Sequence[FileInventoryEntry],
    ) -> Optional[FileInventoryEntry]:
        """Return the best matching file, or None when nothing is close enough."""
        if source_id:
            for entry in inventory:
                if source_id in entry.source_fragment or source_id in entry.filename:
                    return entry

        best_entry, best_score = self.best_candidate(subject, title, inventory)
        if best_entry is not None and best_score >= self.threshold:
            return best_entry
        return None

    def best_candidate(
        self,
        subject: str,
        title: str,
        inventory: Sequence[FileInventoryEntry],
    ) -> Tuple[Optional[FileInventoryEntry], float]:
        """Highest scoring entry; ties keep the entry seen first."""
        subject_slug = normalize_for_matching(subject)
        title_slug = normalize_for_matching(title)

        best_entry: Optional[FileInventoryEntry] = None
        best_score = 0.0
        for entry in inventory:
            file_slug = normalize_for_matching(entry.slug)
            score = max(similarity(subject_slug, file_slug), similarity(title_slug, file_slug))
            if score > best_score:
                best_entry, best_score = entry, score

        return best_entry, best_score


def build_inventory(paths: List) -> List[FileInventoryEntry]:
    """Inventory entries for the ``.html`` files among ``paths``, sorted by name."""
    html_paths = sorted((p for p in paths if p.suffix.lower() == ".html"), key=lambda p: p.name)
    return [FileInventoryEntry.from_path(p) for p in html_paths]
