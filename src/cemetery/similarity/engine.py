"""Multi-signal similarity between text artifacts.

Three signals are combined for file comparisons:

* ``filename``  - Jaro-Winkler similarity of the two basenames,
* ``tokens``    - Jaccard overlap of lower-cased word tokens,
* ``structure`` - Jaccard overlap of declared function/class names.

When no file names are available only the token signal is used.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import AbstractSet, List, Optional, Sequence, Tuple

import numpy as np

from cemetery.models import ResurrectionKind, SignalScore, SimilarityScore
from cemetery.utils.files import read_text

MIN_TOKEN_CHARS = 3
MIN_KEYWORD_CHARS = 4
KEYWORD_HIT_SCORE = 0.3
PREFIX_SCALE = 0.1
MAX_PREFIX = 4

CLONE_THRESHOLD = 0.90
REFACTOR_THRESHOLD = 0.75
MODULARIZED_THRESHOLD = 0.60
DERIVED_KEYWORD_THRESHOLD = 0.70

_NON_WORD = re.compile(r"\W+")
_STRUCTURE_PATTERNS = (
    re.compile(r"function\s+(\w+)"),
    re.compile(r"class\s+(\w+)"),
    re.compile(r"const\s+(\w+)\s*=\s*\("),
    re.compile(r"(\w+)\s*:\s*function"),
)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance computed one row at a time.

    Insertions along a row are resolved with a running minimum, which keeps
    the inner loop in numpy.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    b_codes = np.fromiter((ord(char) for char in b), dtype=np.int64, count=len(b))
    offsets = np.arange(len(b) + 1, dtype=np.int64)
    previous = offsets.copy()
    candidates = np.empty(len(b) + 1, dtype=np.int64)
    for row, char in enumerate(a, start=1):
        cost = (b_codes != ord(char)).astype(np.int64)
        candidates[0] = row
        candidates[1:] = np.minimum(previous[1:] + 1, previous[:-1] + cost)
        previous = np.minimum.accumulate(candidates - offsets) + offsets
    return int(previous[-1])


def edit_ratio(a: str, b: str) -> float:
    """``1 - distance / max(len)``; 0.0 when either string is empty."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def jaro_winkler(a: str, b: str) -> float:
    """Jaro similarity with a Winkler boost for a shared prefix (up to 4 chars)."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    window = max(len(a), len(b)) // 2 - 1
    if window < 0:
        return 0.0

    a_flags = [False] * len(a)
    b_flags = [False] * len(b)
    matches = 0
    for i, char in enumerate(a):
        start = max(0, i - window)
        end = min(i + window + 1, len(b))
        for j in range(start, end):
            if b_flags[j] or b[j] != char:
                continue
            a_flags[i] = b_flags[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, char in enumerate(a):
        if not a_flags[i]:
            continue
        while not b_flags[k]:
            k += 1
        if char != b[k]:
            transpositions += 1
        k += 1

    jaro = (matches / len(a) + matches / len(b) + (matches - transpositions / 2) / matches) / 3

    prefix = 0
    for left, right in zip(a[:MAX_PREFIX], b):
        if left != right:
            break
        prefix += 1
    return jaro + prefix * PREFIX_SCALE * (1 - jaro)


def tokenize(text: str) -> set[str]:
    return {token for token in _NON_WORD.split(text.lower()) if len(token) >= MIN_TOKEN_CHARS}


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def extract_structure_names(text: str) -> set[str]:
    names: set[str] = set()
    for pattern in _STRUCTURE_PATTERNS:
        names.update(pattern.findall(text))
    return names


def token_similarity(a: str, b: str) -> float:
    return jaccard(tokenize(a), tokenize(b))


def structure_similarity(a: str, b: str) -> float:
    return jaccard(extract_structure_names(a), extract_structure_names(b))


def derive_keywords(location: str) -> List[str]:
    """Keywords from a retired file's name, e.g. ``old-auth_manager.ts`` -> auth, manager."""
    stem = PurePosixPath(location.replace("\\", "/")).stem
    return [word for word in re.split(r"[-_.]", stem) if len(word) >= MIN_KEYWORD_CHARS]


def keyword_match(
    keywords: Sequence[str], name: str, location: str = ""
) -> Tuple[float, List[str]]:
    """Score how many keywords show up in the new file's name or path (capped at 1.0)."""
    name = name.lower()
    location = location.lower()
    matched = [kw for kw in keywords if kw.lower() in name or kw.lower() in location]
    return min(len(matched) * KEYWORD_HIT_SCORE, 1.0), matched


def classify(similarity: float, keyword_score: float = 0.0) -> ResurrectionKind:
    if similarity > CLONE_THRESHOLD:
        return ResurrectionKind.CLONE
    if similarity > REFACTOR_THRESHOLD:
        return ResurrectionKind.REFACTOR
    if similarity > MODULARIZED_THRESHOLD:
        return ResurrectionKind.MODULARIZED
    if keyword_score > DERIVED_KEYWORD_THRESHOLD:
        return ResurrectionKind.DERIVED
    return ResurrectionKind.INSPIRED


def confidence(similarity: float, keyword_score: float = 0.0) -> float:
    return 0.7 * similarity + 0.3 * keyword_score


@dataclass(slots=True, frozen=True)
class SimilarityWeights:
    filename: float = 0.3
    tokens: float = 0.5
    structure: float = 0.2


class SimilarityEngine:
    """Scores two artifacts; see the module docstring for the signals."""

    def __init__(self, weights: SimilarityWeights | None = None) -> None:
        self.weights = weights or SimilarityWeights()

    def similarity(
        self,
        a: str,
        b: str,
        *,
        a_name: Optional[str] = None,
        b_name: Optional[str] = None,
    ) -> SimilarityScore:
        if a_name is None or b_name is None:
            tokens = token_similarity(a, b)
            return SimilarityScore(value=tokens, signals={"tokens": SignalScore(tokens, 1.0)})

        signals = {
            "filename": SignalScore(
                jaro_winkler(PurePosixPath(a_name).name, PurePosixPath(b_name).name),
                self.weights.filename,
            ),
            "tokens": SignalScore(token_similarity(a, b), self.weights.tokens),
            "structure": SignalScore(structure_similarity(a, b), self.weights.structure),
        }
        value = sum(signal.value * signal.weight for signal in signals.values())
        return SimilarityScore(value=min(max(value, 0.0), 1.0), signals=signals)

    def compare_files(self, a_path: Path, b_path: Path) -> Optional[SimilarityScore]:
        """Composite score of two files on disk; None when either is unreadable."""
        a_text = read_text(a_path)
        b_text = read_text(b_path)
        if a_text is None or b_text is None:
            return None
        return self.similarity(a_text, b_text, a_name=Path(a_path).name, b_name=Path(b_path).name)
