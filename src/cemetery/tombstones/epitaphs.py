"""Epitaph pools keyed by the cause of death."""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Sequence

DEFAULT_POOL = "default"

EPITAPHS: Dict[str, List[str]] = {
    "deprecated": [
        "Glorious once, now nothing but a @deprecated marker",
        "The stack moved on and time retired it",
        "A new framework arrived and the veteran stood down",
    ],
    "refactor": [
        "It was fine; the refactorer just thought it could be better",
        "Its soul was elevated by the refactor",
        "Not dead, just starting over under a new name",
    ],
    "unused": [
        "The day it was written was the last day it was read",
        "Never imported, never needed",
        "A dead code detector's favourite",
    ],
    "requirements-changed": [
        "The requirements changed and it could not keep up",
        "One sentence from the product manager, one lifetime of code",
        "The PRD changed and the code fell in the line of duty",
    ],
    DEFAULT_POOL: [
        "Rest in peace, you once compiled",
        "RIP: your console.log lives on in git history",
        "It is gone, but its comments still mislead the living",
        "Here lies code that did what every TODO never will",
    ],
}


def pool_for(cause: str) -> str:
    """Name of the first pool whose keyword appears in ``cause`` (case-insensitive)."""
    lowered = cause.lower()
    for key in EPITAPHS:
        if key != DEFAULT_POOL and key in lowered:
            return key
    return DEFAULT_POOL


class EpitaphPicker:
    """Chooses an epitaph for a cause of death.

    The random source is injectable so tests can pin the choice.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def candidates(self, cause: str) -> Sequence[str]:
        return EPITAPHS[pool_for(cause)]

    def pick(self, cause: str) -> str:
        return self.rng.choice(self.candidates(cause))
