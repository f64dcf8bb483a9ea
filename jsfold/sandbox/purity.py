"""Decide from source text whether an expression may be replaced by its value."""

import re
from typing import Iterable, Optional

DEFAULT_NONDETERMINISTIC_MARKERS = ("Date", "Math.random")
DEFAULT_PRESERVE_RAW_MARKERS = (
    "Array",
    "Error",
    "setTimeout",
    "setInterval",
    "JSON.stringify",
    "Object.assign",
    "console.log",
)


def _compile(markers: Iterable[str]) -> Optional[re.Pattern]:
    markers = [marker for marker in markers if marker]
    if not markers:
        return None
    return re.compile("|".join(re.escape(marker) for marker in markers))


class PurityGate:
    """Text-based checks applied before any evaluation result is substituted.

    Matching is by substring, so ``myDate`` counts as a reference to
    ``Date``. Over-matching only ever keeps code as written.
    """

    def __init__(
        self,
        nondeterministic_markers: Iterable[str] = DEFAULT_NONDETERMINISTIC_MARKERS,
        preserve_raw_markers: Iterable[str] = DEFAULT_PRESERVE_RAW_MARKERS,
    ):
        self._nondeterministic = _compile(nondeterministic_markers)
        self._preserve_raw = _compile(preserve_raw_markers)

    def is_deterministic(self, source: str) -> bool:
        """False when the text references a time or randomness source."""
        return self._nondeterministic is None or self._nondeterministic.search(source) is None

    def should_keep_raw(self, source: str) -> bool:
        """True when the text builds values whose literal form would be lossy or has side effects."""
        return self._preserve_raw is not None and self._preserve_raw.search(source) is not None

    def may_substitute(self, source: str) -> bool:
        return self.is_deterministic(source) and not self.should_keep_raw(source)
