"""
Include/exclude matching for vSAN performance metric kinds.
"""

import fnmatch
import logging
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class MetricFilter:
    """
    Glob based include/exclude filter.

    An empty include list matches everything. Exclude patterns always win.
    """

    def __init__(self, include: Optional[Iterable[str]] = None,
                 exclude: Optional[Iterable[str]] = None):
        self.include = [p for p in (include or []) if p]
        self.exclude = [p for p in (exclude or []) if p]

    def match(self, name: str) -> bool:
        if any(fnmatch.fnmatchcase(name, pattern) for pattern in self.exclude):
            return False
        if not self.include:
            return True
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.include)

    def apply(self, names: Iterable[str]) -> List[str]:
        """Keep the names that match, preserving order."""
        selected = [name for name in names if self.match(name)]
        logger.debug(f"Metric filter selected {len(selected)} kinds: {selected}")
        return selected

    def __repr__(self) -> str:
        return f"MetricFilter(include={self.include}, exclude={self.exclude})"
