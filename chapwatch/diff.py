from __future__ import annotations
from typing import Iterable, List

from .utils.log import get_logger
from .utils.state import SeenSet
from .watchers.base import CandidateItem

logger = get_logger("chapwatch.diff")

ORDER_PAGE = "page"
ORDER_IDENTIFIER = "identifier"
ORDERS = (ORDER_PAGE, ORDER_IDENTIFIER)


def diff(candidates: Iterable[CandidateItem], seen: SeenSet, order: str = ORDER_PAGE) -> List[CandidateItem]:
    """Return the candidates that have never been notified.

    Candidates with an empty title or an identifier already in `seen` are
    dropped, as are repeats of an identifier within the batch (first one
    kept). With order="page" the page order is preserved; with
    order="identifier" the result is sorted ascending by identifier.
    """
    if order not in ORDERS:
        raise ValueError(f"unknown notification order {order!r}; expected one of {ORDERS}")

    fresh: List[CandidateItem] = []
    taken: set[str] = set()
    for item in candidates:
        if not item.identifier:
            logger.debug("Candidate without usable URL skipped: %r", item)
            continue
        if not item.title.strip():
            logger.info("Candidate %s has no title; skipping.", item.identifier)
            continue
        if item.identifier in seen:
            logger.debug("Already notified: %s", item.identifier)
            continue
        if item.identifier in taken:
            logger.debug("Duplicate within batch: %s", item.identifier)
            continue
        taken.add(item.identifier)
        fresh.append(item)

    if order == ORDER_IDENTIFIER:
        fresh.sort(key=lambda it: it.identifier)
    return fresh
