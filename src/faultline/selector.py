"""Target selection for faultline."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Sequence

from faultline.errors import TargetSelectionError

logger = logging.getLogger(__name__)

TargetSet = tuple[str, ...]


def select_targets(
    candidates: Sequence[str],
    percentage: int,
    randomize_order: bool = False,
    *,
    minimum: int = 1,
    rng: random.Random | None = None,
) -> TargetSet:
    """Pick the subset of *candidates* that chaos will be injected into.

    ``ceil(n * percentage / 100)`` candidates are chosen, raised to *minimum*
    so that a low percentage over a small pool still targets something.
    Below 100 % the pick is uniform-random without replacement; at 100 % the
    whole pool is returned in its original order.

    Args:
        candidates:      Candidate target identifiers. Duplicates are ignored.
        percentage:      Share of the pool to affect; clamped to ``[0, 100]``.
        randomize_order: Shuffle the returned targets so serial runs do not
                         always hit them in the same order.
        minimum:         Floor applied to the computed count. Pass ``0`` to
                         disable it.
        rng:             Random source, for reproducible selection.

    Raises:
        TargetSelectionError: if the pool is empty or the count works out to 0.
    """
    rng = rng or random.Random()  # noqa: S311
    pool = list(dict.fromkeys(candidates))
    if not pool:
        raise TargetSelectionError("no candidate targets available for chaos")

    percentage = max(0, min(100, percentage))
    count = math.ceil(len(pool) * percentage / 100)
    count = min(len(pool), max(count, minimum))
    if count == 0:
        raise TargetSelectionError(
            f"affected percentage {percentage} selects no target out of {len(pool)}"
        )

    if count == len(pool):
        selected = pool
    else:
        chosen = set(rng.sample(pool, count))
        selected = [target for target in pool if target in chosen]

    if randomize_order:
        selected = list(selected)
        rng.shuffle(selected)

    logger.info(
        "[Info]: Selected %d of %d candidate targets: %s", len(selected), len(pool), selected
    )
    return tuple(selected)


__all__ = ["TargetSet", "select_targets"]
