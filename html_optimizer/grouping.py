"""Split eligible references into size-limited combination batches."""

from __future__ import annotations

import logging
from typing import List, Sequence

from .models import Batch, ClassifiedReference

logger = logging.getLogger("html_optimizer")


def group(references: Sequence[ClassifiedReference], max_bytes: int) -> List[Batch]:
    """Greedily pack references, in order, into batches of at most max_bytes.

    A new batch starts when the next reference would push the running total
    over the ceiling. A single reference larger than the ceiling still gets a
    batch of its own. A ceiling of zero or less disables the limit.
    """
    batches: List[Batch] = []
    current = Batch()
    total = 0
    for ref in references:
        size = ref.file_size or 0
        if current.references and max_bytes > 0 and total + size > max_bytes:
            batches.append(current)
            current = Batch()
            total = 0
        current.references.append(ref)
        total += size
    if current.references:
        batches.append(current)

    if len(batches) > 1:
        logger.debug("Split %d references into %d batches", len(references), len(batches))
    return batches
