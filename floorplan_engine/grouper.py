from __future__ import annotations

import logging
from typing import Sequence

from .types import Detection, Group

logger = logging.getLogger(__name__)


def _label_for(detection: Detection) -> str | None:
    return detection.room_name_raw or detection.room_name or None


def group_pages(detections: Sequence[Detection], pages: Sequence[str] | None = None) -> list[Group]:
    """Partition pages into contiguous room groups.

    Greedy and forward-only: a page joins the open group iff its normalized
    heading equals the anchor's. Pages without a heading are always singletons.
    `pages` (paths, same length as detections) is carried into each group for
    display; page indices are used when it is omitted.
    """
    if pages is not None and len(pages) != len(detections):
        raise ValueError(f"pages ({len(pages)}) and detections ({len(detections)}) differ in length")

    names = list(pages) if pages is not None else [str(i) for i in range(len(detections))]
    groups: list[Group] = []

    i = 0
    n = len(detections)
    while i < n:
        key = detections[i].normalized
        j = i + 1
        if key is not None:
            while j < n and detections[j].normalized == key:
                j += 1

        members = range(i, j)
        label = next((_label_for(detections[k]) for k in members if _label_for(detections[k])), None)
        group = Group(
            group_id=len(groups) + 1,
            page_indices=tuple(members),
            pages=tuple(names[k] for k in members),
            room_label=label,
            normalized_name=key,
        )
        logger.debug("group %d: pages %s key=%r", group.group_id, list(group.page_indices), key)
        groups.append(group)
        i = j

    logger.info("Grouped %d page(s) into %d group(s)", n, len(groups))
    return groups
