# ── Группировка серий (burst detection) ───────────────────────────────────────

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from backlog import Backlog
from config import (
    BURST_NEIGHBOR_MS,
    BURST_TOTAL_MS,
    MAX_BATCH_SIZE,
    ImageItem,
    Status,
)
from exif_time import extract_capture_time

logger = logging.getLogger(__name__)

# item → (первые байты файла, MIME-тип, mtime в ms)
HeaderReader = Callable[[ImageItem], tuple[bytes, str, int]]


@dataclass
class BurstCandidate:
    """Кандидат в батч. Живёт только в пределах одного прохода планировщика."""
    index: int                           # позиция в backlog
    item: ImageItem
    captured_at: int                     # время съёмки, epoch ms


def _candidate(index: int, item: ImageItem, read_header: HeaderReader) -> BurstCandidate:
    data, mime_type, last_modified = read_header(item)
    return BurstCandidate(
        index=index,
        item=item,
        captured_at=extract_capture_time(data, mime_type, last_modified),
    )


def group_next(
    backlog: Backlog,
    start_index: int,
    read_header: HeaderReader,
    max_size: int = MAX_BATCH_SIZE,
) -> list[BurstCandidate]:
    """
    Собирает серию, начиная с start_index (первый pending).
    Кадр попадает в серию, если до предыдущего < 2с и до первого < 4с.
    Серия непрерывна в порядке backlog и не перешагивает не-pending элементы.
    """
    run = [_candidate(start_index, backlog.at(start_index), read_header)]

    index = start_index + 1
    while len(run) < max_size and index < len(backlog):
        item = backlog.at(index)
        if item.status != Status.PENDING:
            break

        try:
            candidate = _candidate(index, item, read_header)
        except OSError as e:
            logger.warning("Cannot read %s while grouping: %s", item.name, e)
            break

        neighbor_delta = abs(candidate.captured_at - run[-1].captured_at)
        total_delta = abs(candidate.captured_at - run[0].captured_at)

        # delta == 0 допустима: в скоростной серии секунды в EXIF совпадают
        if neighbor_delta < BURST_NEIGHBOR_MS and total_delta < BURST_TOTAL_MS:
            run.append(candidate)
        else:
            break
        index += 1

    if len(run) > 1:
        logger.info("Burst of %d starting at %s", len(run), run[0].item.name)
    return run
