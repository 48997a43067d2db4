# ── Оценка батча: подготовка → модель → XMP → состояние ───────────────────────

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from ai_grader import GradingError
from backlog import Backlog
from burst import BurstCandidate
from config import MAX_BATCH_SIZE, Evaluation, ImageItem
from images import PreparedImage, prepare_for_grading

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    ids: list[str]
    ok: bool
    error: str | None = None
    metadata_refs: dict[str, Path] = field(default_factory=dict)


def _prepare_all(
    run: list[BurstCandidate],
    source,
    prepare: Callable[[bytes], PreparedImage],
) -> list[PreparedImage]:
    """Читает и уменьшает все кадры серии параллельно."""
    def _prepare_one(candidate: BurstCandidate) -> PreparedImage:
        data, _, _ = source.read_bytes(candidate.item)
        return prepare(data)

    with ThreadPoolExecutor(max_workers=MAX_BATCH_SIZE, thread_name_prefix="prepare") as pool:
        return list(pool.map(_prepare_one, run))


def _save_sidecar(source, item: ImageItem, evaluation: Evaluation) -> Path | None:
    # Ошибка записи XMP не отменяет оценку: она остаётся в памяти
    try:
        return source.write_metadata(item, evaluation)
    except Exception as e:
        logger.warning("Auto-save XMP failed for %s: %s", item.name, e)
        return None


def run_batch(
    run: list[BurstCandidate],
    backlog: Backlog,
    grader,
    source,
    prepare: Callable[[bytes], PreparedImage] = prepare_for_grading,
) -> BatchOutcome:
    """
    Оценивает серию (или одиночный кадр) и применяет результат к backlog.
    Всё или ничего: любая ошибка чтения, подготовки или оценки переводит
    в error все элементы серии.
    """
    ids = [c.item.id for c in run]

    try:
        if len(run) > 1:
            logger.info("Processing burst group of %d images", len(run))
            prepared = _prepare_all(run, source, prepare)
            group_results = grader.grade_group(
                {c.item.name: image for c, image in zip(run, prepared)}
            )

            evaluations = {}
            for c in run:
                result = group_results.get(c.item.name)
                if result is None:
                    raise GradingError(f"No result for {c.item.name} in group response")
                evaluations[c.item.id] = result
        else:
            target = run[0]
            data, _, _ = source.read_bytes(target.item)
            evaluations = {target.item.id: grader.grade_one(prepare(data))}
    except Exception as e:
        message = str(e) or type(e).__name__
        logger.error("Error processing batch %s: %s", ", ".join(ids), message)
        backlog.mark_error(ids, message)
        return BatchOutcome(ids=ids, ok=False, error=message)

    refs = {}
    for c in run:
        ref = _save_sidecar(source, c.item, evaluations[c.item.id])
        if ref is not None:
            refs[c.item.id] = ref

    backlog.mark_done({
        item_id: (evaluation, refs.get(item_id))
        for item_id, evaluation in evaluations.items()
    })
    return BatchOutcome(ids=ids, ok=True, metadata_refs=refs)
