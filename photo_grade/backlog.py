# ── Очередь изображений (backlog) ─────────────────────────────────────────────

from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, Iterator

from config import Evaluation, ImageItem, Status

FILTERS = ("all", "keep", "reject")


class Backlog:
    """
    Упорядоченный набор ImageItem: словарь по id + список id в порядке имён.
    Порядок задаётся один раз при создании и больше не меняется.
    Все изменения идут под блокировкой: планировщик пишет из своего потока.
    """

    def __init__(self, items: Iterable[ImageItem] = ()):
        self._lock = threading.RLock()
        self._items: dict[str, ImageItem] = {}
        names = set()
        for item in sorted(items, key=lambda i: (i.name.lower(), i.name)):
            if item.id in self._items:
                raise ValueError(f"Duplicate item id: {item.id}")
            # серия уходит в модель как {имя: кадр}, имена должны быть уникальны
            if item.name in names:
                raise ValueError(f"Duplicate file name: {item.name}")
            names.add(item.name)
            self._items[item.id] = item
        self._order: list[str] = list(self._items)

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[ImageItem]:
        with self._lock:
            snapshot = [self._items[i] for i in self._order]
        return iter(snapshot)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._order)

    def get(self, item_id: str) -> ImageItem | None:
        return self._items.get(item_id)

    def at(self, index: int) -> ImageItem:
        with self._lock:
            return self._items[self._order[index]]

    def index_of(self, item_id: str) -> int:
        with self._lock:
            return self._order.index(item_id)

    def first_pending_index(self) -> int | None:
        """Индекс первого элемента в статусе pending или None."""
        with self._lock:
            for index, item_id in enumerate(self._order):
                if self._items[item_id].status == Status.PENDING:
                    return index
        return None

    def has_unfinished(self) -> bool:
        with self._lock:
            return any(
                item.status in (Status.PENDING, Status.PROCESSING)
                for item in self._items.values()
            )

    # ── Переходы состояний ────────────────────────────────────────────────────

    def mark_processing(self, ids: Iterable[str]):
        ids = list(ids)
        with self._lock:
            for item_id in ids:
                status = self._items[item_id].status
                if status != Status.PENDING:
                    raise ValueError(f"{item_id} is {status}, expected pending")
            for item_id in ids:
                self._items[item_id].status = Status.PROCESSING

    def mark_done(self, results: dict[str, tuple[Evaluation, Path | None]]):
        """Применяет результаты батча разом: {id: (evaluation, metadata_ref)}."""
        with self._lock:
            for item_id, (evaluation, metadata_ref) in results.items():
                item = self._items.get(item_id)
                if item is None:
                    continue
                item.status = Status.DONE
                item.evaluation = evaluation
                item.error_message = None
                if metadata_ref is not None:
                    item.metadata_ref = metadata_ref

    def mark_error(self, ids: Iterable[str], message: str):
        with self._lock:
            for item_id in ids:
                item = self._items.get(item_id)
                if item is None:
                    continue
                item.status = Status.ERROR
                item.evaluation = None
                item.error_message = message

    def remove(self, item_id: str) -> ImageItem:
        with self._lock:
            item = self._items.pop(item_id)
            self._order.remove(item_id)
        return item

    # ── Статистика ────────────────────────────────────────────────────────────

    def counts(self) -> dict[str, int]:
        counts = {
            Status.PENDING: 0,
            Status.PROCESSING: 0,
            Status.DONE: 0,
            Status.ERROR: 0,
            "keep": 0,
            "reject": 0,
        }
        with self._lock:
            for item in self._items.values():
                counts[item.status] += 1
                if item.evaluation is not None:
                    counts["keep" if item.evaluation.is_worth_keeping else "reject"] += 1
        return counts

    def filter(self, kind: str = "all") -> list[ImageItem]:
        """Элементы по фильтру: all, keep (стоит оставить), reject (отбраковка)."""
        if kind not in FILTERS:
            raise ValueError(f"Unknown filter: {kind}")
        items = list(self)
        if kind == "keep":
            return [i for i in items if i.evaluation and i.evaluation.is_worth_keeping]
        if kind == "reject":
            return [i for i in items if i.evaluation and not i.evaluation.is_worth_keeping]
        return items
