#!/usr/bin/env python3
"""
Photo Grade: автоматическая оценка фотографий через Ollama vision.
Серии кадров (burst) оцениваются одним запросом, результат пишется
в XMP-сайдкар рядом с каждым фото.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from ai_grader import OllamaGrader
from backlog import Backlog
from config import (
    OLLAMA_DEFAULT_MODEL,
    OLLAMA_DEFAULT_URL,
    REJECTED_SUBFOLDER,
    TICK_INTERVAL,
    Status,
)
from files import FolderSource, ReadOnlySourceError
from ingest import load_files, load_folder
from recent import load_recent_folders, save_recent_folder
from scheduler import ProcessingScheduler

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


def delete_item(backlog: Backlog, source: FolderSource, item_id: str):
    """Удаляет фото с диска (вместе с XMP) и из очереди."""
    item = backlog.get(item_id)
    if item is None:
        raise KeyError(item_id)
    if item.status == Status.PROCESSING:
        raise ValueError(f"{item.name} is being processed")
    source.delete(item)
    backlog.remove(item_id)


def archive_rejects(
    backlog: Backlog,
    source: FolderSource,
    scheduler: ProcessingScheduler | None = None,
) -> int:
    """
    Переносит отбракованные фото в _Rejected и убирает их из очереди.
    Обработка ставится на паузу. Возвращает количество перенесённых.
    """
    if source.read_only:
        raise ReadOnlySourceError("Cannot archive in read-only mode")
    if scheduler is not None:
        scheduler.pause()
        scheduler.wait_idle()

    moved = 0
    for item in backlog.filter("reject"):
        source.move_to_subfolder(item, REJECTED_SUBFOLDER)
        backlog.remove(item.id)
        moved += 1
    return moved


def _delete_named(backlog: Backlog, source: FolderSource, names: list[str]):
    """Удаляет фото по имени файла до начала оценки."""
    if source.read_only:
        print("  ⚠️  Удаление недоступно в режиме только чтения")
        return
    by_name = {item.name: item.id for item in backlog}
    for name in names:
        item_id = by_name.get(name)
        if item_id is None:
            print(f"  ⚠️  Нет такого фото: {name}")
            continue
        delete_item(backlog, source, item_id)
        print(f"  🗑️  Удалено: {name}")


def print_summary(backlog: Backlog, archived: int = 0):
    """Печатает итоговую статистику."""
    counts = backlog.counts()

    print(f"\n{'─' * 50}")
    print(f"  📊 Итого: {len(backlog)} фото")
    print(f"     ✅ Стоит оставить: {counts['keep']}")
    print(f"     🗑️  Отбраковка:     {counts['reject']}")
    if counts[Status.ERROR]:
        print(f"     ⚠️  Ошибок:         {counts[Status.ERROR]}")
    if counts[Status.PENDING]:
        print(f"     ⏸️  Не оценено:     {counts[Status.PENDING]}")
    if archived:
        print(f"  📦 Перенесено в {REJECTED_SUBFOLDER}: {archived}")
    print(f"{'─' * 50}")


def _drain(scheduler: ProcessingScheduler, backlog: Backlog, verbose: bool = False):
    """Ждёт, пока очередь не опустеет. Ctrl+C: пауза и ожидание текущего батча."""
    scheduler.start()
    last_done = -1
    try:
        while backlog.has_unfinished():
            counts = backlog.counts()
            finished = counts[Status.DONE] + counts[Status.ERROR]
            if finished != last_done:
                last_done = finished
                print(f"     [{finished}/{len(backlog)}] "
                      f"✅ {counts['keep']}  🗑️  {counts['reject']}  ⚠️  {counts[Status.ERROR]}")
            time.sleep(POLL_INTERVAL)
    except KeyboardInterrupt:
        print("\n  ⏸️  Пауза, дожидаюсь текущего батча...")
        scheduler.pause()
        scheduler.wait_idle()
    finally:
        scheduler.stop()

    if verbose:
        for item in backlog:
            if item.status == Status.ERROR:
                print(f"     ⚠️  {item.name}: {item.error_message}")


def process_folder(
    folder: Path | None = None,
    files: list[Path] | None = None,
    read_only: bool = False,
    archive: bool = False,
    verbose: bool = False,
    ollama_model: str = OLLAMA_DEFAULT_MODEL,
    ollama_url: str = OLLAMA_DEFAULT_URL,
    tick_interval: float = TICK_INTERVAL,
    delete: list[str] | None = None,
    grader=None,
) -> Backlog | None:
    """Основной пайплайн: загрузка → оценка в фоне → итоги."""
    if files:
        print(f"\n📂 Файлов выбрано: {len(files)} (только чтение, XMP не пишутся)")
        source = FolderSource(None, read_only=True)
        backlog = load_files(files, source)
    else:
        print(f"\n📂 Сканирование: {folder}")
        source = FolderSource(folder, read_only=read_only)
        backlog = load_folder(folder, source)

    if not len(backlog):
        print("  ❌ Фото не найдены")
        return None

    if delete:
        _delete_named(backlog, source, delete)

    counts = backlog.counts()
    print(f"  📷 Найдено: {len(backlog)} фото, уже оценено: {counts[Status.DONE]}")

    if counts[Status.PENDING]:
        grader = grader or OllamaGrader(model=ollama_model, ollama_url=ollama_url)
        print(f"  🤖 AI-оценка ({grader.model})...")
        scheduler = ProcessingScheduler(backlog, grader, source, tick_interval=tick_interval)
        _drain(scheduler, backlog, verbose=verbose)
    else:
        scheduler = None

    archived = 0
    if archive:
        if source.read_only:
            print("  ⚠️  Архивация недоступна в режиме только чтения")
        else:
            archived = archive_rejects(backlog, source, scheduler)

    print_summary(backlog, archived)
    return backlog


def print_recent():
    folders = load_recent_folders()
    if not folders:
        print("Недавних папок нет")
        return
    print("🕘 Недавние папки:")
    for f in folders:
        print(f"   {f['last_accessed']}  {f['path']}")


def main():
    parser = argparse.ArgumentParser(
        description="Photo Grade: автоматическая оценка фотографий"
    )
    parser.add_argument("folder", type=Path, nargs="?", help="Папка с фотографиями")
    parser.add_argument("--files", type=Path, nargs="+",
                        help="Отдельные файлы вместо папки (только чтение)")
    parser.add_argument("--read-only", action="store_true",
                        help="Не записывать XMP-файлы")
    parser.add_argument("--archive-rejects", action="store_true",
                        help=f"Перенести отбракованные фото в {REJECTED_SUBFOLDER}")
    parser.add_argument("--delete", nargs="+", metavar="NAME",
                        help="Удалить фото (и их XMP) по имени файла перед оценкой")
    parser.add_argument("--recent", action="store_true",
                        help="Показать недавно открытые папки")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Подробный вывод")
    parser.add_argument("--model", default=OLLAMA_DEFAULT_MODEL,
                        help=f"Ollama model (default: {OLLAMA_DEFAULT_MODEL})")
    parser.add_argument("--ollama-url", default=OLLAMA_DEFAULT_URL,
                        help=f"Ollama API URL (default: {OLLAMA_DEFAULT_URL})")
    parser.add_argument("--tick", type=float, default=TICK_INTERVAL,
                        help=f"Интервал опроса очереди, с (default: {TICK_INTERVAL})")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.recent:
        print_recent()
        return

    if not args.files:
        if args.folder is None or not args.folder.is_dir():
            print(f"❌ Папка не найдена: {args.folder}")
            sys.exit(1)
        try:
            save_recent_folder(args.folder)
        except OSError as e:
            logger.warning("Cannot update recent folders: %s", e)

    process_folder(
        args.folder,
        files=args.files,
        read_only=args.read_only,
        archive=args.archive_rejects,
        verbose=args.verbose,
        ollama_model=args.model,
        ollama_url=args.ollama_url,
        tick_interval=args.tick,
        delete=args.delete,
    )


if __name__ == "__main__":
    main()
