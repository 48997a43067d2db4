# ── Загрузка папки: поиск фото, привязка существующих XMP ─────────────────────

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Callable, Iterable

from backlog import Backlog
from config import SIDECAR_EXTENSION, SUPPORTED_EXTENSIONS, Evaluation, ImageItem, Status, mime_type_for
from files import FolderSource

logger = logging.getLogger(__name__)

MetadataReader = Callable[[Path], Evaluation | None]


def find_images(folder: Path) -> list[Path]:
    """Находит все поддерживаемые изображения в папке (без рекурсии, сортировка)."""
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
    )


def _sidecars_by_stem(paths: Iterable[Path]) -> dict[str, Path]:
    return {
        p.stem.lower(): p
        for p in paths
        if p.suffix.lower() == SIDECAR_EXTENSION
    }


def find_sidecars(folder: Path) -> dict[str, Path]:
    """XMP-сайдкары папки: {stem в нижнем регистре: путь}."""
    return _sidecars_by_stem(f for f in folder.iterdir() if f.is_file())


def shared_sidecar_path(photo_path: Path) -> Path:
    """IMG.jpg → IMG.jpg.xmp: для фото, у которых в папке есть тёзка с другим расширением."""
    return photo_path.parent / f"{photo_path.name}{SIDECAR_EXTENSION}"


def _make_item(
    path: Path,
    item_id: str,
    sidecar: Path | None,
    read_metadata: MetadataReader,
    keep_unparsed_ref: bool,
) -> ImageItem:
    """
    Создаёт элемент очереди. Если XMP читается, фото уже оценено: статус done,
    повторной оценки не будет.
    """
    item = ImageItem(id=item_id, name=path.name, path=path, mime_type=mime_type_for(path))
    if sidecar is None:
        return item

    evaluation = read_metadata(sidecar)
    if evaluation is not None:
        item.status = Status.DONE
        item.evaluation = evaluation
        item.metadata_ref = sidecar
    elif keep_unparsed_ref:
        item.metadata_ref = sidecar
    return item


def load_folder(folder: Path, source: FolderSource | None = None) -> Backlog:
    """
    Backlog из папки. Фото с валидным XMP сразу получают статус done.
    IMG.jpg и IMG.png в одной папке получают отдельные IMG.jpg.xmp и IMG.png.xmp.
    """
    source = source or FolderSource(folder)
    images = find_images(folder)
    sidecars = find_sidecars(folder)
    stems = Counter(p.stem.lower() for p in images)

    items = []
    for path in images:
        shared_stem = stems[path.stem.lower()] > 1
        key = path.name.lower() if shared_stem else path.stem.lower()
        item = _make_item(path, path.name, sidecars.get(key), source.read_metadata, keep_unparsed_ref=True)
        if shared_stem and item.metadata_ref is None:
            item.metadata_ref = shared_sidecar_path(path)
        items.append(item)

    backlog = Backlog(items)
    logger.info(
        "Loaded %d images from %s (%d already graded)",
        len(backlog), folder, backlog.counts()[Status.DONE],
    )
    return backlog


def load_files(paths: Iterable[Path], source: FolderSource | None = None) -> Backlog:
    """
    Backlog из набора отдельных файлов (режим только чтения).
    XMP ищутся среди тех же файлов в той же папке, id = полный путь.
    Второй файл с тем же именем (из другой папки) пропускается.
    """
    source = source or FolderSource(None, read_only=True)
    paths = [Path(p) for p in paths]
    sidecars = {
        (p.parent, p.stem.lower()): p
        for p in paths
        if p.suffix.lower() == SIDECAR_EXTENSION
    }

    items = []
    seen_names = set()
    for p in paths:
        if p.suffix.lower() not in SUPPORTED_EXTENSIONS:
            continue
        if p.name in seen_names:
            logger.warning("Skipping %s: another file named %s is already selected", p, p.name)
            continue
        seen_names.add(p.name)
        items.append(_make_item(
            p, str(p), sidecars.get((p.parent, p.stem.lower())),
            source.read_metadata, keep_unparsed_ref=False,
        ))
    return Backlog(items)
