# ── Работа с файлами: чтение, сайдкары, удаление, архив ───────────────────────

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from config import REJECTED_SUBFOLDER, Evaluation, ImageItem
from xmp import parse_xmp, sidecar_path, write_xmp

logger = logging.getLogger(__name__)


class ReadOnlySourceError(RuntimeError):
    """Операция требует записи, а источник открыт только на чтение."""


class FolderSource:
    """
    Источник изображений: папка (или набор отдельных файлов при read_only).
    В режиме read_only XMP не пишутся, удаление и архив запрещены.
    """

    def __init__(self, root: Path | None = None, read_only: bool = False):
        self.root = root
        self.read_only = read_only or root is None

    def read_bytes(self, item: ImageItem, limit: int | None = None) -> tuple[bytes, str, int]:
        """Байты файла (или первые limit байт), MIME-тип и mtime в ms."""
        last_modified = int(item.path.stat().st_mtime * 1000)
        with open(item.path, "rb") as f:
            data = f.read() if limit is None else f.read(limit)
        return data, item.mime_type, last_modified

    def write_metadata(self, item: ImageItem, evaluation: Evaluation) -> Path | None:
        """
        Записывает XMP рядом с фото (в metadata_ref, если он уже назначен).
        Для read_only источника ничего не делает.
        """
        if self.read_only:
            return None
        return write_xmp(item.path, evaluation, xmp_path=item.metadata_ref)

    def read_metadata(self, ref: Path) -> Evaluation | None:
        return parse_xmp(ref)

    def _require_writable(self):
        if self.read_only:
            raise ReadOnlySourceError("Source is read-only")

    def delete(self, item: ImageItem):
        """Удаляет фото и его XMP-сайдкар."""
        self._require_writable()
        item.path.unlink()
        xmp_path = item.metadata_ref or sidecar_path(item.path)
        if xmp_path.exists():
            xmp_path.unlink()
        logger.info("Deleted %s", item.name)

    def move_to_subfolder(self, item: ImageItem, subfolder: str = REJECTED_SUBFOLDER) -> Path:
        """Переносит фото (и XMP) в подпапку. Возвращает новый путь фото."""
        self._require_writable()
        target_dir = self.root / subfolder
        target_dir.mkdir(exist_ok=True)

        target = target_dir / item.path.name
        shutil.move(str(item.path), str(target))

        xmp_path = item.metadata_ref or sidecar_path(item.path)
        if xmp_path.exists():
            shutil.move(str(xmp_path), str(target_dir / xmp_path.name))
        return target
