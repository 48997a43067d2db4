# ── Время съёмки из EXIF (DateTimeOriginal) ───────────────────────────────────

from __future__ import annotations

import logging
import re
import struct
from datetime import datetime

from config import JPEG_MIME_TYPES

logger = logging.getLogger(__name__)

SOI_MARKER = 0xFFD8
APP1_MARKER = 0xFFE1
EXIF_SIGNATURE = b"Exif"
TIFF_MAGIC = 0x002A
TAG_DATETIME_ORIGINAL = 0x9003
DATETIME_LENGTH = 19          # "YYYY:MM:DD HH:MM:SS"
IFD_ENTRY_SIZE = 12

_DATE_SEPARATORS = re.compile(r"^(\d{4}):(\d{2}):(\d{2})")


class _InvalidExif(Exception):
    """Битый TIFF-заголовок или выход за пределы прочитанных байт."""


def _read(fmt: str, data: bytes, offset: int) -> int:
    if offset < 0 or offset + struct.calcsize(fmt) > len(data):
        raise _InvalidExif(f"truncated at offset {offset}")
    return struct.unpack_from(fmt, data, offset)[0]


def _parse_datetime(raw: bytes) -> int | None:
    """'2023:10:25 14:30:00' → epoch ms (локальное время) или None."""
    try:
        text = raw.decode("ascii")
    except UnicodeDecodeError:
        return None
    normalized = _DATE_SEPARATORS.sub(r"\1-\2-\3", text)
    try:
        dt = datetime.strptime(normalized, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None
    return int(dt.timestamp() * 1000)


def _find_in_tiff(data: bytes, tiff_start: int) -> int | None:
    """
    Ищет DateTimeOriginal в первой IFD.
    Возвращает epoch ms или None, если тега нет.
    """
    little = _read(">H", data, tiff_start) == 0x4949
    order = "<" if little else ">"

    if _read(order + "H", data, tiff_start + 2) != TIFF_MAGIC:
        raise _InvalidExif("bad TIFF magic")

    first_ifd = _read(order + "I", data, tiff_start + 4)
    if first_ifd < 8:
        raise _InvalidExif(f"first IFD offset {first_ifd}")

    dir_start = tiff_start + first_ifd
    entries = _read(order + "H", data, dir_start)

    for i in range(entries):
        entry = dir_start + 2 + i * IFD_ENTRY_SIZE
        if _read(order + "H", data, entry) != TAG_DATETIME_ORIGINAL:
            continue
        value_offset = _read(order + "I", data, entry + 8)
        start = tiff_start + value_offset
        if start + DATETIME_LENGTH > len(data):
            raise _InvalidExif(f"truncated at offset {start}")
        timestamp = _parse_datetime(data[start:start + DATETIME_LENGTH])
        if timestamp is not None:
            return timestamp

    return None


def extract_capture_time(data: bytes, mime_type: str, last_modified: int) -> int:
    """
    Время съёмки (epoch ms) из EXIF JPEG-файла.
    При любой проблеме разбора возвращает last_modified, исключений наружу нет.
    """
    if mime_type not in JPEG_MIME_TYPES:
        return last_modified

    try:
        if _read(">H", data, 0) != SOI_MARKER:
            return last_modified

        offset = 2
        while offset < len(data):
            marker = _read(">H", data, offset)
            offset += 2

            if marker == APP1_MARKER:
                segment_length = _read(">H", data, offset)
                if data[offset + 2:offset + 6] == EXIF_SIGNATURE:
                    # 2 байта длины + "Exif" + 2 байта паддинга
                    result = _find_in_tiff(data, offset + 8)
                    if result is not None:
                        return result
                offset += segment_length
            elif marker & 0xFF00 != 0xFF00:
                break
            else:
                offset += _read(">H", data, offset)
    except _InvalidExif as e:
        logger.debug("EXIF parse failed, using mtime: %s", e)

    return last_modified
