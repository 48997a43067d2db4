# ── Настройки photo_grade ─────────────────────────────────────────────────────

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Поддерживаемые форматы
JPEG_EXTENSIONS = {".jpg", ".jpeg"}
OTHER_EXTENSIONS = {".png", ".webp"}
SUPPORTED_EXTENSIONS = JPEG_EXTENSIONS | OTHER_EXTENSIONS
SIDECAR_EXTENSION = ".xmp"

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}
JPEG_MIME_TYPES = {"image/jpeg", "image/jpg"}

# ── EXIF ──────────────────────────────────────────────────────────────────────

EXIF_SCAN_BYTES = 64 * 1024   # заголовок EXIF ищем только в первых 64 КиБ

# ── Серии (burst) ─────────────────────────────────────────────────────────────

MAX_BATCH_SIZE = 4            # максимум кадров в одном запросе к модели
BURST_NEIGHBOR_MS = 2000      # < 2с между соседними кадрами
BURST_TOTAL_MS = 4000         # < 4с от первого кадра серии

# ── Планировщик ───────────────────────────────────────────────────────────────

TICK_INTERVAL = 1.0           # базовый интервал опроса очереди, с
FOLLOWUP_DELAY = 0.5          # повторная попытка сразу после батча, с

# ── Подготовка изображений ────────────────────────────────────────────────────

MAX_DIMENSION = 1500          # длинная сторона после ресайза, px
JPEG_QUALITY = 80

# ── AI-оценка (Ollama) ────────────────────────────────────────────────────────

OLLAMA_DEFAULT_MODEL = "llava"
OLLAMA_DEFAULT_URL = "http://localhost:11434"
OLLAMA_TIMEOUT = 300

# ── Файлы ─────────────────────────────────────────────────────────────────────

REJECTED_SUBFOLDER = "_Rejected"
RECENT_FOLDERS_FILE = Path.home() / ".photo_grade_recent.json"
MAX_RECENT_FOLDERS = 5


class Status:
    """Состояния элемента очереди: pending → processing → done | error."""
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


# ── Данные ────────────────────────────────────────────────────────────────────

@dataclass
class Evaluation:
    """Результат оценки фото моделью (или из существующего XMP)."""
    is_worth_keeping: bool
    rating: int = 3                      # рейтинг 1–5 (xmp:Rating)
    sharpness: float = 0.5               # 0–1
    exposure: float = 0.5                # 0–1
    composition: float = 0.5             # 0–1
    reasoning: str = ""                  # пояснение модели


@dataclass
class ImageItem:
    """Одно изображение в очереди на оценку."""
    id: str                              # имя файла (или путь для отдельных файлов)
    name: str                            # имя файла (DSCF1234.jpg)
    path: Path                           # путь к изображению
    mime_type: str = "image/jpeg"
    status: str = Status.PENDING
    evaluation: Evaluation | None = None
    error_message: str | None = None
    metadata_ref: Path | None = None     # XMP-сайдкар, если есть


def mime_type_for(path: Path) -> str:
    """MIME-тип по расширению файла."""
    return MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")
