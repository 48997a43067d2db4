import json
from datetime import datetime
from pathlib import Path

from config import MAX_RECENT_FOLDERS, RECENT_FOLDERS_FILE


def load_recent_folders(log_path: Path = RECENT_FOLDERS_FILE) -> list[dict]:
    """Список недавно открытых папок: [{path, name, last_accessed}], новые первыми."""
    if log_path.exists():
        with open(log_path) as f:
            data = json.load(f)
            return data.get("folders", [])
    return []


def save_recent_folder(folder: Path, log_path: Path = RECENT_FOLDERS_FILE) -> list[dict]:
    """Добавляет папку в начало списка (без дублей, не больше MAX_RECENT_FOLDERS)."""
    folder = folder.resolve()
    folders = [f for f in load_recent_folders(log_path) if f.get("path") != str(folder)]
    folders.insert(0, {
        "path": str(folder),
        "name": folder.name,
        "last_accessed": datetime.now().isoformat(timespec="seconds"),
    })
    folders = folders[:MAX_RECENT_FOLDERS]

    with open(log_path, "w") as f:
        json.dump({"folders": folders}, f, indent=2, ensure_ascii=False)
    return folders
