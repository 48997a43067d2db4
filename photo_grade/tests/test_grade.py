import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from backlog import Backlog
from config import Evaluation, ImageItem, Status
from files import FolderSource, ReadOnlySourceError
from grade import archive_rejects, delete_item, process_folder
from xmp import parse_xmp, write_xmp


def write_png(path: Path):
    buffer = io.BytesIO()
    Image.new("RGB", (80, 60), (10, 140, 90)).save(buffer, format="PNG")
    path.write_bytes(buffer.getvalue())


def make_mock_grader():
    """Отбраковывает всё, что начинается на "r", остальное оставляет."""
    def verdict(name):
        return Evaluation(is_worth_keeping=not name.startswith("r"), rating=2 if name.startswith("r") else 4)

    grader = MagicMock()
    grader.model = "mock"
    grader.grade_one.side_effect = lambda image: Evaluation(is_worth_keeping=True, rating=4)
    grader.grade_group.side_effect = lambda images: {n: verdict(n) for n in images}
    return grader


def graded_item(folder: Path, name: str, keep: bool) -> ImageItem:
    path = folder / name
    write_png(path)
    evaluation = Evaluation(is_worth_keeping=keep)
    return ImageItem(
        id=name, name=name, path=path, mime_type="image/png",
        status=Status.DONE, evaluation=evaluation, metadata_ref=write_xmp(path, evaluation),
    )


# ── Пайплайн целиком ─────────────────────────────────────────────────────────

@patch("grade.POLL_INTERVAL", 0.01)
class TestProcessFolder:
    def test_grades_and_writes_sidecars(self, tmp_path):
        for name in ["a.png", "b.png", "c.png", "r1.png", "r2.png"]:
            write_png(tmp_path / name)
        grader = make_mock_grader()

        backlog = process_folder(tmp_path, grader=grader, tick_interval=0.05)

        assert all(i.status == Status.DONE for i in backlog)
        assert parse_xmp(tmp_path / "r1.xmp").is_worth_keeping is False
        assert parse_xmp(tmp_path / "a.xmp").is_worth_keeping is True
        counts = backlog.counts()
        assert counts["keep"] + counts["reject"] == 5

    def test_already_graded_folder_skips_grader(self, tmp_path):
        for name in ["a.png", "b.png"]:
            write_png(tmp_path / name)
            write_xmp(tmp_path / name, Evaluation(is_worth_keeping=True))

        with patch("grade.OllamaGrader") as mock_grader_cls:
            backlog = process_folder(tmp_path)

        mock_grader_cls.assert_not_called()
        assert backlog.counts()[Status.DONE] == 2

    def test_empty_folder(self, tmp_path):
        (tmp_path / "notes.txt").touch()
        assert process_folder(tmp_path, grader=MagicMock()) is None

    def test_read_only_writes_nothing(self, tmp_path):
        write_png(tmp_path / "a.png")

        backlog = process_folder(tmp_path, read_only=True, grader=make_mock_grader(), tick_interval=0.05)

        assert backlog.get("a.png").status == Status.DONE
        assert not (tmp_path / "a.xmp").exists()

    def test_archive_rejects(self, tmp_path):
        for name in ["a.png", "r1.png"]:
            write_png(tmp_path / name)

        backlog = process_folder(tmp_path, archive=True, grader=make_mock_grader(), tick_interval=0.05)

        assert backlog.ids() == ["a.png"]
        assert (tmp_path / "_Rejected" / "r1.png").exists()
        assert (tmp_path / "_Rejected" / "r1.xmp").exists()
        assert (tmp_path / "a.png").exists()

    def test_delete_before_grading(self, tmp_path):
        for name in ["a.png", "b.png"]:
            write_png(tmp_path / name)
        grader = make_mock_grader()

        backlog = process_folder(
            tmp_path, delete=["b.png", "missing.png"], grader=grader, tick_interval=0.05,
        )

        assert backlog.ids() == ["a.png"]
        assert not (tmp_path / "b.png").exists()
        grader.grade_group.assert_not_called()
        grader.grade_one.assert_called_once()

    def test_delete_refused_when_read_only(self, tmp_path):
        write_png(tmp_path / "a.png")

        backlog = process_folder(
            tmp_path, read_only=True, delete=["a.png"], grader=make_mock_grader(), tick_interval=0.05,
        )

        assert (tmp_path / "a.png").exists()
        assert backlog.ids() == ["a.png"]

    def test_grading_failure_marks_errors(self, tmp_path):
        for name in ["a.png", "b.png"]:
            write_png(tmp_path / name)
        grader = make_mock_grader()
        grader.grade_group.side_effect = RuntimeError("model offline")

        backlog = process_folder(tmp_path, grader=grader, tick_interval=0.05)

        assert all(i.status == Status.ERROR for i in backlog)
        assert backlog.get("a.png").error_message == "model offline"
        assert not (tmp_path / "a.xmp").exists()


# ── Архив и удаление ─────────────────────────────────────────────────────────

class TestArchiveRejects:
    def test_moves_only_rejects(self, tmp_path):
        backlog = Backlog([
            graded_item(tmp_path, "a.png", keep=True),
            graded_item(tmp_path, "b.png", keep=False),
        ])

        moved = archive_rejects(backlog, FolderSource(tmp_path))

        assert moved == 1
        assert backlog.ids() == ["a.png"]
        assert (tmp_path / "_Rejected" / "b.png").exists()

    def test_pauses_scheduler_first(self, tmp_path):
        backlog = Backlog([graded_item(tmp_path, "b.png", keep=False)])
        scheduler = MagicMock()

        archive_rejects(backlog, FolderSource(tmp_path), scheduler)

        scheduler.pause.assert_called_once()
        scheduler.wait_idle.assert_called_once()

    def test_read_only_refused(self, tmp_path):
        backlog = Backlog([graded_item(tmp_path, "b.png", keep=False)])
        with pytest.raises(ReadOnlySourceError):
            archive_rejects(backlog, FolderSource(tmp_path, read_only=True))
        assert (tmp_path / "b.png").exists()


class TestDeleteItem:
    def test_removes_file_and_item(self, tmp_path):
        backlog = Backlog([graded_item(tmp_path, "a.png", keep=False)])

        delete_item(backlog, FolderSource(tmp_path), "a.png")

        assert len(backlog) == 0
        assert not (tmp_path / "a.png").exists()
        assert not (tmp_path / "a.xmp").exists()

    def test_unknown_id(self, tmp_path):
        with pytest.raises(KeyError):
            delete_item(Backlog([]), FolderSource(tmp_path), "nope.png")

    def test_processing_item_refused(self, tmp_path):
        path = tmp_path / "a.png"
        write_png(path)
        backlog = Backlog([
            ImageItem(id="a.png", name="a.png", path=path, mime_type="image/png", status=Status.PROCESSING),
        ])
        with pytest.raises(ValueError):
            delete_item(backlog, FolderSource(tmp_path), "a.png")
        assert path.exists()
