import os

import pytest

from config import Evaluation, ImageItem
from files import FolderSource, ReadOnlySourceError
from xmp import write_xmp


def make_item(path):
    return ImageItem(id=path.name, name=path.name, path=path)


class TestReadBytes:
    def test_full_file(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.write_bytes(b"\xff\xd8" + b"\x00" * 100)
        os.utime(photo, (1_700_000_000, 1_700_000_000))

        data, mime, mtime = FolderSource(tmp_path).read_bytes(make_item(photo))

        assert len(data) == 102
        assert mime == "image/jpeg"
        assert mtime == 1_700_000_000_000

    def test_limit(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.write_bytes(b"x" * 1000)
        data, _, _ = FolderSource(tmp_path).read_bytes(make_item(photo), limit=10)
        assert data == b"x" * 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FolderSource(tmp_path).read_bytes(make_item(tmp_path / "gone.jpg"))


class TestMetadata:
    def test_write_and_read(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.touch()
        source = FolderSource(tmp_path)
        evaluation = Evaluation(is_worth_keeping=True, rating=5)

        ref = source.write_metadata(make_item(photo), evaluation)

        assert ref == tmp_path / "a.xmp"
        assert source.read_metadata(ref) == evaluation

    def test_read_only_skips_write(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.touch()
        source = FolderSource(tmp_path, read_only=True)
        assert source.write_metadata(make_item(photo), Evaluation(is_worth_keeping=True)) is None
        assert not (tmp_path / "a.xmp").exists()

    def test_no_root_is_read_only(self):
        assert FolderSource(None).read_only


class TestDeleteAndMove:
    def test_delete_removes_sidecar(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.touch()
        write_xmp(photo, Evaluation(is_worth_keeping=False))

        FolderSource(tmp_path).delete(make_item(photo))

        assert not photo.exists()
        assert not (tmp_path / "a.xmp").exists()

    def test_delete_read_only(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.touch()
        with pytest.raises(ReadOnlySourceError):
            FolderSource(tmp_path, read_only=True).delete(make_item(photo))
        assert photo.exists()

    def test_move_to_subfolder(self, tmp_path):
        photo = tmp_path / "a.jpg"
        photo.touch()
        item = make_item(photo)
        item.metadata_ref = write_xmp(photo, Evaluation(is_worth_keeping=False))

        target = FolderSource(tmp_path).move_to_subfolder(item, "_Rejected")

        assert target == tmp_path / "_Rejected" / "a.jpg"
        assert target.exists()
        assert (tmp_path / "_Rejected" / "a.xmp").exists()
        assert not photo.exists()
