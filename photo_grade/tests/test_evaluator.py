from pathlib import Path
from unittest.mock import MagicMock

import requests

from backlog import Backlog
from burst import BurstCandidate
from config import Evaluation, ImageItem, Status
from evaluator import run_batch
from images import PreparedImage


def fake_prepare(data: bytes) -> PreparedImage:
    return PreparedImage(data=data.decode())


def make_source():
    source = MagicMock()
    source.read_bytes.side_effect = lambda item: (item.name.encode(), "image/jpeg", 0)
    source.write_metadata.side_effect = lambda item, ev: item.path.with_suffix(".xmp")
    return source


def setup(names):
    items = [ImageItem(id=n, name=n, path=Path("/p") / n) for n in names]
    backlog = Backlog(items)
    backlog.mark_processing(names)
    run = [BurstCandidate(index=i, item=backlog.get(n), captured_at=0) for i, n in enumerate(names)]
    return backlog, run


def statuses(backlog):
    return [i.status for i in backlog]


class TestSingle:
    def test_success(self):
        backlog, run = setup(["a.jpg"])
        grader = MagicMock()
        grader.grade_one.return_value = Evaluation(is_worth_keeping=True, rating=5)
        source = make_source()

        outcome = run_batch(run, backlog, grader, source, prepare=fake_prepare)

        assert outcome.ok
        grader.grade_one.assert_called_once_with(PreparedImage(data="a.jpg"))
        grader.grade_group.assert_not_called()
        a = backlog.get("a.jpg")
        assert a.status == Status.DONE
        assert a.evaluation.rating == 5
        assert a.metadata_ref == Path("/p/a.xmp")

    def test_transport_error(self):
        backlog, run = setup(["a.jpg"])
        grader = MagicMock()
        grader.grade_one.side_effect = requests.ConnectionError("Connection refused")

        outcome = run_batch(run, backlog, grader, make_source(), prepare=fake_prepare)

        assert not outcome.ok
        a = backlog.get("a.jpg")
        assert a.status == Status.ERROR
        assert a.error_message == "Connection refused"
        assert a.evaluation is None

    def test_sidecar_failure_keeps_grade(self):
        backlog, run = setup(["a.jpg"])
        grader = MagicMock()
        grader.grade_one.return_value = Evaluation(is_worth_keeping=False)
        source = make_source()
        source.write_metadata.side_effect = PermissionError("read-only disk")

        outcome = run_batch(run, backlog, grader, source, prepare=fake_prepare)

        assert outcome.ok
        a = backlog.get("a.jpg")
        assert a.status == Status.DONE
        assert a.evaluation.is_worth_keeping is False
        assert a.metadata_ref is None

    def test_read_only_source(self):
        backlog, run = setup(["a.jpg"])
        grader = MagicMock()
        grader.grade_one.return_value = Evaluation(is_worth_keeping=True)
        source = make_source()
        source.write_metadata.side_effect = None
        source.write_metadata.return_value = None

        run_batch(run, backlog, grader, source, prepare=fake_prepare)

        assert backlog.get("a.jpg").status == Status.DONE
        assert backlog.get("a.jpg").metadata_ref is None


class TestGroup:
    def test_success(self):
        backlog, run = setup(["a.jpg", "b.jpg", "c.jpg"])
        grader = MagicMock()
        grader.grade_group.side_effect = lambda images: {
            name: Evaluation(is_worth_keeping=name != "b.jpg") for name in images
        }
        source = make_source()

        outcome = run_batch(run, backlog, grader, source, prepare=fake_prepare)

        assert outcome.ok
        grader.grade_group.assert_called_once()
        sent = grader.grade_group.call_args[0][0]
        assert sent == {
            "a.jpg": PreparedImage(data="a.jpg"),
            "b.jpg": PreparedImage(data="b.jpg"),
            "c.jpg": PreparedImage(data="c.jpg"),
        }
        assert statuses(backlog) == [Status.DONE] * 3
        assert backlog.get("b.jpg").evaluation.is_worth_keeping is False
        assert source.write_metadata.call_count == 3
        assert set(outcome.metadata_refs) == {"a.jpg", "b.jpg", "c.jpg"}

    def test_missing_member_fails_whole_batch(self):
        backlog, run = setup(["a.jpg", "b.jpg", "c.jpg"])
        grader = MagicMock()
        grader.grade_group.return_value = {
            "a.jpg": Evaluation(is_worth_keeping=True),
            "c.jpg": Evaluation(is_worth_keeping=True),
        }
        source = make_source()

        outcome = run_batch(run, backlog, grader, source, prepare=fake_prepare)

        assert not outcome.ok
        assert statuses(backlog) == [Status.ERROR] * 3
        assert all("b.jpg" in i.error_message for i in backlog)
        assert all(i.evaluation is None for i in backlog)
        source.write_metadata.assert_not_called()

    def test_preparation_failure_fails_all(self):
        backlog, run = setup(["a.jpg", "b.jpg"])
        grader = MagicMock()

        def prepare(data):
            if data == b"b.jpg":
                raise OSError("cannot identify image file")
            return fake_prepare(data)

        outcome = run_batch(run, backlog, grader, make_source(), prepare=prepare)

        assert not outcome.ok
        assert statuses(backlog) == [Status.ERROR] * 2
        grader.grade_group.assert_not_called()

    def test_read_failure_fails_all(self):
        backlog, run = setup(["a.jpg", "b.jpg"])
        source = make_source()
        source.read_bytes.side_effect = FileNotFoundError("a.jpg")

        outcome = run_batch(run, backlog, MagicMock(), source, prepare=fake_prepare)

        assert not outcome.ok
        assert statuses(backlog) == [Status.ERROR] * 2

    def test_empty_exception_message(self):
        backlog, run = setup(["a.jpg", "b.jpg"])
        grader = MagicMock()
        grader.grade_group.side_effect = TimeoutError()

        outcome = run_batch(run, backlog, grader, make_source(), prepare=fake_prepare)

        assert outcome.error == "TimeoutError"
        assert backlog.get("a.jpg").error_message == "TimeoutError"
