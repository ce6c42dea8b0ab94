import json
from datetime import timedelta

import pytest

from autopause.errors import InvalidTransition, SegmentNotFound
from autopause.store.segment_log import SegmentLog, SegmentStatus


def _log(tmp_path):
    return SegmentLog(tmp_path / "segments.json")


def test_enqueue_assigns_increasing_indices(tmp_path):
    log = _log(tmp_path)
    first = log.enqueue("a.pcm", 0, 1600, session_id="s1")
    second = log.enqueue("a.pcm", 3200, 800, session_id="s1")

    assert (first.sequence_index, second.sequence_index) == (1, 2)
    assert first.status is SegmentStatus.PENDING
    assert len(log) == 2

    reopened = _log(tmp_path)
    assert [item.sequence_index for item in reopened.list()] == [1, 2]
    assert reopened.enqueue("b.pcm", 0, 10).sequence_index == 3


def test_happy_path_transitions(tmp_path):
    log = _log(tmp_path)
    index = log.enqueue("a.pcm", 0, 1600).sequence_index

    processing = log.mark_processing(index)
    assert processing.attempts == 1
    done = log.mark_completed(index, "hello")
    assert done.status is SegmentStatus.COMPLETED
    assert done.transcribed_text == "hello"
    assert done.completed_at is not None


def test_terminal_states_reject_changes(tmp_path):
    log = _log(tmp_path)
    index = log.enqueue("a.pcm", 0, 1600).sequence_index
    log.mark_processing(index)
    log.mark_completed(index, "hello")

    with pytest.raises(InvalidTransition) as excinfo:
        log.mark_processing(index)
    assert "completed" in str(excinfo.value)
    with pytest.raises(InvalidTransition):
        log.mark_failed(index, "late")
    assert log.get(index).transcribed_text == "hello"


def test_pending_cannot_complete_directly(tmp_path):
    log = _log(tmp_path)
    index = log.enqueue("a.pcm", 0, 1600).sequence_index
    with pytest.raises(InvalidTransition):
        log.mark_completed(index, "skipped a step")


def test_failure_reason_is_truncated(tmp_path):
    log = _log(tmp_path)
    index = log.enqueue("a.pcm", 0, 1600).sequence_index
    failed = log.mark_failed(index, "x" * 500)
    assert failed.status is SegmentStatus.FAILED
    assert len(failed.failure_reason) == 200


def test_unknown_index(tmp_path):
    with pytest.raises(SegmentNotFound):
        _log(tmp_path).get(42)


def test_crash_mid_call_is_recovered_once(tmp_path):
    log = _log(tmp_path)
    index = log.enqueue("a.pcm", 0, 1600).sequence_index
    log.mark_processing(index)

    restarted = _log(tmp_path)
    recovered = restarted.load_recoverable()
    assert [item.sequence_index for item in recovered] == [index]
    assert recovered[0].status is SegmentStatus.INTERRUPTED
    assert restarted.load_recoverable() == []

    restarted.mark_processing(index)
    restarted.mark_completed(index, "recovered text")
    assert restarted.get(index).attempts == 2
    with pytest.raises(InvalidTransition):
        restarted.mark_completed(index, "duplicate")


def test_recovery_skips_work_owned_by_this_process(tmp_path):
    log = _log(tmp_path)
    index = log.enqueue("a.pcm", 0, 1600).sequence_index
    log.mark_processing(index)

    assert log.load_recoverable() == []
    assert log.get(index).status is SegmentStatus.PROCESSING


def test_recovery_returns_pending_in_order(tmp_path):
    log = _log(tmp_path)
    for offset in (0, 100, 200):
        log.enqueue("a.pcm", offset, 50)

    restarted = _log(tmp_path)
    assert [item.sequence_index for item in restarted.load_recoverable()] == [1, 2, 3]


def test_cleanup_removes_only_old_terminal_records(tmp_path):
    log = _log(tmp_path)
    done = log.enqueue("a.pcm", 0, 10).sequence_index
    log.mark_processing(done)
    log.mark_completed(done, "text")
    failed = log.enqueue("b.pcm", 0, 10).sequence_index
    log.mark_failed(failed, "boom")
    waiting = log.enqueue("c.pcm", 0, 10).sequence_index

    assert log.cleanup(timedelta(days=1)) == []
    removed = log.cleanup(timedelta(seconds=-1))

    assert [item.sequence_index for item in removed] == [done, failed]
    assert [item.sequence_index for item in log.list()] == [waiting]
    assert log.referenced_audio() == {"c.pcm"}
    # indices are never reused after cleanup
    assert log.enqueue("d.pcm", 0, 10).sequence_index == waiting + 1


def test_document_layout_and_unknown_fields(tmp_path):
    path = tmp_path / "segments.json"
    log = SegmentLog(path)
    log.enqueue("a.pcm", 0, 10)

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert document["next_index"] == 2
    document["segments"][0]["future_field"] = "ignored"
    document["segments"].append({"sequence_index": "broken"})
    path.write_text(json.dumps(document), encoding="utf-8")

    reopened = SegmentLog(path)
    assert len(reopened) == 1
    assert reopened.get(1).audio_file_path == "a.pcm"


def test_corrupt_file_is_set_aside(tmp_path):
    path = tmp_path / "segments.json"
    path.write_text("{not json", encoding="utf-8")

    log = SegmentLog(path)
    assert len(log) == 0
    assert list(tmp_path.glob("segments.json.corrupt-*"))


def test_list_filters_by_status(tmp_path):
    log = _log(tmp_path)
    first = log.enqueue("a.pcm", 0, 10).sequence_index
    log.enqueue("a.pcm", 20, 10)
    log.mark_failed(first, "boom")

    assert [item.sequence_index for item in log.list(SegmentStatus.FAILED)] == [first]
    assert len(log.list(SegmentStatus.PENDING)) == 1
