from autopause.store.segment_log import PersistedSegment, SegmentStatus
from autopause.store.transcript_store import TranscriptStore


def _segment(index: int, text: str | None, *, offset: int = 0, samples: int = 16_000) -> PersistedSegment:
    return PersistedSegment(
        sequence_index=index,
        session_id="sess",
        audio_file_path="sess.pcm",
        byte_offset=offset,
        sample_count=samples,
        status=SegmentStatus.COMPLETED,
        transcribed_text=text,
    )


def test_transcript_store_writes_srt_cues(tmp_path):
    path = tmp_path / "transcripts.srt"
    store = TranscriptStore(path, sample_rate=16_000)
    store.append(_segment(1, "hello world", samples=24_000))
    store.append(_segment(2, "second", offset=48_000, samples=8_000))

    content = path.read_text(encoding="utf-8")
    assert "1\n00:00:00,000 --> 00:00:01,500\nsess: hello world" in content
    assert "2\n00:00:01,500 --> 00:00:02,000\nsess: second" in content


def test_transcript_store_skips_blank_text(tmp_path):
    path = tmp_path / "transcripts.srt"
    store = TranscriptStore(path)
    store.append(_segment(1, "   "))
    store.append(_segment(2, None))
    assert not path.exists()


def test_timestamp_format():
    assert TranscriptStore._format_timestamp(3_723_004) == "01:02:03,004"
