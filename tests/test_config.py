import pytest

from autopause.config import PipelineSettings, build_engine
from autopause.errors import ConfigurationError
from autopause.services.engine import HttpTranscriptionEngine, WhisperEngine


def test_defaults_and_paths(tmp_path):
    settings = PipelineSettings(data_dir=str(tmp_path))
    assert settings.sample_rate == 16_000
    assert settings.energy_threshold == 100.0
    assert settings.max_chunk_ms == 30_000
    assert settings.segment_log_file == tmp_path / "segments.json"
    assert settings.audio_path == tmp_path / "audio"
    assert settings.transcript_file == tmp_path / "transcripts.srt"


@pytest.mark.parametrize(
    "overrides",
    [
        {"sample_rate": 16_050},
        {"max_chunk_ms": 500, "min_chunk_ms": 500},
        {"retention_ms": 10_000, "transcription_ms": 15_000},
        {"silence_threshold_ms": 0},
        {"energy_threshold": -5},
        {"engine": "bogus"},
        {"interim_interval_s": 0},
        {"frame_ms": 20},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ConfigurationError):
        PipelineSettings(**overrides)


def test_build_engine_selects_adapter():
    assert isinstance(build_engine(PipelineSettings(engine="mock")), WhisperEngine)
    http = build_engine(PipelineSettings(engine="http", server_url="http://asr.local", api_key="k"))
    assert isinstance(http, HttpTranscriptionEngine)
    http.close()
