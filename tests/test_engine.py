import io

import httpx
import numpy as np
import pytest
import soundfile as sf

from autopause.errors import EngineError
from autopause.services.engine import (
    HttpTranscriptionEngine,
    OpenAITranscriptionEngine,
    WhisperEngine,
    pcm_to_wav,
)


def _pcm(samples: int = 1600) -> bytes:
    return np.zeros(samples, dtype="<i2").tobytes()


def test_pcm_to_wav_is_playable():
    wav = pcm_to_wav(_pcm(800), 16_000)
    data, rate = sf.read(io.BytesIO(wav), dtype="int16")
    assert rate == 16_000
    assert data.shape == (800,)


def test_mock_whisper_engine():
    result = WhisperEngine(mock=True).transcribe(_pcm(320))
    assert result.text == "[mock transcript 320 samples]"
    assert result.request_id


def test_http_engine_posts_wav_with_api_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("X-API-Key")
        seen["body"] = request.read()
        return httpx.Response(200, json={"text": " hi there "})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    engine = HttpTranscriptionEngine("http://asr.local/", "secret", client=client)
    result = engine.transcribe(_pcm())

    assert result.text == "hi there"
    assert seen["url"] == "http://asr.local/v1/transcribe"
    assert seen["key"] == "secret"
    assert b"RIFF" in seen["body"]


@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(401), "Unauthorized"),
        (httpx.Response(503), "503"),
        (httpx.Response(200, content=b"not json"), "Invalid response"),
    ],
)
def test_http_engine_errors_become_engine_errors(response, message):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: response))
    engine = HttpTranscriptionEngine("http://asr.local", "secret", client=client)
    with pytest.raises(EngineError, match=message):
        engine.transcribe(_pcm())


def test_http_engine_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    engine = HttpTranscriptionEngine("http://asr.local", "secret", client=client)
    with pytest.raises(EngineError, match="refused"):
        engine.transcribe(_pcm())


def test_http_engine_requires_url_and_key():
    with pytest.raises(EngineError):
        HttpTranscriptionEngine("", "key")
    engine = HttpTranscriptionEngine("http://asr.local", "", client=httpx.Client())
    with pytest.raises(EngineError, match="API key"):
        engine.transcribe(_pcm())


def test_openai_engine_uses_injected_client():
    calls = {}

    class Transcriptions:
        def create(self, **kwargs):
            calls.update(kwargs)
            return type("Transcript", (), {"text": " from openai "})()

    class Client:
        audio = type("Audio", (), {"transcriptions": Transcriptions()})()

    engine = OpenAITranscriptionEngine(None, model="whisper-1", client=Client())
    result = engine.transcribe(_pcm())

    assert result.text == "from openai"
    assert calls["model"] == "whisper-1"
    assert calls["file"][2] == "audio/wav"
