import json

import httpx
import pytest

from conftest import make_wav
from narrador.tts.voicevox import VoiceVoxClient
from narrador.utils.backoff import SynthesisError

BASE_URL = "http://voicevox.test:50021"
WAV = make_wav(0.2)


class Engine:
    """Motor VOICEVOX simulado sobre httpx.MockTransport."""

    def __init__(self, failures: int = 0, audio: bytes = WAV):
        self.failures = failures
        self.audio = audio
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/version":
            return httpx.Response(200, text='"0.14.7"')
        if request.url.path == "/audio_query":
            if self.failures > 0:
                self.failures -= 1
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"speedScale": 1.0, "accent_phrases": []})
        if request.url.path == "/synthesis":
            return httpx.Response(200, content=self.audio, headers={"content-type": "audio/wav"})
        return httpx.Response(404)


def make_client(engine: Engine, **kwargs) -> VoiceVoxClient:
    transport = httpx.MockTransport(engine)
    return VoiceVoxClient(
        base_url=BASE_URL,
        retry_delay=0,
        client=httpx.Client(transport=transport),
        **kwargs,
    )


def synthesis_body(engine: Engine) -> dict:
    request = [r for r in engine.requests if r.url.path == "/synthesis"][-1]
    return json.loads(request.content)


def test_synthesize_sends_query_then_synthesis():
    engine = Engine()
    client = make_client(engine)

    audio = client.synthesize("こんにちは", 3)

    assert audio == WAV
    query, synthesis = engine.requests
    assert query.method == "POST"
    assert query.url.params["text"] == "こんにちは"
    assert query.url.params["speaker"] == "3"
    assert synthesis.url.params["speaker"] == "3"
    assert synthesis_body(engine)["speedScale"] == 1.0


def test_speed_is_written_into_query():
    engine = Engine()
    make_client(engine).synthesize("hola", 1, speed=1.5)
    assert synthesis_body(engine)["speedScale"] == 1.5


def test_retries_until_success():
    engine = Engine(failures=2)
    audio = make_client(engine).synthesize("hola", 1)

    assert audio == WAV
    assert [r.url.path for r in engine.requests] == [
        "/audio_query", "/audio_query", "/audio_query", "/synthesis",
    ]


def test_all_attempts_fail():
    engine = Engine(failures=10)
    with pytest.raises(SynthesisError):
        make_client(engine, max_attempts=3).synthesize("hola", 1)
    assert len(engine.requests) == 3


def test_empty_audio_is_an_error():
    engine = Engine(audio=b"")
    with pytest.raises(SynthesisError):
        make_client(engine).synthesize("hola", 1)


def test_check_connection_returns_version():
    assert make_client(Engine()).check_connection() == "0.14.7"


def test_check_connection_unreachable():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = VoiceVoxClient(base_url=BASE_URL, client=httpx.Client(transport=httpx.MockTransport(refuse)))
    assert client.check_connection() is None


def test_base_url_from_environment(monkeypatch):
    monkeypatch.setenv("VOICEVOX_URL", "http://otro:1234/")
    client = VoiceVoxClient(client=httpx.Client(transport=httpx.MockTransport(Engine())))
    assert client.base_url == "http://otro:1234"


def test_non_json_query_reply_is_a_synthesis_error():
    def proxy(request):
        return httpx.Response(200, text="<html>Bad gateway</html>", headers={"content-type": "text/html"})

    client = VoiceVoxClient(base_url=BASE_URL, retry_delay=0, client=httpx.Client(transport=httpx.MockTransport(proxy)))
    with pytest.raises(SynthesisError, match="Respuesta inválida"):
        client.synthesize("hola", 1)
