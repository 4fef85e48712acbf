import struct
from pathlib import Path
from typing import Callable, Optional

import pytest

from narrador.infrastructure.ffmpeg import ProcessResult
from narrador.utils.cache import SpeechCache


def make_wav(seconds: float, rate: int = 24000, channels: int = 1, bits: int = 16, extra_chunk: bytes = b"") -> bytes:
    """WAV PCM en memoria; ``extra_chunk`` se inserta antes de fmt."""
    data = b"\x00" * int(seconds * rate * channels * bits // 8)
    fmt = struct.pack(
        "<HHIIHH",
        1,
        channels,
        rate,
        rate * channels * bits // 8,
        channels * bits // 8,
        bits,
    )
    body = b"WAVE" + extra_chunk
    body += b"fmt " + struct.pack("<I", len(fmt)) + fmt
    body += b"data" + struct.pack("<I", len(data)) + data
    return b"RIFF" + struct.pack("<I", len(body)) + body


class FakeRunner:
    """
    Sustituye a FFmpegRunner: registra cada invocación y crea el archivo
    de salida (último argumento) cuando la invocación tiene éxito. El
    contenido lleva el nombre del archivo para saber qué paso lo produjo.
    """

    def __init__(self, default_duration: float = 5.0, has_audio: bool = True):
        self.calls: list[list[str]] = []
        self.concat_lists: list[str] = []
        self.durations: dict[str, Optional[float]] = {}
        self.default_duration = default_duration
        self.has_audio = has_audio
        self.available = True
        self.fail_when: Optional[Callable[[list[str]], bool]] = None

    def run(self, args) -> ProcessResult:
        args = [str(a) for a in args]
        self.calls.append(args)

        if "concat" in args and "-i" in args:
            list_file = Path(args[args.index("-i") + 1])
            if list_file.exists():
                self.concat_lists.append(list_file.read_text(encoding="utf-8"))

        if self.fail_when is not None and self.fail_when(args):
            return ProcessResult(1, "", "simulated ffmpeg failure")

        output = Path(args[-1])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(f"fake-media:{output.name}".encode())
        return ProcessResult(0, "", "")

    def check_available(self) -> bool:
        return self.available

    def probe_duration(self, media_path) -> Optional[float]:
        name = Path(media_path).name
        if name in self.durations:
            return self.durations[name]
        return self.default_duration

    def has_audio_stream(self, media_path) -> bool:
        return self.has_audio

    def calls_with(self, needle: str) -> list[list[str]]:
        """Invocaciones donde algún argumento contiene ``needle``."""
        return [call for call in self.calls if any(needle in arg for arg in call)]


class FakeSynthesizer:
    def __init__(self, audio: Optional[bytes] = None):
        self.audio = audio if audio is not None else make_wav(1.5)
        self.calls: list[tuple[str, int, float]] = []

    def synthesize(self, text: str, speaker_id: int, speed: float = 1.0) -> bytes:
        self.calls.append((text, speaker_id, speed))
        return self.audio


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def speech_cache(tmp_path):
    cache = SpeechCache(tmp_path / "cache")
    yield cache
    cache.close()
