import hashlib
import itertools

import pytest

from conftest import make_wav
from narrador.utils.cache import FormatError, SpeechCache, wav_duration


@pytest.fixture
def clocked_cache(tmp_path):
    counter = itertools.count(1)
    cache = SpeechCache(tmp_path / "lru", max_bytes=350, clock=lambda: float(next(counter)))
    yield cache
    cache.close()


def test_key_is_md5_of_text_and_speaker():
    expected = hashlib.md5("こんにちは_3".encode("utf-8")).hexdigest()
    assert SpeechCache.make_key("こんにちは", 3) == expected


def test_path_is_deterministic_and_does_not_create_file(speech_cache):
    first = speech_cache.path("hola", 1)
    assert first == speech_cache.path("hola", 1)
    assert first != speech_cache.path("hola", 2)
    assert first.suffix == ".wav"
    assert not first.exists()
    assert not speech_cache.exists("hola", 1)


def test_save_then_load_returns_same_bytes(speech_cache):
    audio = make_wav(0.5)
    path = speech_cache.save("hola", 1, audio)

    assert path.exists()
    assert speech_cache.exists("hola", 1)
    assert speech_cache.load("hola", 1) == audio
    assert speech_cache.load("adiós", 1) is None


def test_save_leaves_no_temp_files(speech_cache):
    speech_cache.save("hola", 1, make_wav(0.1))
    assert list(speech_cache.cache_dir.glob("*.tmp")) == []


def test_duration_from_cached_wav(speech_cache):
    speech_cache.save("hola", 1, make_wav(1.5, rate=24000))
    assert speech_cache.duration_seconds("hola", 1) == pytest.approx(1.5)


def test_duration_missing_entry_is_none(speech_cache):
    assert speech_cache.duration_seconds("nada", 1) is None


def test_duration_of_corrupt_entry_raises_format_error(speech_cache):
    speech_cache.save("roto", 1, b"not a wav file at all, definitely" * 3)
    with pytest.raises(FormatError):
        speech_cache.duration_seconds("roto", 1)


def test_wav_duration_stereo_44k():
    assert wav_duration(make_wav(2.0, rate=44100, channels=2)) == pytest.approx(2.0)


def test_wav_duration_skips_odd_sized_chunks():
    # Chunk LIST de 3 bytes + 1 byte de relleno antes de fmt
    extra = b"LIST" + (3).to_bytes(4, "little") + b"abc" + b"\x00"
    assert wav_duration(make_wav(1.0, extra_chunk=extra)) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "data",
    [
        b"RIFF",
        b"XXXX" + b"\x00" * 60,
        b"RIFF" + b"\x00" * 4 + b"AVI " + b"\x00" * 60,
    ],
)
def test_wav_duration_rejects_bad_headers(data):
    with pytest.raises(FormatError):
        wav_duration(data)


def test_wav_duration_requires_data_chunk():
    wav = make_wav(1.0)
    without_data = wav[: wav.index(b"data")]
    without_data += b"\x00" * max(0, 44 - len(without_data))
    with pytest.raises(FormatError):
        wav_duration(without_data)


def test_eviction_removes_least_recently_used(clocked_cache):
    blob = b"x" * 100
    clocked_cache.save("a", 1, blob)
    clocked_cache.save("b", 1, blob)
    clocked_cache.save("c", 1, blob)

    # "a" vuelve a usarse: "b" pasa a ser la más antigua
    assert clocked_cache.lookup("a", 1) is not None
    clocked_cache.save("d", 1, blob)

    assert not clocked_cache.exists("b", 1)
    assert clocked_cache.exists("a", 1)
    assert clocked_cache.exists("c", 1)
    assert clocked_cache.exists("d", 1)
    assert clocked_cache.get_stats()["size_bytes"] <= 350


def test_eviction_keeps_last_entry_even_over_budget(tmp_path):
    cache = SpeechCache(tmp_path / "tiny", max_bytes=10)
    try:
        cache.save("grande", 1, b"x" * 100)
        assert cache.exists("grande", 1)
    finally:
        cache.close()


def test_clear_returns_deleted_count(speech_cache):
    speech_cache.save("a", 1, b"x")
    speech_cache.save("b", 1, b"y")
    assert speech_cache.clear() == 2
    assert not speech_cache.exists("a", 1)
