"""Módulo de utilidades"""

from .backoff import APIError, SynthesisError, with_retry
from .cache import FormatError, SpeechCache, wav_duration
from .fs import cleanup_temp_file, cleanup_work_dir, promote_file

__all__ = [
    "APIError",
    "FormatError",
    "SpeechCache",
    "SynthesisError",
    "cleanup_temp_file",
    "cleanup_work_dir",
    "promote_file",
    "wav_duration",
    "with_retry",
]
