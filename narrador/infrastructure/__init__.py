"""Infraestructura: procesos externos"""

from .ffmpeg import FFmpegNotFoundError, FFmpegRunner, ProcessResult, find_ffmpeg

__all__ = ["FFmpegNotFoundError", "FFmpegRunner", "ProcessResult", "find_ffmpeg"]
