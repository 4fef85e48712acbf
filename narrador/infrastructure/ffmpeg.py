"""
Ejecutor de FFmpeg / FFprobe.
Envoltorio síncrono que lanza los binarios con una lista de argumentos
y captura código de salida y diagnóstico.
"""
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

logger = logging.getLogger(__name__)


class FFmpegNotFoundError(RuntimeError):
    """FFmpeg o FFprobe no están instalados o no son ejecutables."""
    pass


@dataclass
class ProcessResult:
    """Resultado de una invocación externa."""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, lines: int = 15) -> str:
        """Últimas líneas del diagnóstico, para logs."""
        return "\n".join(self.stderr.strip().splitlines()[-lines:])


def find_ffmpeg(name: str = "ffmpeg", env_var: Optional[str] = None) -> Optional[str]:
    """
    Localiza un binario: primero la variable de entorno, luego el PATH.

    Args:
        name: Nombre del ejecutable (ffmpeg, ffprobe)
        env_var: Variable de entorno con una ruta explícita

    Returns:
        Ruta al ejecutable o None
    """
    if env_var:
        override = os.getenv(env_var)
        if override and Path(override).exists():
            return override
    return shutil.which(name)


class FFmpegRunner:
    """Lanza FFmpeg/FFprobe y devuelve su resultado sin lanzar excepciones por código != 0."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            ffmpeg_path: Ruta a ffmpeg (se busca en PATH si no se indica)
            ffprobe_path: Ruta a ffprobe (se busca en PATH si no se indica)
            timeout: Límite por invocación en segundos (None = sin límite)
        """
        self.ffmpeg_path = ffmpeg_path or find_ffmpeg("ffmpeg", "NARRADOR_FFMPEG") or "ffmpeg"
        self.ffprobe_path = ffprobe_path or find_ffmpeg("ffprobe", "NARRADOR_FFPROBE") or "ffprobe"
        self.timeout = timeout

    def _execute(self, binary: str, args: Sequence[str]) -> ProcessResult:
        cmd = [binary, *[str(a) for a in args]]
        logger.debug(f"Ejecutando: {' '.join(cmd)}")
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise FFmpegNotFoundError(f"No se encontró el ejecutable: {binary}") from e
        except subprocess.TimeoutExpired as e:
            logger.error(f"Tiempo agotado ejecutando {Path(binary).name} ({self.timeout}s)")
            stderr = e.stderr if isinstance(e.stderr, str) else ""
            return ProcessResult(returncode=-1, stderr=stderr or "timeout")

        return ProcessResult(completed.returncode, completed.stdout, completed.stderr)

    def run(self, args: Sequence[Union[str, Path]]) -> ProcessResult:
        """Ejecuta ffmpeg con los argumentos dados."""
        return self._execute(self.ffmpeg_path, args)

    def probe(self, args: Sequence[Union[str, Path]]) -> ProcessResult:
        """Ejecuta ffprobe con los argumentos dados."""
        return self._execute(self.ffprobe_path, args)

    def check_available(self) -> bool:
        """Verifica que FFmpeg esté instalado."""
        try:
            return self.run(["-version"]).ok
        except FFmpegNotFoundError:
            return False

    def probe_duration(self, media_path: Union[str, Path]) -> Optional[float]:
        """
        Obtiene la duración de un archivo multimedia.

        Returns:
            Segundos, o None si no se pudo leer
        """
        try:
            result = self.probe([
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(media_path),
            ])
        except FFmpegNotFoundError as e:
            logger.error(f"Error leyendo duración: {e}")
            return None

        if not result.ok:
            logger.error(f"Error leyendo duración de {media_path}: {result.stderr_tail(3)}")
            return None
        try:
            return float(result.stdout.strip())
        except ValueError:
            logger.error(f"Duración no válida para {media_path}: {result.stdout.strip()!r}")
            return None

    def has_audio_stream(self, media_path: Union[str, Path]) -> bool:
        """Indica si el archivo contiene al menos una pista de audio."""
        try:
            result = self.probe([
                "-v", "error",
                "-select_streams", "a",
                "-show_entries", "stream=index",
                "-of", "csv=p=0",
                str(media_path),
            ])
        except FFmpegNotFoundError:
            return False
        return result.ok and bool(result.stdout.strip())
