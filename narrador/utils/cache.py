"""
Cache en disco para audio sintetizado.
Evita volver a sintetizar el mismo texto con la misma voz.
"""

import hashlib
import logging
import os
import struct
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Union

from diskcache import Cache

logger = logging.getLogger(__name__)

SpeakerKey = Union[int, str]

WAV_HEADER_SIZE = 44


class FormatError(ValueError):
    """El archivo de audio no tiene una cabecera WAV válida."""
    pass


def wav_duration(data: bytes) -> float:
    """
    Calcula la duración de un WAV recorriendo sus chunks.

    No invoca FFmpeg: sólo lee las cabeceras ``fmt `` y ``data``.

    Args:
        data: Contenido completo del archivo WAV

    Returns:
        Duración en segundos

    Raises:
        FormatError: Si la cabecera es inválida o faltan chunks
    """
    if len(data) < WAV_HEADER_SIZE:
        raise FormatError(f"WAV demasiado corto ({len(data)} bytes)")
    if data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise FormatError("Falta la firma RIFF/WAVE")

    channels = sample_rate = bits = None
    data_size = None
    offset = 12
    while offset + 8 <= len(data):
        chunk_id = data[offset:offset + 4]
        chunk_size = struct.unpack_from("<I", data, offset + 4)[0]
        body = offset + 8

        if chunk_id == b"fmt ":
            if chunk_size < 16 or body + 16 > len(data):
                raise FormatError("Chunk fmt incompleto")
            channels, sample_rate = struct.unpack_from("<HI", data, body + 2)
            bits = struct.unpack_from("<H", data, body + 14)[0]
        elif chunk_id == b"data":
            data_size = min(chunk_size, len(data) - body)
            if channels is not None:
                break

        # Los chunks se alinean a tamaño par
        offset = body + chunk_size + (chunk_size & 1)

    if channels is None or data_size is None:
        raise FormatError("No se encontraron los chunks fmt/data")

    bytes_per_second = sample_rate * channels * bits / 8
    if bytes_per_second <= 0:
        raise FormatError("Formato de audio inválido (tasa de bytes nula)")

    return data_size / bytes_per_second


class SpeechCache:
    """
    Cache persistente de audio sintetizado, direccionado por contenido.

    Cada entrada es un archivo ``<md5>.wav``; la fecha de último acceso y el
    tamaño se guardan en un índice diskcache para la expulsión LRU.
    """

    DEFAULT_MAX_BYTES = 500 * 1024 * 1024

    def __init__(
        self,
        cache_dir: Union[str, Path] = "./cache/audio",
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], float] = time.time,
    ):
        """
        Inicializa el cache.

        Args:
            cache_dir: Directorio donde se guardan los WAV
            max_bytes: Tamaño máximo total antes de expulsar entradas
            clock: Fuente de tiempo para el último acceso
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes
        self._clock = clock
        self.index = Cache(str(self.cache_dir / ".index"))

    @staticmethod
    def make_key(text: str, speaker_id: SpeakerKey) -> str:
        """Genera la clave (no criptográfica) para un par texto/voz."""
        raw = f"{text}_{speaker_id}".encode("utf-8")
        return hashlib.md5(raw, usedforsecurity=False).hexdigest()

    def path(self, text: str, speaker_id: SpeakerKey) -> Path:
        """Ruta determinista de la entrada; no garantiza que exista."""
        return self.cache_dir / f"{self.make_key(text, speaker_id)}.wav"

    def exists(self, text: str, speaker_id: SpeakerKey) -> bool:
        return self.path(text, speaker_id).is_file()

    def lookup(self, text: str, speaker_id: SpeakerKey) -> Optional[Path]:
        """Devuelve la ruta si la entrada existe, marcándola como usada."""
        path = self.path(text, speaker_id)
        if not path.is_file():
            return None
        self._touch(path)
        return path

    def save(self, text: str, speaker_id: SpeakerKey, data: bytes) -> Path:
        """
        Guarda audio en el cache y aplica la expulsión por tamaño.

        Args:
            text: Texto narrado
            speaker_id: Voz usada
            data: Bytes WAV

        Returns:
            Ruta del archivo guardado
        """
        path = self.path(text, speaker_id)
        tmp_path = path.with_name(f"{path.stem}.{uuid.uuid4().hex}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
        self._touch(path, size=len(data))
        logger.debug(f"Audio cacheado: {path.name} ({len(data)} bytes)")

        self.trim()
        return path

    def load(self, text: str, speaker_id: SpeakerKey) -> Optional[bytes]:
        path = self.lookup(text, speaker_id)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            # Expulsada entre lookup y lectura
            return None

    def duration_seconds(self, text: str, speaker_id: SpeakerKey) -> Optional[float]:
        """
        Duración del audio cacheado.

        Returns:
            Segundos, o None si la entrada no existe

        Raises:
            FormatError: Si el WAV guardado está corrupto
        """
        data = self.load(text, speaker_id)
        if data is None:
            return None
        return wav_duration(data)

    def _touch(self, path: Path, size: Optional[int] = None) -> None:
        if size is None:
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                return
        self.index.set(path.stem, {"last_access": self._clock(), "size": size})

    def _last_access(self, path: Path, stat: os.stat_result) -> float:
        entry = self.index.get(path.stem)
        if entry:
            return entry["last_access"]
        return stat.st_mtime

    def trim(self) -> int:
        """
        Expulsa las entradas menos usadas hasta quedar bajo el límite.

        Nunca borra la última entrada. Los fallos al borrar se registran y
        se ignoran.

        Returns:
            Número de archivos eliminados
        """
        entries = []
        total = 0
        for path in self.cache_dir.glob("*.wav"):
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            entries.append((self._last_access(path, stat), path, stat.st_size))
            total += stat.st_size

        if total <= self.max_bytes:
            return 0

        entries.sort(key=lambda entry: entry[0])
        remaining = len(entries)
        removed = 0
        for _, path, size in entries:
            if total <= self.max_bytes or remaining <= 1:
                break
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"No se pudo expulsar {path.name} del cache: {e}")
                continue
            self.index.pop(path.stem, None)
            total -= size
            remaining -= 1
            removed += 1

        if removed:
            logger.info(f"Cache de audio: {removed} entradas expulsadas ({total} bytes en uso)")
        return removed

    def clear(self) -> int:
        """
        Borra todo el cache.

        Returns:
            Número de archivos eliminados
        """
        removed = 0
        for path in self.cache_dir.glob("*.wav"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"No se pudo borrar {path.name}: {e}")
        self.index.clear()
        return removed

    def get_stats(self) -> dict:
        """Obtiene estadísticas del cache."""
        files = list(self.cache_dir.glob("*.wav"))
        return {
            "size_bytes": sum(f.stat().st_size for f in files if f.exists()),
            "items_count": len(files),
            "max_bytes": self.max_bytes,
            "directory": str(self.cache_dir),
        }

    def close(self) -> None:
        """Cierra el índice del cache."""
        self.index.close()
