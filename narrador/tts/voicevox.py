"""
Cliente VOICEVOX para síntesis de voz.
Motor local de TTS japonés expuesto por HTTP (audio_query + synthesis).
"""

import logging
import os
from typing import Optional, Protocol

import httpx
from dotenv import load_dotenv

from ..utils.backoff import SynthesisError, with_retry

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_URL = "http://127.0.0.1:50021"


class SpeechSynthesizer(Protocol):
    """Cualquier motor que devuelva bytes WAV para un texto y una voz."""

    def synthesize(self, text: str, speaker_id: int, speed: float = 1.0) -> bytes:
        ...


class VoiceVoxClient:
    """
    Cliente para el motor VOICEVOX.

    Cada síntesis son dos peticiones: /audio_query genera la prosodia y
    /synthesis la convierte en WAV. Los reintentos (backoff lineal) son
    responsabilidad de este cliente, no del pipeline.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        query_timeout: float = 10.0,
        synthesis_timeout: float = 30.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            base_url: URL del motor (VOICEVOX_URL o localhost:50021)
            query_timeout: Timeout de /audio_query en segundos
            synthesis_timeout: Timeout de /synthesis en segundos
            max_attempts: Intentos por síntesis
            retry_delay: Incremento lineal de espera entre intentos
            client: Cliente httpx ya configurado (opcional)
        """
        self.base_url = (base_url or os.getenv("VOICEVOX_URL") or DEFAULT_URL).rstrip("/")
        self.query_timeout = query_timeout
        self.synthesis_timeout = synthesis_timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.client = client or httpx.Client(base_url=self.base_url, timeout=synthesis_timeout)

    def check_connection(self) -> Optional[str]:
        """
        Verifica que el motor responda.

        Returns:
            Versión del motor, o None si no está disponible
        """
        try:
            response = self.client.get(f"{self.base_url}/version", timeout=5.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"VOICEVOX no disponible en {self.base_url}: {e}")
            return None
        return response.text.strip().strip('"')

    def get_speakers(self) -> list[dict]:
        """Obtiene la lista de voces disponibles."""
        response = self.client.get(f"{self.base_url}/speakers", timeout=self.query_timeout)
        response.raise_for_status()
        return response.json()

    def _audio_query(self, text: str, speaker_id: int) -> dict:
        response = self.client.post(
            f"{self.base_url}/audio_query",
            params={"text": text, "speaker": speaker_id},
            timeout=self.query_timeout,
        )
        response.raise_for_status()
        return response.json()

    def _synthesis(self, query: dict, speaker_id: int) -> bytes:
        response = self.client.post(
            f"{self.base_url}/synthesis",
            params={"speaker": speaker_id},
            json=query,
            timeout=self.synthesis_timeout,
        )
        response.raise_for_status()
        return response.content

    def synthesize(self, text: str, speaker_id: int, speed: float = 1.0) -> bytes:
        """
        Genera audio WAV para un texto.

        Args:
            text: Texto a narrar
            speaker_id: ID de estilo de voz VOICEVOX
            speed: Multiplicador de velocidad (0.5 lento, 2.0 rápido)

        Returns:
            Bytes WAV

        Raises:
            SynthesisError: Si todos los intentos fallan
        """

        @with_retry(
            max_attempts=self.max_attempts,
            min_wait=self.retry_delay,
            exceptions=(httpx.HTTPError,),
            linear=True,
        )
        def _attempt() -> bytes:
            query = self._audio_query(text, speaker_id)
            if abs(speed - 1.0) > 0.01:
                query["speedScale"] = speed
            return self._synthesis(query, speaker_id)

        try:
            audio = _attempt()
        except httpx.HTTPError as e:
            raise SynthesisError(
                f"VOICEVOX falló tras {self.max_attempts} intentos (voz {speaker_id}): {e}"
            ) from e
        except ValueError as e:
            # audio_query respondió algo que no es JSON (proxy, página de error...)
            raise SynthesisError(f"Respuesta inválida de VOICEVOX (voz {speaker_id}): {e}") from e

        if not audio:
            raise SynthesisError(f"VOICEVOX devolvió audio vacío (voz {speaker_id})")
        logger.info(f"Voz sintetizada: {len(text)} caracteres, voz {speaker_id}")
        return audio

    def close(self) -> None:
        self.client.close()
