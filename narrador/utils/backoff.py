"""
Sistema de reintentos para servicios externos.
Implementa backoff lineal o exponencial sobre tenacity.
"""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)

logger = logging.getLogger(__name__)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 60.0,
    exceptions: tuple = (Exception,),
    linear: bool = False,
):
    """
    Decorador para reintentar funciones con backoff.

    Con ``linear=True`` la espera crece en ``min_wait`` por intento
    (1s, 2s, 3s...); si no, crece de forma exponencial.

    Args:
        max_attempts: Número máximo de intentos
        min_wait: Espera inicial entre intentos (segundos)
        max_wait: Espera máxima entre intentos (segundos)
        exceptions: Tupla de excepciones que provocan reintento
        linear: Usar backoff lineal en vez de exponencial

    Returns:
        Decorador configurado
    """
    if linear:
        wait = wait_incrementing(start=min_wait, increment=min_wait, max=max_wait)
    else:
        wait = wait_exponential(multiplier=1, min=min_wait, max=max_wait)

    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait,
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


class APIError(Exception):
    """Error genérico de API."""
    pass


class SynthesisError(APIError):
    """Error cuando el servicio de voz no devuelve audio."""
    pass
