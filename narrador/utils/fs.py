"""
Limpieza de temporales y promoción de archivos finales.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def cleanup_temp_file(path: PathLike) -> bool:
    """
    Elimina un archivo temporal.

    Args:
        path: Archivo a eliminar

    Returns:
        True si el archivo ya no existe, False si no se pudo borrar
    """
    path = Path(path)
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning(f"No se pudo eliminar temporal {path}: {e}")
        return False


def cleanup_work_dir(path: PathLike) -> bool:
    """Elimina un directorio de trabajo completo."""
    path = Path(path)
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
        logger.debug(f"Directorio de trabajo eliminado: {path}")
        return True
    except OSError as e:
        logger.warning(f"No se pudo eliminar directorio de trabajo {path}: {e}")
        return False


def promote_file(source: PathLike, destination: PathLike) -> Path:
    """
    Mueve ``source`` a ``destination`` reemplazando el destino.

    Es atómico cuando ambos están en el mismo sistema de archivos.
    """
    source = Path(source)
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.replace(source, destination)
    except OSError:
        # Distinto sistema de archivos
        shutil.move(str(source), str(destination))
    return destination
