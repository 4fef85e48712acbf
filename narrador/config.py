"""
Configuración de la aplicación.
Valores por defecto <- config/config.yaml <- variables de entorno (.env).
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")


class EngineConfig(BaseModel):
    """Motores externos: FFmpeg y VOICEVOX."""
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    process_timeout: Optional[float] = Field(None, gt=0)
    voicevox_url: str = "http://127.0.0.1:50021"
    default_speaker_id: int = 1
    query_timeout: float = 10.0
    synthesis_timeout: float = 30.0
    max_attempts: int = Field(3, ge=1)
    retry_delay: float = Field(1.0, ge=0.0)


class CacheConfig(BaseModel):
    directory: str = "./cache/audio"
    max_bytes: int = Field(500 * 1024 * 1024, gt=0)


class ExportConfig(BaseModel):
    temp_dir: Optional[str] = None
    auto_padding_seconds: float = Field(2.0, ge=0.0)
    default_scene_seconds: float = Field(3.0, gt=0.0)
    font_path: Optional[str] = None


class Settings(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    log_level: str = "INFO"


# Variable de entorno -> (sección, campo)
ENV_OVERRIDES = {
    "NARRADOR_FFMPEG": ("engine", "ffmpeg_path"),
    "NARRADOR_FFPROBE": ("engine", "ffprobe_path"),
    "VOICEVOX_URL": ("engine", "voicevox_url"),
    "NARRADOR_SPEAKER_ID": ("engine", "default_speaker_id"),
    "NARRADOR_CACHE_DIR": ("cache", "directory"),
    "NARRADOR_TEMP_DIR": ("export", "temp_dir"),
    "NARRADOR_FONT": ("export", "font_path"),
    "NARRADOR_LOG_LEVEL": (None, "log_level"),
}


def load_settings(config_path: Union[str, Path, None] = None) -> Settings:
    """
    Carga la configuración.

    Args:
        config_path: YAML a leer (config/config.yaml por defecto)

    Returns:
        Settings validados
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    data: dict = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        # Secciones vacías en el YAML
        data = {k: v for k, v in data.items() if v is not None}
        logger.debug(f"Configuración cargada de {path}")
    elif config_path:
        logger.warning(f"Archivo de configuración no encontrado: {path}")

    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if not value:
            continue
        if section is None:
            data[key] = value
        else:
            section_data = data.get(section) or {}
            section_data[key] = value
            data[section] = section_data

    return Settings.model_validate(data)
