"""
Project Parser
Lee y escribe archivos de proyecto versionados y migra formatos antiguos.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from pydantic import ValidationError

from ..domain.models import Project

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2


class ProjectFormatError(ValueError):
    """El archivo de proyecto no se puede leer o su versión no está soportada."""
    pass


def _enum_value(value: Any, default: str) -> str:
    """'WipeLeft' / 'wipeLeft' -> 'wipeleft'"""
    if value is None:
        return default
    return str(value).lower()


def _fade_fields(data: dict, source: str, target: str, default_duration: float) -> dict:
    """fadeInEnabled/fadeInDuration/fadeInType -> fade_in_enabled/..."""
    fade_type = _enum_value(data.get(f"{source}Type"), "linear")
    return {
        f"{target}_enabled": bool(data.get(f"{source}Enabled", True)) and fade_type != "none",
        f"{target}_duration": data.get(f"{source}Duration", default_duration),
        f"{target}_curve": "exponential" if fade_type == "exponential" else "linear",
    }


_V1_ALIGNMENTS = {0: "left", 1: "center", 2: "right"}


def _migrate_overlay(raw: dict) -> dict:
    """textOverlays v1; la alineación puede venir como nombre o como índice."""
    alignment = raw.get("alignment", "center")
    if isinstance(alignment, int):
        alignment = _V1_ALIGNMENTS.get(alignment, "center")
    return {
        "text": raw.get("text", ""),
        "x_percent": raw.get("xPercent", 50.0),
        "y_percent": raw.get("yPercent", 50.0),
        "font_size": raw.get("fontSize", 64),
        "text_color": raw.get("textColor", [255, 255, 255]),
        "stroke_color": raw.get("strokeColor", [0, 0, 0]),
        "stroke_width": raw.get("strokeWidth", 2),
        "alignment": _enum_value(alignment, "center"),
        "shadow_enabled": raw.get("shadowEnabled", True),
    }


def migrate_v1_to_v2(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convierte un proyecto v1 (claves camelCase, transición plana por
    escena) al esquema v2.

    En v1 una transición 'None' en la escena significaba "usar la del
    proyecto", por eso se migra como ``transition = None``.
    """
    scenes = []
    for raw in data.get("scenes", []):
        transition_type = _enum_value(raw.get("transitionType"), "none")
        transition = None
        if transition_type != "none":
            transition = {
                "type": transition_type,
                "duration": raw.get("transitionDuration", 0.5),
            }
        scene = {
            "media_path": raw.get("mediaPath"),
            "media_type": _enum_value(raw.get("mediaType"), "none"),
            "narration": raw.get("narrationText"),
            "subtitle": raw.get("subtitleText"),
            "speaker_id": raw.get("speakerId"),
            "keep_original_audio": raw.get("keepOriginalAudio", False),
            "style_id": raw.get("subtitleStyleId"),
            "transition": transition,
            "duration_mode": _enum_value(raw.get("durationMode"), "auto"),
            "fixed_seconds": raw.get("fixedSeconds", 3.0),
            "speech_speed": raw.get("speechSpeed", 1.0),
            "text_overlays": [_migrate_overlay(o) for o in raw.get("textOverlays") or []],
        }
        if raw.get("id"):
            scene["id"] = str(raw["id"]).replace("-", "")
        scenes.append(scene)

    bgm_raw = data.get("bgm") or {}
    bgm = {"file_path": bgm_raw.get("filePath"), "volume": bgm_raw.get("volume", 0.3)}
    bgm.update(_fade_fields(bgm_raw, "fadeIn", "fade_in", 2.0))
    bgm.update(_fade_fields(bgm_raw, "fadeOut", "fade_out", 3.0))
    bgm.update({
        "loop": bgm_raw.get("loopEnabled", True),
        "ducking_enabled": bgm_raw.get("duckingEnabled", True),
        "ducking_volume": bgm_raw.get("duckingVolume", 0.15),
        "ducking_attack": bgm_raw.get("duckingAttack", 0.3),
        "ducking_release": bgm_raw.get("duckingRelease", 0.5),
    })

    output_raw = data.get("output") or {}
    default_type = _enum_value(data.get("defaultTransition"), "fade")
    if default_type == "none":
        default_type = "fade"

    migrated = {
        "schema_version": 2,
        "name": data.get("name") or "Sin título",
        "scenes": scenes,
        "output": {
            "resolution": output_raw.get("resolution", "1080x1920"),
            "fps": output_raw.get("fps", 30),
        },
        "bgm": bgm,
        "default_transition": {
            "type": default_type,
            "duration": data.get("defaultTransitionDuration", 0.5),
        },
        "intro_media_path": data.get("introMediaPath"),
        "intro_seconds": data.get("introDuration", 3.0),
        "outro_media_path": data.get("outroMediaPath"),
        "outro_seconds": data.get("outroDuration", 3.0),
        "generate_thumbnail": data.get("generateThumbnail", True),
        "generate_chapters": data.get("generateChapters", True),
    }
    watermark_raw = data.get("watermark") or {}
    if watermark_raw:
        migrated["watermark"] = {
            "enabled": watermark_raw.get("enabled", False),
            "image_path": watermark_raw.get("imagePath"),
            "position": watermark_raw.get("position", "bottom-right"),
            "opacity": watermark_raw.get("opacity", 0.7),
            "scale": watermark_raw.get("scale", 0.12),
            "margin_percent": watermark_raw.get("marginPercent", 2.0),
        }
    return migrated


MIGRATIONS = {
    1: migrate_v1_to_v2,
}


class ProjectParser:
    """Validador y parseador de archivos de proyecto."""

    def migrate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Aplica las migraciones necesarias hasta la versión actual."""
        version = data.get("schema_version", 1)
        if not isinstance(version, int) or version > CURRENT_SCHEMA_VERSION or version < 1:
            raise ProjectFormatError(f"Versión de proyecto no soportada: {version!r}")

        while version < CURRENT_SCHEMA_VERSION:
            logger.info(f"Migrando proyecto de v{version} a v{version + 1}")
            data = MIGRATIONS[version](data)
            version = data["schema_version"]
        return data

    def parse(self, raw_input: Union[str, Dict[str, Any]]) -> Project:
        """
        Convierte un JSON (string o dict) en un Project validado.

        Raises:
            ProjectFormatError: JSON inválido, versión no soportada o datos inválidos
        """
        try:
            data = json.loads(raw_input) if isinstance(raw_input, str) else dict(raw_input)
        except json.JSONDecodeError as e:
            logger.error(f"Error decodificando proyecto: {e}")
            raise ProjectFormatError("El proyecto no es un JSON válido") from e
        if not isinstance(data, dict):
            raise ProjectFormatError("El proyecto debe ser un objeto JSON")

        data = self.migrate(data)
        data.pop("schema_version", None)
        try:
            project = Project.model_validate(data)
        except ValidationError as e:
            logger.error(f"Error validando proyecto: {e}")
            raise ProjectFormatError(f"Proyecto inválido: {e.error_count()} errores") from e

        self._validate_logic(project)
        return project

    def _validate_logic(self, project: Project) -> None:
        """Reglas de negocio extra."""
        if not project.scenes:
            logger.warning("El proyecto no tiene escenas.")
        for i, scene in enumerate(project.scenes, 1):
            if scene.has_media and not Path(scene.media_path).exists():
                logger.warning(f"Escena {i}: no existe el medio {scene.media_path}")

    def load(self, path: Union[str, Path]) -> Project:
        with open(path, "r", encoding="utf-8") as f:
            return self.parse(f.read())

    def dump(self, project: Project) -> str:
        data = {"schema_version": CURRENT_SCHEMA_VERSION}
        data.update(project.model_dump(mode="json", exclude={"scenes": {"__all__": {"audio_cache_path"}}}))
        return json.dumps(data, ensure_ascii=False, indent=2)

    def save(self, project: Project, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.dump(project), encoding="utf-8")
        logger.info(f"Proyecto guardado: {path}")
        return path
