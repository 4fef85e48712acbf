"""
Modelos de Dominio
Definen la estructura de datos de un proyecto de video narrado.
"""
import uuid
from enum import Enum
from typing import List, Optional, Tuple, assert_never

from pydantic import BaseModel, ConfigDict, Field, field_validator

RGB = Tuple[int, int, int]

MIN_FIXED_SECONDS = 0.1
MAX_FIXED_SECONDS = 60.0
DEFAULT_TRANSITION_SECONDS = 0.5


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    NONE = "none"


class DurationMode(str, Enum):
    AUTO = "auto"
    FIXED = "fixed"


class FadeCurve(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"

    @property
    def afade_curve(self) -> str:
        """Nombre de la curva para el filtro afade de FFmpeg."""
        if self is FadeCurve.EXPONENTIAL:
            return "exp"
        return "tri"


class TransitionType(str, Enum):
    NONE = "none"
    FADE = "fade"
    DISSOLVE = "dissolve"
    WIPE_LEFT = "wipeleft"
    WIPE_RIGHT = "wiperight"
    SLIDE_LEFT = "slideleft"
    SLIDE_RIGHT = "slideright"
    ZOOM_IN = "zoomin"


def xfade_filter_name(transition: TransitionType) -> str:
    """
    Devuelve el nombre de transición del filtro xfade.

    Raises:
        ValueError: Si la transición es NONE (no tiene filtro asociado)
    """
    match transition:
        case TransitionType.NONE:
            raise ValueError("La transición 'none' no tiene filtro xfade")
        case TransitionType.FADE:
            return "fade"
        case TransitionType.DISSOLVE:
            return "dissolve"
        case TransitionType.WIPE_LEFT:
            return "wipeleft"
        case TransitionType.WIPE_RIGHT:
            return "wiperight"
        case TransitionType.SLIDE_LEFT:
            return "slideleft"
        case TransitionType.SLIDE_RIGHT:
            return "slideright"
        case TransitionType.ZOOM_IN:
            return "zoomin"
        case _:
            assert_never(transition)


class Transition(BaseModel):
    """Transición hacia la escena actual desde la anterior."""
    model_config = ConfigDict(frozen=True)

    type: TransitionType = TransitionType.FADE
    duration: float = Field(DEFAULT_TRANSITION_SECONDS, gt=0, description="Duración en segundos")


class TextStyle(BaseModel):
    """Estilo visual de los subtítulos."""
    model_config = ConfigDict(frozen=True)

    id: str = "default"
    name: str = "Estándar"
    font_family: str = "Yu Gothic UI"
    font_size: int = Field(48, gt=0)
    bold: bool = True
    text_color: RGB = (255, 255, 255)
    stroke_color: RGB = (0, 0, 0)
    stroke_width: int = Field(3, ge=0)
    background_color: RGB = (0, 0, 0)
    background_opacity: float = Field(0.7, ge=0.0, le=1.0)
    shadow_enabled: bool = True
    shadow_color: RGB = (0, 0, 0)
    shadow_offset: Tuple[int, int] = (2, 2)


DEFAULT_STYLE = TextStyle()

STYLE_PRESETS: dict[str, TextStyle] = {
    style.id: style
    for style in (
        DEFAULT_STYLE,
        TextStyle(
            id="news", name="Noticias", font_size=44,
            background_color=(0, 51, 153), background_opacity=0.85,
            stroke_width=0, shadow_enabled=False,
        ),
        TextStyle(
            id="cinema", name="Cine", font_family="Yu Mincho", font_size=42,
            bold=False, stroke_width=2, background_opacity=0.0,
            shadow_offset=(3, 3),
        ),
        TextStyle(
            id="variety", name="Variedades", font_size=56,
            text_color=(255, 235, 59), stroke_color=(213, 0, 0), stroke_width=5,
            background_opacity=0.0, shadow_offset=(4, 4),
        ),
        TextStyle(
            id="documentary", name="Documental", font_size=40, bold=False,
            stroke_width=1, background_opacity=0.5, shadow_enabled=False,
        ),
        TextStyle(
            id="education", name="Educativo", font_size=46,
            text_color=(33, 33, 33), stroke_color=(255, 255, 255), stroke_width=2,
            background_color=(255, 255, 255), background_opacity=0.85,
            shadow_enabled=False,
        ),
        TextStyle(
            id="horror", name="Terror", font_family="Yu Mincho", font_size=50,
            text_color=(200, 0, 0), stroke_width=4, background_opacity=0.0,
            shadow_color=(60, 0, 0), shadow_offset=(3, 3),
        ),
        TextStyle(
            id="cute", name="Kawaii", font_size=52,
            text_color=(255, 128, 171), stroke_color=(255, 255, 255), stroke_width=5,
            background_opacity=0.0, shadow_color=(136, 14, 79),
        ),
        TextStyle(
            id="tech", name="Tecnología", font_family="Consolas", font_size=44,
            text_color=(0, 229, 255), stroke_width=2,
            background_color=(10, 10, 30), background_opacity=0.8,
            shadow_enabled=False,
        ),
        TextStyle(
            id="elegant", name="Elegante", font_family="Yu Mincho", font_size=44,
            bold=False, text_color=(245, 230, 200), stroke_width=1,
            background_opacity=0.4, shadow_offset=(1, 1),
        ),
    )
}


def preset_style(style_id: Optional[str]) -> TextStyle:
    """Obtiene un estilo predefinido por ID (el estándar si no existe)."""
    if style_id is None:
        return DEFAULT_STYLE
    return STYLE_PRESETS.get(style_id, DEFAULT_STYLE)


class TextAlignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class TextOverlay(BaseModel):
    """Texto libre superpuesto sobre la escena."""
    text: str
    x_percent: float = Field(50.0, ge=0.0, le=100.0)
    y_percent: float = Field(50.0, ge=0.0, le=100.0)
    font_size: int = Field(64, gt=0)
    text_color: RGB = (255, 255, 255)
    stroke_color: RGB = (0, 0, 0)
    stroke_width: int = Field(2, ge=0)
    alignment: TextAlignment = TextAlignment.CENTER
    shadow_enabled: bool = True


class WatermarkPosition(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"


class WatermarkSettings(BaseModel):
    """Marca de agua en imagen aplicada a cada escena."""
    enabled: bool = False
    image_path: Optional[str] = None
    position: WatermarkPosition = WatermarkPosition.BOTTOM_RIGHT
    opacity: float = Field(0.7, ge=0.0, le=1.0)
    scale: float = Field(0.12, gt=0.0, le=1.0, description="Fracción del ancho del video")
    margin_percent: float = Field(2.0, ge=0.0, le=50.0)

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.image_path)


class BGMSettings(BaseModel):
    """
    Configuración de música de fondo.

    Es inmutable: el pipeline la congela al iniciar la exportación.
    """
    model_config = ConfigDict(frozen=True)

    file_path: Optional[str] = None
    volume: float = Field(0.3, ge=0.0, le=1.0)
    fade_in_enabled: bool = True
    fade_in_duration: float = Field(2.0, ge=0.0)
    fade_in_curve: FadeCurve = FadeCurve.LINEAR
    fade_out_enabled: bool = True
    fade_out_duration: float = Field(3.0, ge=0.0)
    fade_out_curve: FadeCurve = FadeCurve.LINEAR
    loop: bool = True
    ducking_enabled: bool = True
    ducking_volume: float = Field(0.15, ge=0.0, le=1.0)
    ducking_attack: float = Field(0.3, gt=0.0, description="Ataque en segundos")
    ducking_release: float = Field(0.5, gt=0.0, description="Liberación en segundos")
    # Constantes empíricas, configurables
    ducking_threshold: float = Field(0.03, gt=0.0, le=1.0)
    ducking_ratio: float = Field(8.0, ge=1.0, le=20.0)

    @property
    def has_bgm(self) -> bool:
        return bool(self.file_path)


def _new_scene_id() -> str:
    return uuid.uuid4().hex


class Scene(BaseModel):
    """
    Una unidad visual y sonora del video.
    El orden dentro del proyecto es el orden de render.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_scene_id)
    media_path: Optional[str] = None
    media_type: MediaType = MediaType.NONE
    narration: Optional[str] = Field(None, description="Texto que se sintetiza como voz")
    subtitle: Optional[str] = Field(None, description="Texto que se quema en pantalla")
    speaker_id: Optional[int] = Field(None, description="Voz; None usa la del proyecto")
    keep_original_audio: bool = False
    style_id: Optional[str] = None
    transition: Optional[Transition] = Field(None, description="None usa la transición por defecto")
    duration_mode: DurationMode = DurationMode.AUTO
    fixed_seconds: float = 3.0
    speech_speed: float = Field(1.0, ge=0.5, le=2.0)
    text_overlays: List[TextOverlay] = Field(default_factory=list)

    # Se llena durante la exportación
    audio_cache_path: Optional[str] = None

    @field_validator("fixed_seconds")
    @classmethod
    def _clamp_fixed_seconds(cls, value: float) -> float:
        return min(max(value, MIN_FIXED_SECONDS), MAX_FIXED_SECONDS)

    @property
    def has_media(self) -> bool:
        return self.media_type is not MediaType.NONE and bool(self.media_path)

    @property
    def has_narration(self) -> bool:
        return bool(self.narration and self.narration.strip())

    @property
    def has_subtitle(self) -> bool:
        return bool(self.subtitle and self.subtitle.strip())


def parse_resolution(resolution: str) -> Tuple[int, int]:
    """
    Convierte "1080x1920" en (1080, 1920).

    Raises:
        ValueError: Si el formato no es ANCHOxALTO
    """
    try:
        width, height = (int(part) for part in resolution.lower().split("x"))
    except ValueError:
        raise ValueError(f"Resolución inválida: {resolution!r}") from None
    if width <= 0 or height <= 0:
        raise ValueError(f"Resolución inválida: {resolution!r}")
    return width, height


class OutputSettings(BaseModel):
    resolution: str = Field("1080x1920", pattern=r"^\d+x\d+$")
    fps: int = Field(30, gt=0, le=120)

    @property
    def width(self) -> int:
        return parse_resolution(self.resolution)[0]

    @property
    def height(self) -> int:
        return parse_resolution(self.resolution)[1]


class Project(BaseModel):
    """El proyecto completo: escenas ordenadas y ajustes de salida."""
    name: str = "Sin título"
    scenes: List[Scene] = Field(default_factory=list)
    output: OutputSettings = Field(default_factory=OutputSettings)
    bgm: BGMSettings = Field(default_factory=BGMSettings)
    default_transition: Transition = Field(default_factory=Transition)
    default_speaker_id: Optional[int] = None

    intro_media_path: Optional[str] = None
    intro_seconds: float = Field(3.0, gt=0)
    outro_media_path: Optional[str] = None
    outro_seconds: float = Field(3.0, gt=0)

    watermark: WatermarkSettings = Field(default_factory=WatermarkSettings)
    generate_thumbnail: bool = True
    generate_chapters: bool = True

    @property
    def is_exportable(self) -> bool:
        """Requiere al menos una escena con medio o narración."""
        return any(s.has_media or s.has_narration for s in self.scenes)

    def snapshot(self) -> "Project":
        """Copia profunda estructural, independiente del proyecto editable."""
        return self.model_copy(deep=True)
