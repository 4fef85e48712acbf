"""
Construcción de filtros drawtext para subtítulos y textos superpuestos.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

from ..domain.models import RGB, TextAlignment, TextOverlay, TextStyle

logger = logging.getLogger(__name__)

# Puntos de corte preferidos (ASCII y puntuación japonesa de ancho completo)
SPLIT_CHARS = frozenset(
    ".,!?;:"
    "\u3001\u3002\u3000"  # 、 。 espacio ideográfico
    "\u300c\u300d\u300e\u300f"  # 「 」 『 』
    "\uff0c\uff0e\uff01\uff1f"  # ， ． ！ ？
)

SUBTITLE_Y_RATIO = 0.85
BOX_BORDER = 10

# Fuentes con glifos CJK habituales en Linux/macOS/Windows
DEFAULT_FONT_CANDIDATES = (
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/System/Library/Fonts/Hiragino Sans GB.ttc",
    "C:/Windows/Fonts/YuGothB.ttc",
    "C:/Windows/Fonts/meiryo.ttc",
)


def split_subtitle_text(text: str, max_chars: int = 18) -> str:
    """
    Parte un subtítulo largo en dos líneas.

    Corta una sola vez, justo después del signo de puntuación más cercano
    al centro; si no hay puntuación, corta exactamente a la mitad.

    Args:
        text: Texto del subtítulo
        max_chars: Longitud a partir de la cual se divide

    Returns:
        Texto con un salto de línea (o el original si es corto)
    """
    if not text or len(text) <= max_chars:
        return text

    center = len(text) // 2
    best_split = -1
    best_distance = len(text) + 1
    for i, char in enumerate(text):
        if char in SPLIT_CHARS:
            distance = abs(i - center)
            if distance < best_distance:
                best_distance = distance
                best_split = i + 1

    if best_split < 0 or best_split >= len(text):
        best_split = center

    line1 = text[:best_split].rstrip()
    line2 = text[best_split:].lstrip()
    if not line2:
        return line1
    return f"{line1}\n{line2}"


def escape_drawtext(text: str) -> str:
    """Escapa texto para el parámetro text= de drawtext."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "'\\''")
        .replace(":", "\\:")
        .replace("%", "%%")
    )


def escape_font_path(path: str) -> str:
    """Normaliza separadores y escapa los dos puntos (C: -> C\\:)."""
    return path.replace("\\", "/").replace(":", "\\:")


def ffmpeg_color(rgb: Sequence[int]) -> str:
    """(255, 255, 255) -> 0xFFFFFF"""
    if rgb is None or len(rgb) < 3:
        return "0xFFFFFF"
    return "0x{:02X}{:02X}{:02X}".format(*rgb[:3])


def ffmpeg_color_alpha(rgb: RGB, alpha: float) -> str:
    return f"{ffmpeg_color(rgb)}@{alpha:.2f}"


def font_spec(font_family: Optional[str], font_path: Optional[str] = None) -> str:
    """
    Parámetro de fuente para drawtext, terminado en ':'.

    Usa fontfile si hay un archivo de fuente; si no, el nombre de familia
    (requiere fontconfig en FFmpeg).
    """
    if font_path and Path(font_path).exists():
        return f"fontfile='{escape_font_path(font_path)}':"
    if font_family:
        return f"font='{font_family}':"
    return ""


def find_default_font() -> Optional[str]:
    """Busca una fuente del sistema con soporte CJK."""
    for candidate in DEFAULT_FONT_CANDIDATES:
        if Path(candidate).exists():
            return candidate
    logger.debug("No se encontró fuente por defecto; se usará fontconfig")
    return None


def build_subtitle_filter(
    text: str,
    style: TextStyle,
    height: int,
    font_path: Optional[str] = None,
) -> str:
    """
    Construye la cadena de filtros para quemar un subtítulo.

    Capa de sombra opcional desplazada y después la capa principal con
    borde, centrada horizontalmente al 85% de la altura. Con
    ``shadow_offset`` (0, 0) la sombra quedaría oculta bajo el texto, así
    que se omite aunque ``shadow_enabled`` esté activo.

    Args:
        text: Subtítulo sin escapar
        style: Estilo a aplicar
        height: Altura del video en píxeles
        font_path: Archivo de fuente (opcional)

    Returns:
        Cadena para -vf
    """
    escaped = escape_drawtext(split_subtitle_text(text))
    font = font_spec(style.font_family, font_path)
    y = int(height * SUBTITLE_Y_RATIO)

    parts = []
    dx, dy = style.shadow_offset
    if style.shadow_enabled and (dx != 0 or dy != 0):
        parts.append(
            f"drawtext={font}"
            f"text='{escaped}':"
            f"fontsize={style.font_size}:"
            f"fontcolor={ffmpeg_color(style.shadow_color)}:"
            f"x=(w-text_w)/2+{dx}:"
            f"y={y}+{dy}"
        )

    main = (
        f"drawtext={font}"
        f"text='{escaped}':"
        f"fontsize={style.font_size}:"
        f"fontcolor={ffmpeg_color(style.text_color)}:"
        f"borderw={style.stroke_width}:"
        f"bordercolor={ffmpeg_color(style.stroke_color)}:"
        f"x=(w-text_w)/2:"
        f"y={y}"
    )
    if style.background_opacity > 0:
        boxcolor = ffmpeg_color_alpha(style.background_color, style.background_opacity)
        main += f":box=1:boxcolor={boxcolor}:boxborderw={BOX_BORDER}"
    parts.append(main)

    return ",".join(parts)


def build_overlay_filter(
    overlays: Sequence[TextOverlay],
    width: int,
    height: int,
    font_path: Optional[str] = None,
) -> str:
    """Un drawtext por texto superpuesto, posicionado en porcentaje."""
    font = font_spec(None, font_path)
    parts = []
    for overlay in overlays:
        if not overlay.text.strip():
            continue
        px = int(width * overlay.x_percent / 100)
        py = int(height * overlay.y_percent / 100)
        if overlay.alignment is TextAlignment.LEFT:
            x = f"{px}"
        elif overlay.alignment is TextAlignment.RIGHT:
            x = f"{px}-text_w"
        else:
            x = f"{px}-text_w/2"

        draw = (
            f"drawtext={font}"
            f"text='{escape_drawtext(overlay.text)}':"
            f"fontsize={overlay.font_size}:"
            f"fontcolor={ffmpeg_color(overlay.text_color)}:"
            f"borderw={overlay.stroke_width}:"
            f"bordercolor={ffmpeg_color(overlay.stroke_color)}:"
            f"x={x}:"
            f"y={py}-text_h/2"
        )
        if overlay.shadow_enabled:
            draw += ":shadowcolor=0x000000@0.60:shadowx=2:shadowy=2"
        parts.append(draw)
    return ",".join(parts)
