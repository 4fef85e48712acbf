"""
Generador de clips por escena.
Convierte una escena (medio + subtítulo + audio) en un único MP4 terminado.
"""

import logging
import tempfile
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from ..domain.models import (
    DEFAULT_STYLE,
    MediaType,
    Scene,
    TextStyle,
    WatermarkPosition,
    WatermarkSettings,
    parse_resolution,
)
from ..infrastructure.ffmpeg import FFmpegRunner
from ..utils.fs import cleanup_temp_file, promote_file
from .subtitles import build_overlay_filter, build_subtitle_filter

logger = logging.getLogger(__name__)


class SceneStage(str, Enum):
    """Estados por los que pasa una escena; nunca se repiten."""
    BASE_GENERATED = "base_generated"
    SUBTITLE_APPLIED = "subtitle_applied"
    SUBTITLE_SKIPPED = "subtitle_skipped"
    OVERLAYS_APPLIED = "overlays_applied"
    OVERLAYS_SKIPPED = "overlays_skipped"
    WATERMARK_APPLIED = "watermark_applied"
    WATERMARK_SKIPPED = "watermark_skipped"
    AUDIO_MUXED = "audio_muxed"
    AUDIO_SKIPPED = "audio_skipped"
    FINALIZED = "finalized"


@dataclass
class SceneClipResult:
    success: bool
    output_path: Optional[Path] = None
    stages: List[SceneStage] = field(default_factory=list)
    error: Optional[str] = None


def scale_pad_filter(width: int, height: int) -> str:
    """Escala conservando aspecto y rellena con negro hasta la resolución exacta."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black,setsar=1"
    )


def _seconds(value: float) -> str:
    return f"{value:.3f}"


class SceneGenerator:
    """Genera el clip de una escena en etapas encadenadas sobre temporales."""

    AUDIO_RATE = 44100
    AUDIO_BITRATE = "192k"

    def __init__(
        self,
        runner: FFmpegRunner,
        font_path: Optional[str] = None,
        temp_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            runner: Ejecutor de FFmpeg
            font_path: Archivo de fuente para drawtext (opcional)
            temp_dir: Directorio para intermedios (temporal del sistema si no se indica)
        """
        self.runner = runner
        self.font_path = font_path
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def _temp_path(self, label: str, suffix: str = ".mp4") -> Path:
        return self.temp_dir / f"scene_{label}_{uuid.uuid4().hex}{suffix}"

    def generate(
        self,
        scene: Scene,
        output_path: Union[str, Path],
        duration: float,
        resolution: str,
        fps: int,
        audio_path: Optional[Union[str, Path]] = None,
        style: Optional[TextStyle] = None,
        watermark: Optional[WatermarkSettings] = None,
    ) -> SceneClipResult:
        """
        Genera el clip de una escena.

        Sólo el fallo del fondo base es fatal; subtítulos, textos, marca de
        agua y audio se omiten si fallan.

        Args:
            scene: Escena a renderizar
            output_path: Ruta final del clip
            duration: Duración del clip en segundos
            resolution: "ANCHOxALTO"
            fps: Fotogramas por segundo
            audio_path: Narración ya resuelta (opcional)
            style: Estilo de subtítulo (estándar si no se indica)
            watermark: Marca de agua (opcional)

        Returns:
            SceneClipResult con las etapas recorridas
        """
        width, height = parse_resolution(resolution)
        style = style or DEFAULT_STYLE
        result = SceneClipResult(success=False)
        temps: List[Path] = []

        try:
            # 1. Fondo base
            base = self._temp_path("base")
            temps.append(base)
            base_has_audio = self._keeps_original_audio(scene)
            process = self._generate_base(scene, base, duration, width, height, fps, base_has_audio)
            if not process.ok:
                logger.error(f"Error generando fondo de escena {scene.id}: {process.stderr_tail()}")
                result.error = f"No se pudo generar el fondo de la escena {scene.id}"
                return result
            result.stages.append(SceneStage.BASE_GENERATED)
            current = base
            has_audio = base_has_audio

            # 2. Subtítulo
            if scene.has_subtitle:
                filter_chain = build_subtitle_filter(scene.subtitle, style, height, self.font_path)
                current = self._apply_video_filter(
                    current, filter_chain, "sub", temps, result,
                    SceneStage.SUBTITLE_APPLIED, SceneStage.SUBTITLE_SKIPPED,
                )
            else:
                result.stages.append(SceneStage.SUBTITLE_SKIPPED)

            # 3. Textos superpuestos
            overlay_chain = build_overlay_filter(scene.text_overlays, width, height, self.font_path)
            if overlay_chain:
                current = self._apply_video_filter(
                    current, overlay_chain, "ovl", temps, result,
                    SceneStage.OVERLAYS_APPLIED, SceneStage.OVERLAYS_SKIPPED,
                )
            else:
                result.stages.append(SceneStage.OVERLAYS_SKIPPED)

            # 4. Marca de agua
            if watermark is not None and watermark.is_active:
                current = self._apply_watermark(current, watermark, width, temps, result)
            else:
                result.stages.append(SceneStage.WATERMARK_SKIPPED)

            # 5. Audio de narración
            if audio_path:
                muxed = self._mux_audio(current, Path(audio_path), duration, temps)
                if muxed is not None:
                    current = muxed
                    has_audio = True
                    result.stages.append(SceneStage.AUDIO_MUXED)
                else:
                    result.stages.append(SceneStage.AUDIO_SKIPPED)
            else:
                result.stages.append(SceneStage.AUDIO_SKIPPED)

            # Pista silenciosa para que xfade/amix siempre encuentren audio
            if not has_audio:
                current = self._add_silent_track(current, duration, temps)

            # 6. Finalizar
            output = promote_file(current, output_path)
            result.stages.append(SceneStage.FINALIZED)
            result.success = True
            result.output_path = output
            return result
        finally:
            for temp in temps:
                cleanup_temp_file(temp)

    def _keeps_original_audio(self, scene: Scene) -> bool:
        if not (scene.keep_original_audio and scene.media_type is MediaType.VIDEO and scene.has_media):
            return False
        if self.runner.has_audio_stream(scene.media_path):
            return True
        logger.warning(f"El video de la escena {scene.id} no tiene audio original")
        return False

    def _generate_base(
        self,
        scene: Scene,
        output: Path,
        duration: float,
        width: int,
        height: int,
        fps: int,
        keep_audio: bool,
    ):
        dur = _seconds(duration)
        encode = ["-c:v", "libx264", "-t", dur, "-pix_fmt", "yuv420p", "-r", str(fps)]

        if scene.has_media and scene.media_type is MediaType.IMAGE:
            args = [
                "-y", "-loop", "1", "-i", scene.media_path,
                "-vf", scale_pad_filter(width, height),
                *encode, "-an", str(output),
            ]
        elif scene.has_media and scene.media_type is MediaType.VIDEO:
            if keep_audio:
                # Reproducción única; el último fotograma se congela hasta la duración
                args = [
                    "-y", "-i", scene.media_path,
                    "-vf", f"{scale_pad_filter(width, height)},tpad=stop_mode=clone:stop_duration={dur}",
                    "-af", "apad",
                    *encode,
                    "-c:a", "aac", "-b:a", self.AUDIO_BITRATE,
                    "-ar", str(self.AUDIO_RATE), "-ac", "2",
                    str(output),
                ]
            else:
                args = [
                    "-y", "-stream_loop", "-1", "-i", scene.media_path,
                    "-vf", scale_pad_filter(width, height),
                    *encode, "-an", str(output),
                ]
        else:
            args = [
                "-y", "-f", "lavfi",
                "-i", f"color=c=black:s={width}x{height}:d={dur}:r={fps}",
                *encode, "-an", str(output),
            ]

        return self.runner.run(args)

    def _apply_video_filter(
        self,
        source: Path,
        filter_chain: str,
        label: str,
        temps: List[Path],
        result: SceneClipResult,
        applied: SceneStage,
        skipped: SceneStage,
    ) -> Path:
        output = self._temp_path(label)
        temps.append(output)
        process = self.runner.run([
            "-y", "-i", str(source),
            "-vf", filter_chain,
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            "-c:a", "copy",
            str(output),
        ])
        if process.ok:
            result.stages.append(applied)
            return output

        logger.warning(f"Etapa '{label}' omitida: {process.stderr_tail(5)}")
        result.stages.append(skipped)
        return source

    def _apply_watermark(
        self,
        source: Path,
        watermark: WatermarkSettings,
        width: int,
        temps: List[Path],
        result: SceneClipResult,
    ) -> Path:
        output = self._temp_path("wm")
        temps.append(output)
        mark_width = max(2, int(width * watermark.scale))
        margin = int(width * watermark.margin_percent / 100)
        x, y = {
            WatermarkPosition.TOP_LEFT: (f"{margin}", f"{margin}"),
            WatermarkPosition.TOP_RIGHT: (f"main_w-overlay_w-{margin}", f"{margin}"),
            WatermarkPosition.BOTTOM_LEFT: (f"{margin}", f"main_h-overlay_h-{margin}"),
            WatermarkPosition.BOTTOM_RIGHT: (f"main_w-overlay_w-{margin}", f"main_h-overlay_h-{margin}"),
            WatermarkPosition.CENTER: ("(main_w-overlay_w)/2", "(main_h-overlay_h)/2"),
        }[watermark.position]

        graph = (
            f"[1:v]scale={mark_width}:-1,format=rgba,"
            f"colorchannelmixer=aa={watermark.opacity:.2f}[wm];"
            f"[0:v][wm]overlay={x}:{y}[outv]"
        )
        process = self.runner.run([
            "-y", "-i", str(source), "-i", watermark.image_path,
            "-filter_complex", graph,
            "-map", "[outv]", "-map", "0:a?",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            "-c:a", "copy",
            str(output),
        ])
        if process.ok:
            result.stages.append(SceneStage.WATERMARK_APPLIED)
            return output

        logger.warning(f"Marca de agua omitida: {process.stderr_tail(5)}")
        result.stages.append(SceneStage.WATERMARK_SKIPPED)
        return source

    def _mux_audio(
        self,
        video: Path,
        audio: Path,
        duration: float,
        temps: List[Path],
    ) -> Optional[Path]:
        """
        Añade la narración rellenando con silencio hasta la duración exacta.

        Returns:
            Ruta del video con audio, o None si la mezcla falló
        """
        dur = _seconds(duration)
        padded = self._temp_path("pad", ".wav")
        temps.append(padded)
        pad = self.runner.run([
            "-y", "-i", str(audio),
            "-af", f"apad=whole_dur={dur}",
            "-t", dur,
            "-ar", str(self.AUDIO_RATE), "-ac", "2",
            str(padded),
        ])
        if not pad.ok:
            logger.warning(f"No se pudo rellenar el audio, se usa sin relleno: {pad.stderr_tail(3)}")
            padded = audio

        output = self._temp_path("mux")
        temps.append(output)
        merge = self.runner.run([
            "-y", "-i", str(video), "-i", str(padded),
            "-c:v", "copy",
            "-c:a", "aac", "-b:a", self.AUDIO_BITRATE,
            "-map", "0:v:0", "-map", "1:a:0",
            "-t", dur,
            str(output),
        ])
        if not merge.ok:
            logger.warning(f"Audio omitido en la escena: {merge.stderr_tail(5)}")
            return None
        return output

    def _add_silent_track(self, video: Path, duration: float, temps: List[Path]) -> Path:
        output = self._temp_path("silent")
        temps.append(output)
        process = self.runner.run([
            "-y", "-i", str(video),
            "-f", "lavfi", "-i", f"anullsrc=channel_layout=stereo:sample_rate={self.AUDIO_RATE}",
            "-map", "0:v:0", "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", "aac", "-b:a", self.AUDIO_BITRATE,
            "-t", _seconds(duration),
            str(output),
        ])
        if not process.ok:
            logger.warning(f"No se pudo añadir pista silenciosa: {process.stderr_tail(3)}")
            return video
        return output

    def extract_thumbnail(
        self,
        video_path: Union[str, Path],
        output_path: Union[str, Path],
        at_seconds: float = 1.0,
    ) -> bool:
        """
        Extrae un fotograma como miniatura JPG.

        Returns:
            True si se generó la miniatura
        """
        process = self.runner.run([
            "-y", "-ss", f"{at_seconds:.2f}",
            "-i", str(video_path),
            "-frames:v", "1", "-q:v", "2",
            str(output_path),
        ])
        if not process.ok:
            logger.warning(f"No se pudo extraer miniatura: {process.stderr_tail(3)}")
        return process.ok
