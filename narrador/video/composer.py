"""
Compositor de video con FFmpeg.
Une clips de escena (concat o transiciones xfade) y mezcla la música de fondo.
"""

import logging
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..domain.models import (
    BGMSettings,
    Transition,
    TransitionType,
    parse_resolution,
    xfade_filter_name,
)
from ..infrastructure.ffmpeg import FFmpegRunner
from ..utils.fs import cleanup_temp_file
from .scene_generator import scale_pad_filter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class ComposeResult:
    success: bool
    output_path: Optional[Path] = None
    error: Optional[str] = None


def _fmt(value: float) -> str:
    return f"{value:.3f}"


def normalize_transitions(
    transitions: Sequence[Optional[Transition]],
    clip_count: int,
) -> List[Transition]:
    """
    Ajusta la lista de transiciones para el camino con xfade.

    - Lista vacía: fundido por defecto.
    - Entradas None o de tipo NONE: se convierten en fundido.
    - Si faltan entradas se repite la última.

    Returns:
        Exactamente ``clip_count - 1`` transiciones, ninguna de tipo NONE
    """
    needed = max(0, clip_count - 1)
    if needed == 0:
        return []

    normalized = []
    for transition in transitions:
        if transition is None:
            normalized.append(Transition())
        elif transition.type is TransitionType.NONE:
            normalized.append(Transition(type=TransitionType.FADE, duration=transition.duration))
        else:
            normalized.append(transition)
    if not normalized:
        normalized.append(Transition())

    while len(normalized) < needed:
        normalized.append(normalized[-1])
    return normalized[:needed]


def build_xfade_graph(durations: Sequence[float], transitions: Sequence[Transition]) -> str:
    """
    Construye el filter_complex de xfade + acrossfade encadenados.

    Los offsets se calculan sobre la línea de tiempo original: se suma la
    duración de cada clip y se resta cada transición al consumirla.

    Args:
        durations: Duración de cada clip
        transitions: Una transición por unión (len(durations) - 1), sin NONE

    Returns:
        Grafo con salidas [outv] y [outa]
    """
    count = len(durations) - 1
    video_filters = []
    audio_filters = []
    cumulative = 0.0

    for i in range(count):
        transition = transitions[i]
        name = xfade_filter_name(transition.type)

        cumulative += durations[i]
        offset = max(0.0, cumulative - transition.duration)
        cumulative -= transition.duration

        last = i == count - 1
        video_in = "[0:v]" if i == 0 else f"[xfv{i - 1}]"
        video_out = "[outv]" if last else f"[xfv{i}]"
        video_filters.append(
            f"{video_in}[{i + 1}:v]xfade="
            f"transition={name}:"
            f"duration={_fmt(transition.duration)}:"
            f"offset={_fmt(offset)}"
            f"{video_out}"
        )

        audio_in = "[0:a]" if i == 0 else f"[xfa{i - 1}]"
        audio_out = "[outa]" if last else f"[xfa{i}]"
        audio_filters.append(
            f"{audio_in}[{i + 1}:a]acrossfade=d={_fmt(transition.duration)}{audio_out}"
        )

    return ";".join(video_filters + audio_filters)


def build_bgm_filter_graph(
    video_duration: float,
    bgm: BGMSettings,
    has_main_audio: bool = True,
) -> str:
    """
    Construye el grafo de mezcla de música de fondo.

    La cadena de la música aplica volumen, fundidos de entrada/salida y
    recorte a la duración del video. Con ducking, la narración controla un
    compresor sidechain sobre la música.

    Args:
        video_duration: Duración del video en segundos
        bgm: Ajustes de música
        has_main_audio: Si el video tiene pista de audio propia

    Returns:
        Grafo con salida [audio_out]
    """
    chain = [f"volume={bgm.volume:.2f}"]
    if bgm.fade_in_enabled and bgm.fade_in_duration > 0:
        chain.append(
            f"afade=t=in:st=0:d={_fmt(bgm.fade_in_duration)}:curve={bgm.fade_in_curve.afade_curve}"
        )
    if bgm.fade_out_enabled and bgm.fade_out_duration > 0:
        start = max(0.0, video_duration - bgm.fade_out_duration)
        chain.append(
            f"afade=t=out:st={_fmt(start)}:d={_fmt(bgm.fade_out_duration)}"
            f":curve={bgm.fade_out_curve.afade_curve}"
        )
    chain.append(f"atrim=0:{_fmt(video_duration)}")
    chain.append("asetpts=PTS-STARTPTS")
    bgm_chain = ",".join(chain)

    if not has_main_audio:
        return f"[1:a]{bgm_chain}[audio_out]"

    mix = "amix=inputs=2:duration=first:dropout_transition=0[audio_out]"
    if not bgm.ducking_enabled:
        return (
            f"[1:a]{bgm_chain}[bgm];"
            f"[0:a]aresample=44100[main];"
            f"[main][bgm]{mix}"
        )

    attack_ms = bgm.ducking_attack * 1000
    release_ms = bgm.ducking_release * 1000
    return (
        f"[1:a]{bgm_chain}[bgm];"
        f"[0:a]aresample=44100,asplit=2[main][sidechain];"
        f"[bgm][sidechain]sidechaincompress="
        f"threshold={bgm.ducking_threshold:g}:"
        f"ratio={bgm.ducking_ratio:g}:"
        f"attack={attack_ms:g}:"
        f"release={release_ms:g}[ducked];"
        f"[main][ducked]{mix}"
    )


class VideoComposer:
    """Une clips y mezcla audio de fondo."""

    AUDIO_BITRATE = "192k"

    def __init__(self, runner: FFmpegRunner, temp_dir: Optional[PathLike] = None):
        """
        Args:
            runner: Ejecutor de FFmpeg
            temp_dir: Directorio para listas de concat y clips re-codificados
        """
        self.runner = runner
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def _failure(self, message: str, stderr: str = "") -> ComposeResult:
        if stderr:
            logger.error(f"{message}: {stderr}")
        else:
            logger.error(message)
        return ComposeResult(success=False, error=message)

    def concat(self, clip_paths: Sequence[PathLike], output_path: PathLike) -> ComposeResult:
        """
        Concatena clips homogéneos con el demuxer concat (sin re-codificar).

        Args:
            clip_paths: Clips en orden
            output_path: Video de salida

        Returns:
            ComposeResult
        """
        output_path = Path(output_path)
        if not clip_paths:
            return self._failure("No hay clips para concatenar")

        if len(clip_paths) == 1:
            shutil.copyfile(clip_paths[0], output_path)
            return ComposeResult(success=True, output_path=output_path)

        list_path = self.temp_dir / f"concat_{uuid.uuid4().hex}.txt"
        try:
            with open(list_path, "w", encoding="utf-8") as f:
                for clip in clip_paths:
                    escaped = str(Path(clip).absolute()).replace("'", "'\\''")
                    f.write(f"file '{escaped}'\n")

            process = self.runner.run([
                "-y",
                "-f", "concat",
                "-safe", "0",
                "-i", str(list_path),
                "-c", "copy",
                str(output_path),
            ])
            if not process.ok:
                return self._failure("Error concatenando clips", process.stderr_tail())
            logger.info(f"{len(clip_paths)} clips concatenados en {output_path.name}")
            return ComposeResult(success=True, output_path=output_path)
        finally:
            cleanup_temp_file(list_path)

    def concat_with_transitions(
        self,
        clip_paths: Sequence[PathLike],
        transitions: Sequence[Optional[Transition]],
        output_path: PathLike,
        resolution: str = "1080x1920",
        fps: int = 30,
    ) -> ComposeResult:
        """
        Une clips con transiciones xfade/acrossfade encadenadas.

        Si no se puede leer la duración de algún clip, re-codifica todo y
        concatena sin transiciones.

        Args:
            clip_paths: Clips en orden
            transitions: Transición previa a cada clip a partir del segundo
            output_path: Video de salida
            resolution: Resolución para el camino de re-codificación
            fps: FPS para el camino de re-codificación

        Returns:
            ComposeResult
        """
        output_path = Path(output_path)
        if not clip_paths:
            return self._failure("No hay clips para unir")
        if len(clip_paths) == 1:
            return self.concat(clip_paths, output_path)

        durations = []
        for clip in clip_paths:
            duration = self.runner.probe_duration(clip)
            if duration is None or duration <= 0:
                logger.warning(
                    f"No se pudo leer la duración de {Path(clip).name}; "
                    "se re-codifica sin transiciones"
                )
                return self.concat_with_reencode(clip_paths, output_path, resolution, fps)
            durations.append(duration)

        normalized = normalize_transitions(transitions, len(clip_paths))
        graph = build_xfade_graph(durations, normalized)

        args = ["-y"]
        for clip in clip_paths:
            args.extend(["-i", str(clip)])
        args.extend([
            "-filter_complex", graph,
            "-map", "[outv]",
            "-map", "[outa]",
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", self.AUDIO_BITRATE,
            str(output_path),
        ])

        process = self.runner.run(args)
        if not process.ok:
            return self._failure("Error aplicando transiciones", process.stderr_tail())
        logger.info(f"{len(clip_paths)} clips unidos con {len(normalized)} transiciones")
        return ComposeResult(success=True, output_path=output_path)

    def concat_with_reencode(
        self,
        clip_paths: Sequence[PathLike],
        output_path: PathLike,
        resolution: str = "1080x1920",
        fps: int = 30,
    ) -> ComposeResult:
        """Re-codifica cada clip a un formato común y después concatena."""
        if not clip_paths:
            return self._failure("No hay clips para re-codificar")

        width, height = parse_resolution(resolution)
        reencoded: List[Path] = []
        try:
            for i, clip in enumerate(clip_paths):
                temp_path = self.temp_dir / f"reencode_{i}_{uuid.uuid4().hex}.mp4"
                reencoded.append(temp_path)
                process = self.runner.run([
                    "-y",
                    "-i", str(clip),
                    "-vf", scale_pad_filter(width, height),
                    "-c:v", "libx264",
                    "-pix_fmt", "yuv420p",
                    "-r", str(fps),
                    "-c:a", "aac",
                    "-b:a", self.AUDIO_BITRATE,
                    "-ar", "44100",
                    "-ac", "2",
                    str(temp_path),
                ])
                if not process.ok:
                    return self._failure(f"Error re-codificando {Path(clip).name}", process.stderr_tail())

            return self.concat(reencoded, output_path)
        finally:
            for temp_path in reencoded:
                cleanup_temp_file(temp_path)

    def add_bgm(self, video_path: PathLike, bgm: BGMSettings, output_path: PathLike) -> ComposeResult:
        """
        Mezcla música de fondo con el audio del video.

        El video se copia sin re-codificar; sólo se re-codifica el audio.

        Args:
            video_path: Video ya compuesto
            bgm: Ajustes de música (debe tener archivo)
            output_path: Video de salida (distinto de la entrada)

        Returns:
            ComposeResult
        """
        output_path = Path(output_path)
        if not bgm.has_bgm:
            return self._failure("No hay música de fondo configurada")

        duration = self.runner.probe_duration(video_path)
        if duration is None or duration <= 0:
            return self._failure(f"No se pudo leer la duración de {Path(video_path).name}")

        graph = build_bgm_filter_graph(
            duration, bgm, has_main_audio=self.runner.has_audio_stream(video_path)
        )

        args = ["-y", "-i", str(video_path)]
        if bgm.loop:
            args.extend(["-stream_loop", "-1"])
        args.extend(["-i", bgm.file_path])
        args.extend([
            "-filter_complex", graph,
            "-map", "0:v:0",
            "-map", "[audio_out]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.AUDIO_BITRATE,
            "-t", _fmt(duration),
            str(output_path),
        ])

        process = self.runner.run(args)
        if not process.ok:
            return self._failure("Error mezclando música de fondo", process.stderr_tail())
        mode = "con ducking" if bgm.ducking_enabled else "sin ducking"
        logger.info(f"Música de fondo mezclada ({mode})")
        return ComposeResult(success=True, output_path=output_path)
