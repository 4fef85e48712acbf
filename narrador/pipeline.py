"""
Pipeline de exportación.
Coordina voz → clip por escena → unión con transiciones → música de fondo.
"""

import logging
import re
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .domain.models import (
    DurationMode,
    MediaType,
    Project,
    Scene,
    TextStyle,
    Transition,
    TransitionType,
    preset_style,
)
from .infrastructure.ffmpeg import FFmpegNotFoundError, FFmpegRunner
from .tts.voicevox import SpeechSynthesizer
from .utils.backoff import SynthesisError
from .utils.cache import FormatError, SpeechCache
from .utils.fs import cleanup_work_dir, promote_file
from .video.composer import VideoComposer
from .video.scene_generator import SceneGenerator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
StyleResolver = Callable[[Scene], TextStyle]

DEFAULT_SPEAKER_ID = 1
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".wmv", ".mkv", ".webm"}
PROGRESS_PATTERN = re.compile(r"^\[(\d+)/(\d+)\]")
CHAPTER_TITLE_LENGTH = 30


class ExportCancelledError(Exception):
    """Se pidió cancelar la exportación."""
    pass


@dataclass
class ExportResult:
    success: bool = False
    output_path: Optional[Path] = None
    thumbnail_path: Optional[Path] = None
    chapter_file_path: Optional[Path] = None
    metadata_file_path: Optional[Path] = None
    cancelled: bool = False
    error: Optional[str] = None

    @property
    def auxiliary_artifact_paths(self) -> List[Path]:
        """Miniatura, capítulos y metadatos que se hayan generado."""
        return [
            p for p in (self.thumbnail_path, self.chapter_file_path, self.metadata_file_path)
            if p is not None
        ]


@dataclass
class _Clip:
    path: Path
    duration: float
    title: str


@dataclass
class _ExportState:
    clips: List[_Clip] = field(default_factory=list)
    # Transición previa a cada clip a partir del segundo
    transitions: List[Transition] = field(default_factory=list)


def parse_progress(message: str) -> Optional[Tuple[int, int]]:
    """
    Extrae (actual, total) de un mensaje '[i/total] ...'.

    Returns:
        Tupla o None si el mensaje no lleva prefijo de progreso
    """
    match = PROGRESS_PATTERN.match(message)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def format_timestamp(seconds: float) -> str:
    """83.4 -> '00:01:23'"""
    total = int(max(0.0, seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def speech_cache_text(scene: Scene) -> str:
    """Texto usado como clave de cache; incluye la velocidad si no es 1.0."""
    if abs(scene.speech_speed - 1.0) > 0.01:
        return f"{scene.narration}__spd{scene.speech_speed:.2f}"
    return scene.narration


def resolve_speaker(*candidates: Optional[int]) -> int:
    """
    Primera voz indicada, en orden de prioridad.

    La voz 0 es válida en VOICEVOX: sólo None cuenta como "sin indicar".
    """
    for speaker_id in candidates:
        if speaker_id is not None:
            return speaker_id
    return DEFAULT_SPEAKER_ID


def _media_type_for(path: str) -> MediaType:
    return MediaType.VIDEO if Path(path).suffix.lower() in VIDEO_EXTENSIONS else MediaType.IMAGE


class ExportPipeline:
    """
    Orquestador de la exportación de un proyecto.

    Las escenas se procesan en orden y de forma secuencial: la escena N+1
    no empieza hasta que existe el clip de la escena N. Todo el trabajo se
    hace en un directorio temporal propio de cada exportación y sólo el
    video terminado se mueve al destino.
    """

    def __init__(
        self,
        runner: FFmpegRunner,
        synthesizer: SpeechSynthesizer,
        cache: SpeechCache,
        scene_generator: Optional[SceneGenerator] = None,
        composer: Optional[VideoComposer] = None,
        temp_root: Optional[Union[str, Path]] = None,
        auto_padding_seconds: float = 2.0,
        default_scene_seconds: float = 3.0,
        font_path: Optional[str] = None,
    ):
        """
        Args:
            runner: Ejecutor de FFmpeg
            synthesizer: Motor de voz
            cache: Cache de audio sintetizado
            scene_generator: Generador de clips (se crea si no se indica)
            composer: Compositor (se crea si no se indica)
            temp_root: Directorio donde crear los directorios de trabajo
            auto_padding_seconds: Margen tras la narración en modo automático
            default_scene_seconds: Duración de escenas sin audio
            font_path: Archivo de fuente para subtítulos
        """
        self.runner = runner
        self.synthesizer = synthesizer
        self.cache = cache
        self.temp_root = Path(temp_root) if temp_root else None
        if self.temp_root:
            self.temp_root.mkdir(parents=True, exist_ok=True)
        self.scene_generator = scene_generator or SceneGenerator(
            runner, font_path=font_path, temp_dir=self.temp_root
        )
        self.composer = composer or VideoComposer(runner, temp_dir=self.temp_root)
        self.auto_padding_seconds = auto_padding_seconds
        self.default_scene_seconds = default_scene_seconds

    # ------------------------------------------------------------------
    # Audio y duración
    # ------------------------------------------------------------------

    def resolve_audio(self, scene: Scene, speaker_id: int) -> Optional[Path]:
        """
        Devuelve el WAV de la narración, sintetizándolo si no está en cache.

        Raises:
            SynthesisError: Si el motor de voz falla
        """
        if not scene.has_narration or scene.keep_original_audio:
            return None

        key_text = speech_cache_text(scene)
        cached = self.cache.lookup(key_text, speaker_id)
        if cached is not None:
            logger.debug(f"Audio en cache para escena {scene.id}")
            return cached

        audio = self.synthesizer.synthesize(scene.narration, speaker_id, scene.speech_speed)
        return self.cache.save(key_text, speaker_id, audio)

    def resolve_duration(self, scene: Scene, speaker_id: int, has_audio: bool) -> float:
        """Fija: segundos de la escena. Automática: audio + margen, o duración por defecto."""
        if scene.duration_mode is DurationMode.FIXED:
            return scene.fixed_seconds
        if not has_audio:
            return self.default_scene_seconds

        try:
            audio_duration = self.cache.duration_seconds(speech_cache_text(scene), speaker_id)
        except FormatError as e:
            logger.warning(f"Cabecera WAV inválida en escena {scene.id}: {e}; se usa duración por defecto")
            return self.default_scene_seconds
        if audio_duration is None:
            return self.default_scene_seconds
        return audio_duration + self.auto_padding_seconds

    # ------------------------------------------------------------------
    # Exportación
    # ------------------------------------------------------------------

    def export(
        self,
        project: Project,
        output_path: Union[str, Path],
        resolution: Optional[str] = None,
        fps: Optional[int] = None,
        default_speaker_id: Optional[int] = None,
        style_resolver: Optional[StyleResolver] = None,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExportResult:
        """
        Exporta un proyecto completo.

        Args:
            project: Proyecto (se toma una copia al empezar)
            output_path: Video final
            resolution: "ANCHOxALTO" (la del proyecto si no se indica)
            fps: FPS (los del proyecto si no se indica)
            default_speaker_id: Voz para escenas sin voz propia
            style_resolver: Estilo de subtítulo por escena
            progress: Recibe mensajes de progreso '[i/total] ...'
            cancel_event: Si se activa, la exportación para en el siguiente punto seguro

        Returns:
            ExportResult
        """
        output_path = Path(output_path)
        report = progress or (lambda message: None)
        result = ExportResult()

        if not self.runner.check_available():
            result.error = "FFmpeg no está disponible"
            logger.error(result.error)
            report(f"Error: {result.error}")
            return result

        snapshot = project.snapshot()
        if not snapshot.is_exportable:
            result.error = "El proyecto no tiene escenas con medio o narración"
            logger.error(result.error)
            report(f"Error: {result.error}")
            return result

        resolution = resolution or snapshot.output.resolution
        fps = fps or snapshot.output.fps
        speaker_id = resolve_speaker(default_speaker_id, snapshot.default_speaker_id)
        resolve_style = style_resolver or (lambda scene: preset_style(scene.style_id))

        try:
            work_dir = Path(tempfile.mkdtemp(prefix="narrador_build_", dir=self.temp_root))
        except OSError as e:
            result.error = f"No se pudo crear el directorio de trabajo: {e}"
            logger.error(result.error)
            report(f"Error: {result.error}")
            return result
        logger.info(f"Exportando '{snapshot.name}' ({len(snapshot.scenes)} escenas) en {work_dir}")

        try:
            rendered = self._render(
                snapshot, work_dir, resolution, fps, speaker_id,
                resolve_style, report, cancel_event, result,
            )
            if rendered is None:
                return result
            composed, chapters = rendered

            final_path = promote_file(composed, output_path)
            result.success = True
            result.output_path = final_path
            logger.info(f"Video exportado: {final_path}")

            self._write_artifacts(snapshot, final_path, chapters, result)
            report("Exportación completada")
            return result

        except ExportCancelledError:
            logger.info("Exportación cancelada")
            report("Exportación cancelada")
            result.cancelled = True
            result.error = "Cancelado"
            return result
        except (FFmpegNotFoundError, SynthesisError) as e:
            logger.error(f"Exportación fallida: {e}")
            report(f"Error: {e}")
            result.error = str(e)
            return result
        except OSError as e:
            # Disco lleno, destino sin permisos...
            logger.error(f"Exportación fallida por error de archivo: {e}")
            report(f"Error: {e}")
            result.success = False
            result.output_path = None
            result.error = f"Error de archivo: {e}"
            return result
        finally:
            cleanup_work_dir(work_dir)

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ExportCancelledError()

    def _render(
        self,
        project: Project,
        work_dir: Path,
        resolution: str,
        fps: int,
        speaker_id: int,
        resolve_style: StyleResolver,
        report: ProgressCallback,
        cancel_event: Optional[threading.Event],
        result: ExportResult,
    ) -> Optional[Tuple[Path, List[Tuple[float, str]]]]:
        """
        Genera clips, compone y mezcla.

        Returns:
            (video en work_dir, capítulos) o None si falla
        """
        state = _ExportState()
        has_intro = bool(project.intro_media_path)
        has_outro = bool(project.outro_media_path)
        total = len(project.scenes) + 2 + int(has_intro) + int(has_outro)
        step = 0

        # Intro
        if has_intro:
            self._check_cancelled(cancel_event)
            step += 1
            report(f"[{step}/{total}] Generando intro...")
            self._render_bookend(
                project, project.intro_media_path, project.intro_seconds,
                work_dir / "scene_intro.mp4", "Intro", resolution, fps, state,
            )

        # Escenas
        scene_count = len(project.scenes)
        for i, scene in enumerate(project.scenes, 1):
            self._check_cancelled(cancel_event)
            step += 1
            report(f"[{step}/{total}] Escena {i}/{scene_count}: generando audio...")

            scene_speaker = resolve_speaker(scene.speaker_id, speaker_id)
            audio_path = self.resolve_audio(scene, scene_speaker)
            if audio_path is not None:
                scene.audio_cache_path = str(audio_path)
            duration = self.resolve_duration(scene, scene_speaker, audio_path is not None)

            self._check_cancelled(cancel_event)
            report(f"Escena {i}/{scene_count}: generando clip ({duration:.1f}s)...")
            clip_path = work_dir / f"scene_{i:04d}.mp4"
            clip = self.scene_generator.generate(
                scene, clip_path, duration, resolution, fps,
                audio_path=audio_path,
                style=resolve_style(scene),
                watermark=project.watermark,
            )
            if not clip.success:
                result.error = f"Falló la generación de la escena {i}: {clip.error}"
                logger.error(result.error)
                report(result.error)
                return None

            self._append_clip(
                state, clip.output_path, duration, self._chapter_title(scene, i),
                scene.transition or project.default_transition,
            )

        # Outro
        if has_outro:
            self._check_cancelled(cancel_event)
            step += 1
            report(f"[{step}/{total}] Generando outro...")
            self._render_bookend(
                project, project.outro_media_path, project.outro_seconds,
                work_dir / "scene_outro.mp4", "Final", resolution, fps, state,
            )

        # Unión
        self._check_cancelled(cancel_event)
        step += 1
        report(f"[{step}/{total}] Uniendo clips...")
        composed = work_dir / "composed.mp4"
        clip_paths = [clip.path for clip in state.clips]
        use_transitions = any(t.type is not TransitionType.NONE for t in state.transitions)
        if use_transitions:
            compose = self.composer.concat_with_transitions(
                clip_paths, state.transitions, composed, resolution, fps
            )
        else:
            compose = self.composer.concat(clip_paths, composed)
        if not compose.success:
            result.error = f"Falló la unión de clips: {compose.error}"
            report(result.error)
            return None

        # Música de fondo
        self._check_cancelled(cancel_event)
        step += 1
        report(f"[{step}/{total}] Finalizando...")
        if project.bgm.has_bgm:
            with_bgm = work_dir / "composed.bgm.mp4"
            bgm = self.composer.add_bgm(composed, project.bgm, with_bgm)
            if bgm.success:
                promote_file(with_bgm, composed)
            else:
                logger.warning("No se pudo mezclar la música; se conserva el video sin música")

        return composed, self.chapter_times(state.clips, state.transitions, use_transitions)

    def _render_bookend(
        self,
        project: Project,
        media_path: str,
        seconds: float,
        clip_path: Path,
        title: str,
        resolution: str,
        fps: int,
        state: _ExportState,
    ) -> None:
        """Intro/outro como escena de duración fija; si falla se omite."""
        if not Path(media_path).exists():
            logger.warning(f"{title}: no existe {media_path}, se omite")
            return
        bookend = Scene(
            media_path=media_path,
            media_type=_media_type_for(media_path),
            duration_mode=DurationMode.FIXED,
            fixed_seconds=seconds,
        )
        clip = self.scene_generator.generate(
            bookend, clip_path, bookend.fixed_seconds, resolution, fps,
            watermark=project.watermark,
        )
        if not clip.success:
            logger.warning(f"{title}: no se pudo generar, se omite")
            return
        self._append_clip(state, clip.output_path, bookend.fixed_seconds, title, project.default_transition)

    @staticmethod
    def _append_clip(
        state: _ExportState,
        path: Path,
        duration: float,
        title: str,
        transition: Transition,
    ) -> None:
        if state.clips:
            state.transitions.append(transition)
        state.clips.append(_Clip(path=path, duration=duration, title=title))

    @staticmethod
    def _chapter_title(scene: Scene, index: int) -> str:
        if scene.has_narration:
            text = scene.narration.strip()
            if len(text) > CHAPTER_TITLE_LENGTH:
                return text[:CHAPTER_TITLE_LENGTH] + "..."
            return text
        return f"Escena {index}"

    # ------------------------------------------------------------------
    # Artefactos
    # ------------------------------------------------------------------

    @staticmethod
    def chapter_times(clips: List[_Clip], transitions: List[Transition], overlapped: bool) -> List[Tuple[float, str]]:
        """
        Inicio de cada clip en el video final.

        Con transiciones cada clip empieza antes, solapado con el anterior
        durante la duración de la transición.
        """
        chapters = []
        start = 0.0
        for i, clip in enumerate(clips):
            if i > 0:
                start += clips[i - 1].duration
                if overlapped:
                    start -= transitions[i - 1].duration
            chapters.append((max(0.0, start), clip.title))
        return chapters

    def _write_artifacts(
        self,
        project: Project,
        video: Path,
        chapters: List[Tuple[float, str]],
        result: ExportResult,
    ) -> None:
        """
        Miniatura, capítulos y metadatos junto al video final.

        Cada uno es opcional: un fallo se registra y no afecta a los demás.
        """
        if project.generate_thumbnail:
            thumb = video.with_suffix(".jpg")
            if self.scene_generator.extract_thumbnail(video, thumb, 1.0):
                result.thumbnail_path = thumb

        if project.generate_chapters and len(chapters) > 1:
            chapter_path = video.with_suffix(".chapters.txt")
            try:
                chapter_path.write_text(
                    "".join(f"{format_timestamp(t)} {title}\n" for t, title in chapters),
                    encoding="utf-8",
                )
                result.chapter_file_path = chapter_path
            except OSError as e:
                logger.warning(f"No se pudo escribir el archivo de capítulos: {e}")

        metadata_path = video.with_suffix(".metadata.txt")
        try:
            metadata_path.write_text(self.build_metadata(project, chapters), encoding="utf-8")
            result.metadata_file_path = metadata_path
        except OSError as e:
            logger.warning(f"No se pudo escribir el archivo de metadatos: {e}")

    @staticmethod
    def build_metadata(project: Project, chapters: List[Tuple[float, str]]) -> str:
        """Texto con título sugerido, descripción, capítulos y etiquetas."""
        narrations = [s.narration.strip() for s in project.scenes if s.has_narration]
        title = narrations[0][:60] if narrations else project.name

        lines = ["=== Metadatos del video ===", "", "[Título sugerido]", title, ""]
        lines += ["[Descripción]", f"Video generado automáticamente a partir de '{project.name}'.", ""]

        if len(chapters) > 1:
            lines.append("[Capítulos]")
            lines += [f"{format_timestamp(t)} {chapter}" for t, chapter in chapters]
            lines.append("")

        words = []
        for narration in narrations:
            for word in re.split(r"[、。！？!?,.\s]+", narration):
                if 2 <= len(word) <= 10 and word not in words:
                    words.append(word)
        lines += ["[Etiquetas]", ", ".join(words[:7]), ""]

        lines += [
            "[Información]",
            f"Escenas: {len(project.scenes)}",
            f"Resolución: {project.output.resolution}",
            f"Generado: {datetime.now():%Y-%m-%d %H:%M}",
        ]
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Vista previa
    # ------------------------------------------------------------------

    def generate_preview(
        self,
        scene: Scene,
        output_path: Union[str, Path],
        resolution: str = "1080x1920",
        fps: int = 30,
        default_speaker_id: Optional[int] = None,
        style: Optional[TextStyle] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """
        Renderiza una sola escena, sin unión ni música.

        Returns:
            True si se generó la vista previa
        """
        report = progress or (lambda message: None)
        if not self.runner.check_available():
            report("Error: FFmpeg no está disponible")
            return False

        scene = scene.model_copy(deep=True)
        speaker_id = resolve_speaker(scene.speaker_id, default_speaker_id)
        try:
            report("Generando audio...")
            audio_path = self.resolve_audio(scene, speaker_id)
        except (SynthesisError, OSError) as e:
            logger.error(f"Vista previa sin voz: {e}")
            report(f"Error: {e}")
            return False

        duration = self.resolve_duration(scene, speaker_id, audio_path is not None)
        report("Generando escena...")
        clip = self.scene_generator.generate(
            scene, output_path, duration, resolution, fps,
            audio_path=audio_path,
            style=style or preset_style(scene.style_id),
        )
        report("Vista previa completada" if clip.success else "Falló la vista previa")
        return clip.success
