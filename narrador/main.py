"""
Entrada principal de Narrador.
Exporta proyectos de video narrado desde la línea de comandos.
"""
import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn

from .config import Settings, load_settings
from .director.parser import ProjectFormatError, ProjectParser
from .infrastructure.ffmpeg import FFmpegRunner
from .pipeline import ExportPipeline, ExportResult, parse_progress, resolve_speaker
from .tts.voicevox import VoiceVoxClient
from .utils.cache import SpeechCache
from .video.subtitles import find_default_font

logger = logging.getLogger(__name__)
console = Console()


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def build_pipeline(settings: Settings) -> ExportPipeline:
    """Construye el pipeline con sus colaboradores a partir de la configuración."""
    runner = FFmpegRunner(
        settings.engine.ffmpeg_path,
        settings.engine.ffprobe_path,
        timeout=settings.engine.process_timeout,
    )
    synthesizer = VoiceVoxClient(
        base_url=settings.engine.voicevox_url,
        query_timeout=settings.engine.query_timeout,
        synthesis_timeout=settings.engine.synthesis_timeout,
        max_attempts=settings.engine.max_attempts,
        retry_delay=settings.engine.retry_delay,
    )
    cache = SpeechCache(settings.cache.directory, max_bytes=settings.cache.max_bytes)
    return ExportPipeline(
        runner,
        synthesizer,
        cache,
        temp_root=settings.export.temp_dir,
        auto_padding_seconds=settings.export.auto_padding_seconds,
        default_scene_seconds=settings.export.default_scene_seconds,
        font_path=settings.export.font_path or find_default_font(),
    )


def run_export(pipeline: ExportPipeline, args: argparse.Namespace, settings: Settings) -> int:
    project = ProjectParser().load(args.project)
    console.print(Panel(
        f"[bold cyan]EXPORTACIÓN[/bold cyan]\n"
        f"Proyecto: {project.name}\n"
        f"Escenas: {len(project.scenes)}\n"
        f"Salida: {args.output}",
        border_style="cyan",
    ))

    cancel_event = threading.Event()
    outcome: dict[str, ExportResult] = {}

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Preparando...", total=None)

        def on_progress(message: str) -> None:
            parsed = parse_progress(message)
            if parsed:
                current, total = parsed
                progress.update(task, completed=current - 1, total=total)
            progress.update(task, description=f"[cyan]{message}")

        def work() -> None:
            outcome["result"] = pipeline.export(
                project,
                args.output,
                resolution=args.resolution,
                fps=args.fps,
                default_speaker_id=resolve_speaker(
                    args.speaker, project.default_speaker_id, settings.engine.default_speaker_id
                ),
                progress=on_progress,
                cancel_event=cancel_event,
            )

        worker = threading.Thread(target=work, name="narrador-export")
        worker.start()
        try:
            while worker.is_alive():
                worker.join(timeout=0.2)
        except KeyboardInterrupt:
            progress.update(task, description="[yellow]Cancelando en el siguiente punto seguro...")
            cancel_event.set()
            worker.join()

        result = outcome.get("result")
        if result and result.success:
            progress.update(task, completed=progress.tasks[0].total or 1)

    if result is None:
        console.print("[red]✗ La exportación terminó sin resultado[/red]")
        return 1
    if result.cancelled:
        console.print("[yellow]Exportación cancelada[/yellow]")
        return 130
    if not result.success:
        console.print(f"[red]✗ {result.error}[/red]")
        return 1

    console.print(f"[green]✓ Video exportado: {result.output_path}[/green]")
    for artifact in result.auxiliary_artifact_paths:
        console.print(f"  [dim]{artifact}[/dim]")
    return 0


def run_preview(pipeline: ExportPipeline, args: argparse.Namespace, settings: Settings) -> int:
    project = ProjectParser().load(args.project)
    if not 1 <= args.scene <= len(project.scenes):
        console.print(f"[red]Escena fuera de rango (1-{len(project.scenes)})[/red]")
        return 2
    scene = project.scenes[args.scene - 1]
    ok = pipeline.generate_preview(
        scene,
        args.output,
        resolution=project.output.resolution,
        fps=project.output.fps,
        default_speaker_id=resolve_speaker(project.default_speaker_id, settings.engine.default_speaker_id),
        progress=lambda message: console.print(f"[cyan]{message}[/cyan]"),
    )
    return 0 if ok else 1


def run_check(pipeline: ExportPipeline) -> int:
    ffmpeg_ok = pipeline.runner.check_available()
    console.print(f"FFmpeg: {'[green]OK' if ffmpeg_ok else '[red]no encontrado'}[/]")
    version: Optional[str] = None
    if isinstance(pipeline.synthesizer, VoiceVoxClient):
        version = pipeline.synthesizer.check_connection()
    console.print(f"VOICEVOX: {'[green]' + version if version else '[red]no disponible'}[/]")
    return 0 if ffmpeg_ok else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="narrador", description="Exportador de videos narrados")
    parser.add_argument("--config", help="Archivo YAML de configuración")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Exporta un proyecto a MP4")
    export.add_argument("project", type=Path, help="Archivo de proyecto (.json)")
    export.add_argument("-o", "--output", type=Path, required=True, help="Video de salida")
    export.add_argument("--resolution", help="ANCHOxALTO (por defecto la del proyecto)")
    export.add_argument("--fps", type=int, help="FPS (por defecto los del proyecto)")
    export.add_argument("--speaker", type=int, help="Voz VOICEVOX por defecto")

    preview = sub.add_parser("preview", help="Renderiza una sola escena")
    preview.add_argument("project", type=Path)
    preview.add_argument("--scene", type=int, default=1, help="Número de escena (desde 1)")
    preview.add_argument("-o", "--output", type=Path, required=True)

    sub.add_parser("cache-clear", help="Vacía el cache de audio")
    sub.add_parser("check", help="Verifica FFmpeg y VOICEVOX")

    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    setup_logging(settings.log_level)

    if args.command == "cache-clear":
        cache = SpeechCache(settings.cache.directory, max_bytes=settings.cache.max_bytes)
        removed = cache.clear()
        cache.close()
        console.print(f"[green]Cache vaciado: {removed} archivos eliminados[/green]")
        return 0

    pipeline = build_pipeline(settings)
    try:
        if args.command == "check":
            return run_check(pipeline)
        if args.command == "preview":
            return run_preview(pipeline, args, settings)
        return run_export(pipeline, args, settings)
    except (ProjectFormatError, FileNotFoundError) as e:
        console.print(f"[red]✗ {e}[/red]")
        return 2
    finally:
        pipeline.cache.close()
        if isinstance(pipeline.synthesizer, VoiceVoxClient):
            pipeline.synthesizer.close()


if __name__ == "__main__":
    sys.exit(main())
