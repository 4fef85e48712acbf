import pytest

from narrador.domain.models import (
    DurationMode,
    MediaType,
    Scene,
    TextOverlay,
    WatermarkPosition,
    WatermarkSettings,
)
from narrador.video.scene_generator import SceneGenerator, SceneStage


@pytest.fixture
def temp_dir(tmp_path):
    return tmp_path / "tmp"


@pytest.fixture
def generator(runner, temp_dir):
    return SceneGenerator(runner, temp_dir=temp_dir)


@pytest.fixture
def narration(tmp_path):
    audio = tmp_path / "narration.wav"
    audio.write_bytes(b"RIFF")
    return audio


def image_scene(**kwargs):
    return Scene(media_path="/media/foto.png", media_type=MediaType.IMAGE, **kwargs)


def test_full_pipeline_records_every_stage(generator, runner, tmp_path, narration, temp_dir):
    output = tmp_path / "out" / "clip.mp4"
    result = generator.generate(
        image_scene(subtitle="Hola mundo"), output, 4.0, "1080x1920", 30, audio_path=narration
    )

    assert result.success
    assert result.output_path == output
    assert output.exists()
    assert result.stages == [
        SceneStage.BASE_GENERATED,
        SceneStage.SUBTITLE_APPLIED,
        SceneStage.OVERLAYS_SKIPPED,
        SceneStage.WATERMARK_SKIPPED,
        SceneStage.AUDIO_MUXED,
        SceneStage.FINALIZED,
    ]
    # Intermedios eliminados
    assert list(temp_dir.iterdir()) == []


def test_image_base_loops_still_with_scale_and_pad(generator, runner, tmp_path):
    generator.generate(image_scene(), tmp_path / "clip.mp4", 4.0, "1080x1920", 30)

    base = runner.calls[0]
    assert base[base.index("-loop") + 1] == "1"
    assert base[base.index("-t") + 1] == "4.000"
    assert base[base.index("-r") + 1] == "30"
    assert "-an" in base
    vf = base[base.index("-vf") + 1]
    assert "scale=1080:1920:force_original_aspect_ratio=decrease" in vf
    assert "pad=1080:1920:(ow-iw)/2:(oh-ih)/2:black" in vf


def test_fixed_duration_used_verbatim(generator, runner, tmp_path):
    scene = Scene(duration_mode=DurationMode.FIXED, fixed_seconds=4.0)
    generator.generate(scene, tmp_path / "clip.mp4", scene.fixed_seconds, "1920x1080", 24)

    base = runner.calls[0]
    assert base[base.index("-t") + 1] == "4.000"
    assert "color=c=black:s=1920x1080:d=4.000:r=24" in base


def test_blank_scene_gets_silent_audio_track(generator, runner, tmp_path):
    result = generator.generate(Scene(), tmp_path / "clip.mp4", 3.0, "1080x1920", 30)

    assert result.success
    assert SceneStage.AUDIO_SKIPPED in result.stages
    silent = runner.calls_with("anullsrc")
    assert len(silent) == 1
    assert silent[0][silent[0].index("-t") + 1] == "3.000"


def test_video_without_original_audio_loops(generator, runner, tmp_path):
    scene = Scene(media_path="/media/clip.mp4", media_type=MediaType.VIDEO)
    generator.generate(scene, tmp_path / "clip.mp4", 6.0, "1080x1920", 30)

    base = runner.calls[0]
    assert base[base.index("-stream_loop") + 1] == "-1"
    assert "-an" in base


def test_video_keeping_original_audio_plays_through(generator, runner, tmp_path):
    scene = Scene(media_path="/media/clip.mp4", media_type=MediaType.VIDEO, keep_original_audio=True)
    result = generator.generate(scene, tmp_path / "clip.mp4", 6.0, "1080x1920", 30)

    base = runner.calls[0]
    assert "-stream_loop" not in base
    assert "-an" not in base
    assert "tpad=stop_mode=clone:stop_duration=6.000" in base[base.index("-vf") + 1]
    assert base[base.index("-c:a") + 1] == "aac"
    assert runner.calls_with("anullsrc") == []
    assert result.success


def test_keep_original_audio_without_audio_stream_is_silenced(runner, temp_dir, tmp_path):
    runner.has_audio = False
    generator = SceneGenerator(runner, temp_dir=temp_dir)
    scene = Scene(media_path="/media/mudo.mp4", media_type=MediaType.VIDEO, keep_original_audio=True)
    generator.generate(scene, tmp_path / "clip.mp4", 2.0, "1080x1920", 30)

    assert "-stream_loop" in runner.calls[0]
    assert len(runner.calls_with("anullsrc")) == 1


def test_base_failure_is_fatal(generator, runner, tmp_path, temp_dir):
    runner.fail_when = lambda args: "-loop" in args
    output = tmp_path / "clip.mp4"
    result = generator.generate(image_scene(subtitle="x"), output, 3.0, "1080x1920", 30)

    assert not result.success
    assert result.stages == []
    assert result.error
    assert not output.exists()
    assert len(runner.calls) == 1
    assert list(temp_dir.iterdir()) == []


def test_subtitle_failure_degrades(generator, runner, tmp_path, narration):
    runner.fail_when = lambda args: any("drawtext" in a for a in args)
    result = generator.generate(
        image_scene(subtitle="Hola"), tmp_path / "clip.mp4", 3.0, "1080x1920", 30, audio_path=narration
    )

    assert result.success
    assert SceneStage.SUBTITLE_SKIPPED in result.stages
    assert SceneStage.AUDIO_MUXED in result.stages


def test_padding_failure_muxes_raw_audio(generator, runner, tmp_path, narration):
    runner.fail_when = lambda args: any(a.startswith("apad=whole_dur") for a in args)
    result = generator.generate(image_scene(), tmp_path / "clip.mp4", 3.0, "1080x1920", 30, audio_path=narration)

    merge = runner.calls_with("1:a:0")[0]
    assert str(narration) in merge
    assert merge[merge.index("-c:v") + 1] == "copy"
    assert merge[merge.index("-c:a") + 1] == "aac"
    assert SceneStage.AUDIO_MUXED in result.stages
    # La narración original no se borra
    assert narration.exists()


def test_audio_pad_matches_duration(generator, runner, tmp_path, narration):
    generator.generate(image_scene(), tmp_path / "clip.mp4", 5.5, "1080x1920", 30, audio_path=narration)

    pad = runner.calls_with("apad=whole_dur")[0]
    assert "apad=whole_dur=5.500" in pad
    assert pad[pad.index("-t") + 1] == "5.500"
    assert pad[pad.index("-ar") + 1] == "44100"


def test_mux_failure_skips_audio_and_adds_silence(generator, runner, tmp_path, narration):
    runner.fail_when = lambda args: "1:a:0" in args and "anullsrc" not in " ".join(args)
    result = generator.generate(image_scene(), tmp_path / "clip.mp4", 3.0, "1080x1920", 30, audio_path=narration)

    assert result.success
    assert SceneStage.AUDIO_SKIPPED in result.stages
    assert len(runner.calls_with("anullsrc")) == 1


def test_overlays_and_watermark_applied(generator, runner, tmp_path):
    logo = tmp_path / "logo.png"
    logo.write_bytes(b"png")
    watermark = WatermarkSettings(enabled=True, image_path=str(logo), position=WatermarkPosition.TOP_LEFT)
    scene = image_scene(text_overlays=[TextOverlay(text="Título")])

    result = generator.generate(scene, tmp_path / "clip.mp4", 3.0, "1000x2000", 30, watermark=watermark)

    assert SceneStage.OVERLAYS_APPLIED in result.stages
    assert SceneStage.WATERMARK_APPLIED in result.stages
    wm = runner.calls_with("colorchannelmixer")[0]
    graph = wm[wm.index("-filter_complex") + 1]
    assert "scale=120:-1" in graph
    assert "overlay=20:20" in graph


def test_inactive_watermark_is_skipped(generator, runner, tmp_path):
    result = generator.generate(
        image_scene(), tmp_path / "clip.mp4", 3.0, "1080x1920", 30,
        watermark=WatermarkSettings(enabled=True, image_path=None),
    )
    assert SceneStage.WATERMARK_SKIPPED in result.stages
    assert runner.calls_with("colorchannelmixer") == []


def test_extract_thumbnail(generator, runner, tmp_path):
    thumb = tmp_path / "thumb.jpg"
    assert generator.extract_thumbnail(tmp_path / "video.mp4", thumb, 1.0)
    assert thumb.exists()
    call = runner.calls[-1]
    assert call[call.index("-ss") + 1] == "1.00"
    assert call[call.index("-frames:v") + 1] == "1"
