from narrador.domain.models import DEFAULT_STYLE, TextAlignment, TextOverlay, TextStyle
from narrador.video.subtitles import (
    build_overlay_filter,
    build_subtitle_filter,
    escape_drawtext,
    escape_font_path,
    ffmpeg_color,
    font_spec,
    split_subtitle_text,
)


def test_split_after_fullwidth_comma():
    assert split_subtitle_text("ABC、DEF", 1) == "ABC、\nDEF"


def test_split_without_punctuation_is_exact_midpoint():
    assert split_subtitle_text("ABCDEFGHIJ", 4) == "ABCDE\nFGHIJ"
    assert split_subtitle_text("ABCDEFGHI", 4) == "ABCD\nEFGHI"


def test_short_text_is_unchanged():
    assert split_subtitle_text("corto", 18) == "corto"
    assert split_subtitle_text("", 18) == ""


def test_split_picks_punctuation_nearest_center():
    # ',' a distancia 5 del centro, '.' a distancia 2
    assert split_subtitle_text("A,BCDEFG.HIJ", 5) == "A,BCDEFG.\nHIJ"


def test_trailing_punctuation_falls_back_to_center():
    assert split_subtitle_text("ABCDEFGH。", 4) == "ABCD\nEFGH。"


def test_split_trims_spaces_around_break():
    assert split_subtitle_text("Hola mundo, qué tal estás", 10) == "Hola mundo,\nqué tal estás"


def test_escape_drawtext_special_characters():
    assert escape_drawtext("a:b'c%d\\") == "a\\:b'\\''c%%d\\\\"


def test_escape_font_path_windows():
    assert escape_font_path("C:\\Windows\\Fonts\\meiryo.ttc") == "C\\:/Windows/Fonts/meiryo.ttc"


def test_ffmpeg_color_hex():
    assert ffmpeg_color((255, 0, 16)) == "0xFF0010"


def test_font_spec_prefers_existing_font_file(tmp_path):
    font = tmp_path / "font.ttf"
    font.write_bytes(b"")
    assert font_spec("Yu Gothic UI", str(font)) == f"fontfile='{font}':"
    assert font_spec("Yu Gothic UI", str(tmp_path / "missing.ttf")) == "font='Yu Gothic UI':"
    assert font_spec(None, None) == ""


def test_subtitle_filter_has_shadow_then_main_layer():
    chain = build_subtitle_filter("Hola", DEFAULT_STYLE, 1920)
    shadow, main = chain.split(",drawtext=")

    assert shadow.startswith("drawtext=")
    assert "fontcolor=0x000000" in shadow
    assert "x=(w-text_w)/2+2" in shadow
    assert "y=1632+2" in shadow

    assert "fontcolor=0xFFFFFF" in main
    assert "borderw=3" in main
    assert "x=(w-text_w)/2:" in main
    assert "y=1632" in main
    assert main.endswith("box=1:boxcolor=0x000000@0.70:boxborderw=10")


def test_subtitle_filter_without_shadow_or_box():
    style = TextStyle(shadow_enabled=False, background_opacity=0.0)
    chain = build_subtitle_filter("Hola", style, 1080)
    assert chain.count("drawtext=") == 1
    assert "box=1" not in chain


def test_subtitle_filter_zero_offset_shadow_is_omitted():
    style = TextStyle(shadow_offset=(0, 0))
    assert build_subtitle_filter("Hola", style, 1080).count("drawtext=") == 1


def test_subtitle_filter_splits_long_text():
    chain = build_subtitle_filter("Esto es un subtítulo largo, con coma", DEFAULT_STYLE, 1920)
    assert "text='Esto es un subtítulo largo,\ncon coma'" in chain


def test_overlay_filter_positions_by_percent_and_alignment():
    overlays = [
        TextOverlay(text="izq", x_percent=10, y_percent=20, alignment=TextAlignment.LEFT, shadow_enabled=False),
        TextOverlay(text="der", x_percent=90, y_percent=20, alignment=TextAlignment.RIGHT),
        TextOverlay(text="   "),
    ]
    chain = build_overlay_filter(overlays, 1000, 2000)

    assert chain.count("drawtext=") == 2
    left, right = chain.split(",drawtext=")
    assert "x=100:" in left
    assert "y=400-text_h/2" in left
    assert "shadowcolor" not in left
    assert "x=900-text_w:" in right
    assert "shadowcolor" in right
