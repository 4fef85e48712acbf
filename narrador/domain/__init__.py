"""Modelos de dominio"""

from .models import (
    BGMSettings,
    DurationMode,
    FadeCurve,
    MediaType,
    OutputSettings,
    Project,
    Scene,
    TextOverlay,
    TextStyle,
    Transition,
    TransitionType,
    WatermarkSettings,
    preset_style,
    xfade_filter_name,
)

__all__ = [
    "BGMSettings",
    "DurationMode",
    "FadeCurve",
    "MediaType",
    "OutputSettings",
    "Project",
    "Scene",
    "TextOverlay",
    "TextStyle",
    "Transition",
    "TransitionType",
    "WatermarkSettings",
    "preset_style",
    "xfade_filter_name",
]
