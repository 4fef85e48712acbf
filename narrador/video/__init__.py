"""Módulo de video"""

from .composer import ComposeResult, VideoComposer
from .scene_generator import SceneClipResult, SceneGenerator, SceneStage
from .subtitles import split_subtitle_text

__all__ = [
    "ComposeResult",
    "SceneClipResult",
    "SceneGenerator",
    "SceneStage",
    "VideoComposer",
    "split_subtitle_text",
]
