"""Módulo de síntesis de voz"""

from .voicevox import SpeechSynthesizer, VoiceVoxClient

__all__ = ["SpeechSynthesizer", "VoiceVoxClient"]
