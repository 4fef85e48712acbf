"""Narrador: exportación de videos narrados con FFmpeg y VOICEVOX"""

__version__ = "0.3.0"
