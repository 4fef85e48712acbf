"""Lectura y escritura de proyectos"""

from .parser import CURRENT_SCHEMA_VERSION, ProjectFormatError, ProjectParser, migrate_v1_to_v2

__all__ = ["CURRENT_SCHEMA_VERSION", "ProjectFormatError", "ProjectParser", "migrate_v1_to_v2"]
