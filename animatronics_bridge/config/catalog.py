"""Default device catalog.

Names and icons are display configuration; a config file can replace the
whole list through its ``devices`` key.
"""
from __future__ import annotations

DEFAULT_CATALOG: list[dict[str, str]] = [
    {"id": "1", "name": "Sapo Dardo Dorada", "icon": "🐸"},
    {"id": "2", "name": "Jaguar", "icon": "🐆"},
    {"id": "3", "name": "Armadillo", "icon": "🦔"},
    {"id": "4", "name": "Delfín Rosado", "icon": "🐬"},
    {"id": "5", "name": "Nutria", "icon": "🦦"},
    {"id": "6", "name": "Guacamaya Jacinto", "icon": "🦜"},
]
