from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from storyreel.errors import ConfigurationError
from storyreel.models.api import ArtStyleInfo, MusicInfo, VoiceInfo

DEFAULT_CATALOG_DIR = Path(__file__).resolve().parent.parent / "data"

VOICES_FILE = "voices.json"
ART_STYLES_FILE = "artStyles.json"
MUSIC_FILE = "music.json"


class CatalogStore:
    """Static voice, art-style and music lookups read once from bundled JSON files."""

    def __init__(self, directory: str | Path | None = None, logger: logging.Logger | None = None) -> None:
        self.directory = Path(directory) if directory else DEFAULT_CATALOG_DIR
        self.log = logger or logging.getLogger(__name__)
        self._voices: list[VoiceInfo] | None = None
        self._art_styles: list[ArtStyleInfo] | None = None
        self._music: list[MusicInfo] | None = None

    def voices(self) -> list[VoiceInfo]:
        if self._voices is None:
            self._voices = [VoiceInfo.model_validate(entry) for entry in self._load(VOICES_FILE)]
        return list(self._voices)

    def art_styles(self) -> list[ArtStyleInfo]:
        if self._art_styles is None:
            self._art_styles = [ArtStyleInfo.model_validate(entry) for entry in self._load(ART_STYLES_FILE)]
        return list(self._art_styles)

    def music(self) -> list[MusicInfo]:
        if self._music is None:
            self._music = [MusicInfo.model_validate(entry) for entry in self._load(MUSIC_FILE)]
        return list(self._music)

    def style_prompts(self) -> dict[str, dict[str, str]]:
        return {style.id: {"name": style.name, "prompt": style.prompt} for style in self.art_styles()}

    def _load(self, filename: str) -> list[dict[str, Any]]:
        path = self.directory / filename
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigurationError(f"catalog file {path} is missing") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"catalog file {path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise ConfigurationError(f"catalog file {path} must contain a JSON array")
        self.log.debug("catalog loaded", extra={"catalog": filename, "entries": len(payload)})
        return payload
