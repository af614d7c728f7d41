from __future__ import annotations

import json
import logging
from pathlib import Path

from ..models.column_mapping import ColumnMapping
from ..models.mapping_profile import MappingProfile

"""Mapping profile store: named column mappings kept on the operator's machine.

The cache file is a JSON list of ``{name, mapping, timestamp}`` objects. It is
local and never synced. A loaded profile is not checked against the current
header row; the preview is the operator's safeguard.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_PROFILES_PATH",
    "ProfileError",
    "ProfileNotFound",
    "MappingProfileStore",
]

DEFAULT_PROFILES_PATH = Path.home() / ".cache" / "muster_import" / "mapping_profiles.json"


class ProfileError(Exception):
    """Raised for an invalid profile operation (e.g. blank name)."""


class ProfileNotFound(ProfileError):
    """Raised when a named profile does not exist."""


class MappingProfileStore:
    """CRUD over mapping profiles backed by a JSON file.

    Writes that fail (read-only home, full disk) keep the profile in memory
    for the rest of the session and log a warning instead of failing.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or DEFAULT_PROFILES_PATH
        self._profiles: dict[str, MappingProfile] | None = None
        self.session_only = False

    def _load(self) -> dict[str, MappingProfile]:
        if self._profiles is not None:
            return self._profiles
        profiles: dict[str, MappingProfile] = {}
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("could not read mapping profiles from %s: %s", self.path, e)
                raw = []
            if not isinstance(raw, list):
                logger.warning("ignoring malformed mapping profile file %s", self.path)
                raw = []
            for entry in raw:
                try:
                    profile = MappingProfile.from_json_obj(entry)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("skipping unreadable mapping profile %r: %s", entry, e)
                    continue
                profiles[profile.name] = profile
        self._profiles = profiles
        return profiles

    def _persist(self) -> None:
        payload = [p.to_json_obj() for p in self._load().values()]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            self.session_only = True
            logger.warning("mapping profiles kept for this session only (%s): %s", self.path, e)

    def list_profiles(self) -> list[MappingProfile]:
        return sorted(self._load().values(), key=lambda p: p.name.lower())

    def get_profile(self, name: str) -> MappingProfile:
        profile = self._load().get(name.strip())
        if profile is None:
            raise ProfileNotFound(f"mapping profile not found: {name!r}")
        return profile

    def save_profile(self, name: str, mapping: ColumnMapping) -> MappingProfile:
        """Save (or replace) a named profile."""
        key = name.strip()
        if not key:
            raise ProfileError("profile name must not be blank")
        profile = MappingProfile.create(key, mapping)
        self._load()[key] = profile
        self._persist()
        logger.info("saved mapping profile '%s'%s", key, " (session only)" if self.session_only else "")
        return profile

    def delete_profile(self, name: str) -> None:
        key = name.strip()
        profiles = self._load()
        if key not in profiles:
            raise ProfileNotFound(f"mapping profile not found: {name!r}")
        del profiles[key]
        self._persist()
        logger.info("deleted mapping profile '%s'", key)
