"""Structured file source (JSON / YAML).

Key format: "relative/path.ext" or "relative/path.ext#field.path".

    <host:file#config/db.yaml#primary.host>
    <all:file#settings.json>          -> whole document as compact JSON

Files are confined to the configured base path. Parsed documents are
cached per absolute path and reused only while the file's mtime is
unchanged.
"""

import json
import logging
from pathlib import Path

import yaml

from paramarr.config import FileSourceConfig
from paramarr.core.errors import ResolutionError
from paramarr.core.interfaces import ParamSource
from paramarr.utilities.cache import TTLCache
from paramarr.utilities.paths import MISSING, get_path, to_text

logger = logging.getLogger(__name__)


class FileSource(ParamSource):
    name = "file"

    def __init__(self, config: FileSourceConfig | None = None):
        self._config = config or FileSourceConfig()
        self._base_path = Path(self._config.base_path)
        self._allowed = {ext.lower() for ext in self._config.allowed_extensions}
        # path -> (mtime_ns, parsed document); validity is the mtime, not a TTL
        self._file_cache = TTLCache(ttl=None)
        self.timeout = self._config.resolve_timeout

    @staticmethod
    def parse_key(key: str) -> tuple[str, str | None]:
        filename, _, field_path = key.partition("#")
        return filename, field_path or None

    def resolve(self, key: str) -> str:
        filename, field_path = self.parse_key(key)
        try:
            data = self.load_file(filename)
            value = get_path(data, field_path)
            if value is MISSING:
                raise ValueError(f"Path '{field_path or 'root'}' not found in file '{filename}'")
        except (OSError, ValueError) as e:
            raise ResolutionError(self.name, key, f"FileSource failed to resolve key '{key}': {e}") from e
        return to_text(value)

    # =========================================================================
    # File loading
    # =========================================================================

    def _checked_path(self, filename: str) -> Path:
        """Resolve `filename` under the base path and enforce the sandbox rules.

        Raises:
            ValueError: Outside base path or extension not allowed
        """
        base = self._base_path.resolve()
        file_path = (base / filename).resolve()
        if not file_path.is_relative_to(base):
            raise ValueError(f"File '{filename}' is outside allowed base path")

        ext = file_path.suffix.lower()
        if ext not in self._allowed:
            allowed = ", ".join(sorted(self._allowed))
            raise ValueError(f"File extension '{ext}' is not allowed. Allowed: {allowed}")
        return file_path

    def _get_cached(self, file_path: Path, mtime_ns: int):
        cached = self._file_cache.get(str(file_path))
        if cached is None:
            return MISSING
        cached_mtime, data = cached
        if cached_mtime != mtime_ns:
            self._file_cache.delete(str(file_path))
            return MISSING
        return data

    def load_file(self, filename: str):
        """Load and parse a file, using the mtime-validated cache.

        Raises:
            ValueError: Sandbox violation, too large, or invalid syntax
            OSError: Not found / not readable
        """
        file_path = self._checked_path(filename)

        try:
            stats = file_path.stat()
        except FileNotFoundError as e:
            raise FileNotFoundError(f"File '{filename}' not found") from e

        if self._config.cache_files:
            data = self._get_cached(file_path, stats.st_mtime_ns)
            if data is not MISSING:
                return data

        if stats.st_size > self._config.max_file_size:
            raise ValueError(
                f"File '{filename}' is too large "
                f"({stats.st_size} bytes, max: {self._config.max_file_size})"
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except PermissionError as e:
            raise PermissionError(f"Permission denied reading file '{filename}'") from e

        ext = file_path.suffix.lower()
        try:
            if ext == ".json":
                data = json.loads(content)
            elif ext in (".yaml", ".yml"):
                data = yaml.safe_load(content)
            else:
                raise ValueError(f"Unsupported file extension: {ext}")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Invalid JSON/YAML syntax in file '{filename}': {e}") from e

        if self._config.cache_files:
            self._file_cache.set(str(file_path), (stats.st_mtime_ns, data))
            logger.debug("[FILE] Cached %s", file_path)

        return data

    # =========================================================================
    # Utilities
    # =========================================================================

    def validate_file(self, filename: str) -> bool:
        """Check sandbox, extension, existence and size without parsing.

        Raises:
            ResolutionError: If any check fails
        """
        try:
            file_path = self._checked_path(filename)
            stats = file_path.stat()
            if stats.st_size > self._config.max_file_size:
                raise ValueError(f"File '{filename}' is too large")
        except (OSError, ValueError) as e:
            raise ResolutionError(self.name, filename, f"File validation failed: {e}") from e
        return True

    def list_available_files(self) -> list[dict]:
        """List loadable files directly under the base path."""
        available = []
        try:
            entries = sorted(self._base_path.iterdir())
        except OSError as e:
            raise ResolutionError(self.name, "", f"Failed to list available files: {e}") from e

        for entry in entries:
            if entry.suffix.lower() not in self._allowed:
                continue
            try:
                stats = entry.stat()
            except OSError:
                continue
            if entry.is_file() and stats.st_size <= self._config.max_file_size:
                available.append(
                    {"filename": entry.name, "size": stats.st_size, "modified": stats.st_mtime}
                )
        return available

    def refresh_cache(self) -> None:
        self._file_cache.clear()

    def cleanup(self) -> None:
        self._file_cache.clear()
