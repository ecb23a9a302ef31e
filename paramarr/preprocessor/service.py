"""Batch preprocessing of spec directories.

Walks a directory tree and mirrors it under an output root:
- .spec / .md documents are resolved and written
- everything else is copied unchanged
- a document that fails to resolve is copied through unresolved and
  recorded as a failure; the run continues

Cancellation is checked between files. Outputs already written stay in
place.
"""

import logging
import shutil
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from paramarr.core.errors import ParamarrError, ValidationError
from paramarr.core.types import BatchResult, FileFailure, PlaceholderStatistics, ValidationResults
from paramarr.placeholders import scan_placeholders
from paramarr.resolver import ParamResolver
from paramarr.utilities.masking import mask_secrets

logger = logging.getLogger(__name__)

SPEC_EXTENSIONS = (".spec", ".md")
RESOLVED_SUFFIX = "_resolved"


def is_spec_file(path: str | Path) -> bool:
    return Path(path).suffix.lower() in SPEC_EXTENSIONS


def default_output_path(file_path: str | Path) -> Path:
    """specs/login.spec -> specs/login_resolved.spec"""
    path = Path(file_path)
    return path.with_name(f"{path.stem}{RESOLVED_SUFFIX}{path.suffix}")


class Preprocessor:
    """Applies a ParamResolver to files and directory trees.

    Each public batch operation initializes the resolver at its start and
    cleans it up at its end.
    """

    def __init__(self, config_path: str | Path | None = None, *, resolver: ParamResolver | None = None):
        self.resolver = resolver or ParamResolver(config_path)
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop the running batch after the current file."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @contextmanager
    def _session(self) -> Iterator[ParamResolver]:
        self._cancel.clear()
        self.resolver.initialize()
        try:
            yield self.resolver
        finally:
            self.resolver.cleanup()

    # =========================================================================
    # Processing
    # =========================================================================

    def process_directory(self, spec_dir: str | Path, out_dir: str | Path) -> BatchResult:
        """Resolve every document under spec_dir into out_dir.

        Raises:
            ParamarrError: spec_dir does not exist or out_dir cannot be created
        """
        spec_root = Path(spec_dir)
        out_root = Path(out_dir)
        if not spec_root.is_dir():
            raise ParamarrError(f"Spec directory not found: {spec_root}")

        result = BatchResult()
        with self._session():
            try:
                out_root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ParamarrError(f"Failed to create output directory {out_root}: {e}") from e

            skip = out_root.resolve()
            for source_path in _walk(spec_root, skip=skip):
                if self._cancel.is_set():
                    logger.warning("[PREPROCESS] Cancelled, stopping before %s", source_path)
                    result.cancelled = True
                    break
                target_path = out_root / source_path.relative_to(spec_root)
                if is_spec_file(source_path):
                    self._process_spec_file(source_path, target_path, result)
                else:
                    self._copy_through(source_path, target_path, result)

        logger.info(
            "[PREPROCESS] %s -> %s: %d resolved, %d copied, %d failed",
            spec_root,
            out_root,
            len(result.processed),
            len(result.copied),
            len(result.failures),
        )
        return result

    def process_file(self, file_path: str | Path, output_path: str | Path | None = None) -> BatchResult:
        """Resolve a single document (default output: <name>_resolved<ext> beside it)."""
        source_path = Path(file_path)
        if not source_path.is_file():
            raise ParamarrError(f"File not found: {source_path}")
        target_path = Path(output_path) if output_path else default_output_path(source_path)

        result = BatchResult()
        with self._session():
            self._process_spec_file(source_path, target_path, result)
        return result

    def _process_spec_file(self, source_path: Path, target_path: Path, result: BatchResult) -> None:
        logger.debug("[PREPROCESS] Processing %s", source_path)
        try:
            content = source_path.read_text(encoding="utf-8")
            resolved = self.resolver.resolve_text(content)
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(resolved, encoding="utf-8")
        except (ParamarrError, OSError, UnicodeDecodeError) as e:
            failure = ValidationError(str(source_path), str(e))
            logger.warning("[PREPROCESS] %s - copying original", failure)
            result.failures.append(FileFailure(path=str(source_path), error=str(failure)))
            try:
                _copy(source_path, target_path)
            except OSError as copy_error:
                logger.error("[PREPROCESS] Failed to copy %s: %s", source_path, copy_error)
            return

        result.processed.append(str(source_path))
        logger.info("[PREPROCESS] Resolved %s -> %s", source_path, target_path)

    @staticmethod
    def _copy_through(source_path: Path, target_path: Path, result: BatchResult) -> None:
        try:
            _copy(source_path, target_path)
        except OSError as e:
            logger.error("[PREPROCESS] Failed to copy %s: %s", source_path, e)
            result.failures.append(
                FileFailure(path=str(source_path), error=f"Failed to copy file to {target_path}: {e}")
            )
            return
        result.copied.append(str(source_path))

    # =========================================================================
    # Analysis
    # =========================================================================

    def validate_specs(self, spec_dir: str | Path) -> ValidationResults:
        """Resolve every document without writing anything.

        Raises:
            ParamarrError: spec_dir does not exist
        """
        spec_root = Path(spec_dir)
        if not spec_root.is_dir():
            raise ParamarrError(f"Spec directory not found: {spec_root}")

        results = ValidationResults()
        with self._session():
            for path in _walk(spec_root):
                if not is_spec_file(path):
                    continue
                if self._cancel.is_set():
                    break
                results.total_files += 1
                try:
                    self.resolver.resolve_text(path.read_text(encoding="utf-8"))
                except (ParamarrError, OSError, UnicodeDecodeError) as e:
                    error = ValidationError(str(path), str(e))
                    results.errors.append(FileFailure(path=str(path), error=str(error)))
                    logger.warning("[PREPROCESS] Validation failed: %s", error)
                    continue
                results.processed_files += 1
                logger.debug("[PREPROCESS] Validation passed: %s", path)
        return results

    @staticmethod
    def find_placeholders(file_path: str | Path) -> list[dict]:
        """Every placeholder in a file, with its character span.

        Raises:
            ParamarrError: File cannot be read
        """
        try:
            content = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParamarrError(f"Failed to analyze file {file_path}: {e}") from e

        return [
            {
                "full_match": match.text,
                "name": match.placeholder.name,
                "source": match.placeholder.source,
                "key": match.placeholder.key,
                "default_value": match.placeholder.default_value,
                "position": {"start": match.start, "end": match.end},
            }
            for match in scan_placeholders(content)
        ]

    def get_placeholder_statistics(self, spec_dir: str | Path) -> PlaceholderStatistics:
        """Count placeholders per source across a directory. Does not contact any source."""
        stats = PlaceholderStatistics()
        for path in _walk(Path(spec_dir)):
            if not is_spec_file(path):
                continue
            stats.total_files += 1
            try:
                placeholders = self.find_placeholders(path)
            except ParamarrError as e:
                logger.warning("[PREPROCESS] %s", mask_secrets(str(e)))
                continue
            if not placeholders:
                continue
            stats.files_with_placeholders += 1
            stats.total_placeholders += len(placeholders)
            for placeholder in placeholders:
                stats.source_types[placeholder["source"]] = stats.source_types.get(placeholder["source"], 0) + 1
                stats.details.append({"file": str(path), **placeholder})
        return stats


def _walk(root: Path, skip: Path | None = None) -> Iterator[Path]:
    """Yield files under root depth-first in sorted order.

    `skip` excludes a directory (the output root when it sits inside the
    input tree). Unreadable directories are logged and skipped.
    """
    try:
        entries = sorted(root.iterdir())
    except OSError as e:
        logger.warning("[PREPROCESS] Failed to read directory %s: %s", root, e)
        return
    for entry in entries:
        if entry.is_dir():
            if skip is not None and entry.resolve() == skip:
                continue
            yield from _walk(entry, skip)
        elif entry.is_file():
            yield entry


def _copy(source_path: Path, target_path: Path) -> None:
    target_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source_path, target_path)
