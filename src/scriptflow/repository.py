#!/usr/bin/env python3
"""
Script Repository

Discovers scripts in the bundled directory and in every registered external
directory, in that priority order. A directory that cannot be read, or a script
that fails to parse, is skipped with a warning; discovery never aborts because
of a single bad input.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .annotations import AnnotationParser
from .contracts.models import Origin, Script
from .errors import AnnotationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptSource:
    """A directory scanned for scripts."""

    directory: Path
    origin: Origin


class ScriptRepository:
    """Builds the full list of valid scripts, in discovery order."""

    def __init__(
        self,
        bundled_dir: Optional[Path],
        external_dirs: Iterable[str] = (),
        parser: Optional[AnnotationParser] = None,
        extensions: Sequence[str] = (".sh",),
    ):
        self.parser = parser or AnnotationParser()
        self.extensions = tuple(ext.lower() for ext in extensions)
        sources: List[ScriptSource] = []
        if bundled_dir is not None:
            sources.append(ScriptSource(Path(bundled_dir), Origin.bundled))
        for directory in external_dirs:
            sources.append(ScriptSource(Path(directory).expanduser(), Origin.external))
        self.sources = sources

    @property
    def directories(self) -> List[Path]:
        """Directories in priority order: bundled first, then externals."""
        return [source.directory for source in self.sources]

    def discover(self) -> List[Script]:
        logger.debug("Starting script discovery in %d directories", len(self.sources))
        scripts: List[Script] = []
        seen = set()
        for source in self.sources:
            key = source.directory.resolve()
            if key in seen:
                logger.debug("Directory %s already scanned", source.directory)
                continue
            seen.add(key)
            found = self._load_directory(source)
            logger.debug("Found %d scripts in %s", len(found), source.directory)
            scripts.extend(found)
        logger.debug("Total scripts discovered: %d", len(scripts))
        return scripts

    def _eligible_files(self, directory: Path) -> List[Path]:
        return sorted(
            path
            for path in directory.iterdir()
            if path.suffix.lower() in self.extensions and path.is_file()
        )

    def _load_directory(self, source: ScriptSource) -> List[Script]:
        try:
            directory = source.directory.resolve()
            files = self._eligible_files(directory)
        except OSError as e:
            logger.warning("Skipping script directory %s: %s", source.directory, e)
            return []

        scripts = []
        for path in files:
            script = self._load_script(path, source.origin)
            if script is not None:
                scripts.append(script)
        return scripts

    def _load_script(self, path: Path, origin: Origin) -> Optional[Script]:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping script %s: %s", path, e)
            return None
        try:
            return self.parser.parse(content, path, origin)
        except AnnotationError as e:
            logger.warning("Skipping invalid script %s", e)
            return None
