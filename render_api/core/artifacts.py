"""Locate the file a renderer produced inside its output directory.

The renderer writes to ``videos/<module>/<quality>/`` below the media root,
where ``<quality>`` depends on the quality flag and on the renderer version.
Exact file names are not guaranteed, so lookup walks a fixed list of
candidate directories: inside each one a file whose name contains the scene
name wins, otherwise the first file with the expected extension is taken.
That fallback is only safe because every job renders into its own fresh
workspace.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)

ARTIFACT_EXTENSION = ".mp4"

QUALITY_FLAGS: dict[str, str] = {
    "ql": "480p15",
    "qm": "720p30",
    "qh": "1080p60",
    "qp": "1440p60",
    "qk": "2160p60",
}

QUALITY_DIRECTORIES: tuple[str, ...] = ("480p15", "720p30", "1080p60", "1440p60", "2160p60")


def candidate_directories(module_name: str) -> list[Path]:
    """Return the ordered output directories for a rendered source module."""

    return [Path("videos") / module_name / quality for quality in QUALITY_DIRECTORIES]


def _files_with_extension(directory: Path, extension: str) -> list[Path]:
    return sorted(
        (entry for entry in directory.iterdir() if entry.is_file() and entry.name.endswith(extension)),
        key=lambda entry: entry.name,
    )


def find_artifact(
    output_root: Path,
    name_hint: str,
    *,
    candidates: Sequence[Path] | Iterable[Path],
    extension: str = ARTIFACT_EXTENSION,
) -> Path | None:
    for relative in candidates:
        directory = output_root / relative
        if not directory.is_dir():
            continue

        files = _files_with_extension(directory, extension)
        logger.debug("files in %s: %s", directory, [entry.name for entry in files])

        for entry in files:
            if name_hint and name_hint in entry.name:
                return entry
        if files:
            logger.info("no file matching %r in %s, falling back to %s", name_hint, directory, files[0].name)
            return files[0]

    return None


__all__ = [
    "ARTIFACT_EXTENSION",
    "QUALITY_DIRECTORIES",
    "QUALITY_FLAGS",
    "candidate_directories",
    "find_artifact",
]
