"""Application version lookup from VERSION files."""

from pathlib import Path
from typing import Iterable


VERSION_FILE_CANDIDATES: tuple[Path, ...] = (
    Path("/app/VERSION"),
    Path(__file__).resolve().parent.parent / "VERSION",
)
UNKNOWN_VERSION = "unknown"


def _first_version(candidates: Iterable[Path]) -> tuple[str, str]:
    for candidate in candidates:
        if not candidate.exists():
            continue
        try:
            version = candidate.read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if version:
            return version, str(candidate)
    return UNKNOWN_VERSION, UNKNOWN_VERSION


def read_app_version(version_file_candidates: Iterable[Path] | None = None) -> str:
    """Read the application version from the first readable VERSION file.

    Args:
        version_file_candidates: Optional ordered candidate paths. If omitted,
            the container image path is tried before the repository root.

    Returns:
        Version string when found; otherwise ``"unknown"``.
    """
    version, _ = _first_version(version_file_candidates or VERSION_FILE_CANDIDATES)
    return version


def get_app_version_info(
    version_file_candidates: Iterable[Path] | None = None,
) -> dict[str, str]:
    """Version metadata for the /version endpoints: ``version`` and ``source``."""
    version, source = _first_version(version_file_candidates or VERSION_FILE_CANDIDATES)
    return {"version": version, "source": source}
