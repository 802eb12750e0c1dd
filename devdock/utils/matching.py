"""
Heuristic matchers for containers, processes and launcher artifacts.

Each function takes candidate strings plus a corpus and returns matches in
priority order, so the orchestration code never embeds matching rules inline.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def container_name_candidates(project_id: str, name: str) -> List[str]:
    """
    Container names worth trying for a project, most specific first:
    the id, the trimmed name, then dash- and underscore-joined variants.
    """
    raw = (name or "").strip()
    words = raw.split()
    dashed = "-".join(words)
    underscored = "_".join(words)
    return _dedupe([(project_id or "").strip(), raw, dashed, underscored])


def match_container_names(
    candidates: Sequence[str], live_names: Iterable[str]
) -> List[str]:
    """Live container names equal to any candidate, in candidate order"""
    live = {name.strip() for name in live_names if name and name.strip()}
    return [candidate for candidate in candidates if candidate in live]


def resolve_container_name(
    candidates: Sequence[str], live_names: Iterable[str]
) -> Tuple[Optional[str], List[str]]:
    """
    Pick the container for a project.

    Returns (chosen, matches). The first candidate in priority order wins;
    all matches are returned so callers can report ambiguity.
    """
    matches = match_container_names(candidates, live_names)
    return (matches[0] if matches else None), matches


def process_keywords(
    project_id: str,
    name: str,
    project_type: str,
    extra_keywords: Optional[Dict[str, List[str]]] = None,
) -> List[str]:
    """Ordered process-search keywords: id, name, type, then type extras"""
    keywords = [(value or "").strip() for value in (project_id, name, project_type)]
    type_key = (project_type or "").strip().lower()
    if extra_keywords and type_key in extra_keywords:
        keywords.extend(extra_keywords[type_key])
    return _dedupe(keywords)


def launcher_keywords(project_id: str, name: str, project_type: str) -> List[str]:
    """Lowercased keywords a launcher file name must contain one of"""
    return _dedupe(
        (value or "").strip().lower() for value in (name, project_type, project_id)
    )


def file_matches_keywords(file_name: str, keywords: Sequence[str]) -> bool:
    """Whether a file's base name (extension removed) contains any keyword"""
    base, _ = os.path.splitext(file_name)
    normalized = base.strip().lower()
    return any(keyword in normalized for keyword in keywords if keyword)


@dataclass(frozen=True)
class LauncherCandidate:
    path: str
    mtime: float


def rank_launchers(
    entries: Iterable[LauncherCandidate], keywords: Sequence[str]
) -> List[LauncherCandidate]:
    """Entries whose name matches a keyword, most recently modified first"""
    matched = [
        entry
        for entry in entries
        if file_matches_keywords(os.path.basename(entry.path.rstrip(os.sep)), keywords)
    ]
    return sorted(matched, key=lambda entry: entry.mtime, reverse=True)


def scan_launcher_dir(directory: str) -> List[LauncherCandidate]:
    """Visible entries of a directory with their modification times"""
    entries = []
    try:
        with os.scandir(directory) as iterator:
            for entry in iterator:
                if entry.name.startswith("."):
                    continue
                try:
                    mtime = entry.stat().st_mtime
                except OSError:
                    mtime = 0.0
                entries.append(LauncherCandidate(path=entry.path, mtime=mtime))
    except FileNotFoundError:
        logger.debug(f"Launcher directory not found: {directory}")
    return entries
