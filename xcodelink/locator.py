# -*- coding: utf-8 -*-
"""Individua su disco i due progetti (sorgente e target) di un mapping."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .errors import CannotFixError, ProjectsNotFoundError
from .log import log_verbose
from .mappings import FrameworkMapping

SKIP_DIRS = {".git", "DerivedData", "build", ".build", "Pods", "Carthage"}


@dataclass(frozen=True)
class LocatedProjects:
    source_project_path: Path
    target_project_path: Path
    base_path: Path


class ProjectLocator:
    def locate(self, base_path: Union[str, Path], mapping: FrameworkMapping) -> LocatedProjects:
        base = Path(base_path).expanduser().resolve()
        found = self._from_target(base, mapping) or self._from_parent(base, mapping)
        if found is None:
            raise ProjectsNotFoundError(mapping.source_project.name, mapping.target_project.name)
        log_verbose(f"Sorgente: {found.source_project_path}")
        log_verbose(f"Target:   {found.target_project_path}")
        return found

    def _from_target(self, base: Path, mapping: FrameworkMapping) -> Optional[LocatedProjects]:
        """Lanciato da dentro il repository target, col sorgente come cartella sorella."""
        target = base / mapping.target_project.project_path
        if not target.exists():
            return None
        source = base.parent / mapping.source_project.expected_directory / mapping.source_project.project_path
        if not source.exists():
            return None
        return LocatedProjects(source, target, base.parent)

    def _from_parent(self, base: Path, mapping: FrameworkMapping) -> Optional[LocatedProjects]:
        """Lanciato dalla cartella che contiene entrambi i repository."""
        source_repo = base / mapping.source_project.expected_directory
        target_repo = base / mapping.target_project.expected_directory
        if not (source_repo.exists() and target_repo.exists()):
            return None
        source = source_repo / mapping.source_project.project_path
        target = target_repo / mapping.target_project.project_path
        if not (source.exists() and target.exists()):
            return None
        return LocatedProjects(source, target, base)


def detect_single_project(base_path: Union[str, Path]) -> Path:
    """L'unico .xcodeproj in ``base_path`` (usato da ``fix`` senza mapping)."""
    base = Path(base_path)
    projects = sorted(p for p in base.iterdir() if p.suffix == ".xcodeproj" and p.is_dir())
    if len(projects) == 1:
        log_verbose(f"Progetto rilevato: {projects[0]}")
        return projects[0]
    if not projects:
        raise CannotFixError(
            f"Nessun .xcodeproj in {base}.\n"
            "Indica un mapping: xcodelink fix <mapping>\n"
            "oppure lancia il comando dalla cartella del progetto."
        )
    raise CannotFixError(
        f"Trovati più .xcodeproj: {', '.join(p.name for p in projects)}\n"
        "Indica quale mapping sistemare: xcodelink fix <mapping>"
    )


def find_xcode_projects(root: Union[str, Path]) -> List[Path]:
    """Trova ricorsivamente tutte le .xcodeproj sotto ``root``."""
    projects = []
    for dirpath, dirnames, _ in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        p = Path(dirpath)
        for d in dirnames:
            if d.endswith(".xcodeproj"):
                projects.append(p / d)
        # non scendere dentro i bundle .xcodeproj
        dirnames[:] = [d for d in dirnames if not d.endswith(".xcodeproj")]
    return sorted(projects)
