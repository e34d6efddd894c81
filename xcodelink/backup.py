# -*- coding: utf-8 -*-
"""Backup dei project.pbxproj prima di ogni modifica.

Layout: ``<data-dir>/backups/<mappingId>_<timestamp ISO8601 con '-' al posto
di ':'>/`` con dentro ``project.pbxproj`` e ``metadata.json``. Il timestamp ha
larghezza fissa (microsecondi, UTC), quindi ordine lessicale = ordine
cronologico.
"""

import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from .errors import MalformedBackupError, NoBackupFoundError
from .log import log_verbose
from .pbxstore import PBXPROJ, pbxproj_path

METADATA = "metadata.json"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S.%fZ"


@dataclass(frozen=True)
class BackupRecord:
    name: str
    path: Path
    original_project_path: str
    mapping_id: str
    timestamp: datetime


def backup_name(mapping_id: str, when: datetime) -> str:
    return f"{mapping_id}_{when.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)}"


def mapping_of(name: str) -> str:
    """Id del mapping di una cartella di backup (tutto prima dell'ultimo '_')."""
    return name.rsplit("_", 1)[0] if "_" in name else ""


class BackupLedger:
    def __init__(self, backups_dir: Union[str, Path]):
        self.backups_dir = Path(backups_dir)

    def create(self, project_path: Union[str, Path], mapping_id: str,
               now: Optional[datetime] = None) -> BackupRecord:
        """Copia project.pbxproj + metadata. Fallisce solo per errori di I/O."""
        source = pbxproj_path(project_path)
        project_dir = source.parent
        self.backups_dir.mkdir(parents=True, exist_ok=True)

        when = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        target = self.backups_dir / backup_name(mapping_id, when)
        while target.exists():
            when += timedelta(microseconds=1)
            target = self.backups_dir / backup_name(mapping_id, when)
        target.mkdir(parents=True)

        shutil.copy2(str(source), str(target / PBXPROJ))
        metadata = {
            "originalProjectPath": str(project_dir),
            "mappingId": mapping_id,
            "timestamp": when.isoformat(),
        }
        with open(target / METADATA, "w", encoding="utf-8") as fp:
            json.dump(metadata, fp, indent=2)
            fp.write("\n")
        log_verbose(f"Backup creato: {target}")
        return BackupRecord(target.name, target, str(project_dir), mapping_id, when)

    def _read_record(self, path: Path) -> BackupRecord:
        try:
            with open(path / METADATA, "r", encoding="utf-8") as fp:
                meta = json.load(fp)
            return BackupRecord(
                name=path.name,
                path=path,
                original_project_path=meta["originalProjectPath"],
                mapping_id=meta["mappingId"],
                timestamp=datetime.fromisoformat(meta["timestamp"]),
            )
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise MalformedBackupError(str(path), str(e) or type(e).__name__) from e

    def _names(self, mapping_id: Optional[str] = None) -> List[str]:
        if not self.backups_dir.is_dir():
            return []
        names = [p.name for p in self.backups_dir.iterdir() if p.is_dir()]
        if mapping_id is not None:
            names = [n for n in names if mapping_of(n) == mapping_id]
        return sorted(names)

    def list(self, mapping_id: Optional[str] = None) -> List[BackupRecord]:
        return [self._read_record(self.backups_dir / n) for n in self._names(mapping_id)]

    def latest(self, mapping_id: str) -> Optional[BackupRecord]:
        names = self._names(mapping_id)
        return self._read_record(self.backups_dir / names[-1]) if names else None

    def has_backup(self, mapping_id: str) -> bool:
        return bool(self._names(mapping_id))

    def restore_latest(self, mapping_id: str) -> BackupRecord:
        """Rimette in place il backup più recente del mapping e lo cancella.

        Solleva NoBackupFoundError senza toccare il progetto se non ce n'è uno.
        """
        record = self.latest(mapping_id)
        if record is None:
            raise NoBackupFoundError(mapping_id)
        backup_file = record.path / PBXPROJ
        if not backup_file.is_file():
            raise MalformedBackupError(str(record.path), f"manca {PBXPROJ}")

        live = pbxproj_path(record.original_project_path)
        if live.exists():
            live.unlink()
        shutil.copy2(str(backup_file), str(live))
        shutil.rmtree(str(record.path))
        log_verbose(f"Ripristinato {live} da {record.name}")
        return record

    def discard(self, mapping_id: str) -> int:
        """Cancella i backup del mapping ormai superati. Ritorna quanti ne ha tolti."""
        names = self._names(mapping_id)
        for name in names:
            shutil.rmtree(str(self.backups_dir / name))
        if names:
            log_verbose(f"Backup superati rimossi per '{mapping_id}': {len(names)}")
        return len(names)
