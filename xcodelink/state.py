# -*- coding: utf-8 -*-
"""Stato di linking persistito accanto ai repository.

Un solo record per base path (una sola sessione di linking attiva alla
volta). ``disable`` legge da qui il token di inversione invece di ricostruire
cosa ha fatto ``enable``.
"""

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from .config import STATE_FILE_NAME
from .errors import LinkStateNotFoundError, MalformedLinkStateError


@dataclass(frozen=True)
class SavedXCFrameworkInfo:
    """Token di inversione: quanto basta per ricreare l'xcframework rimosso."""
    file_reference_id: str
    build_file_ids: List[str] = field(default_factory=list)
    group_id: Optional[str] = None
    original_path: str = ""
    original_name: str = ""

    def to_json(self) -> Dict:
        return {
            "fileReferenceId": self.file_reference_id,
            "buildFileIds": list(self.build_file_ids),
            "groupId": self.group_id,
            "originalPath": self.original_path,
            "originalName": self.original_name,
        }

    @classmethod
    def from_json(cls, obj: Dict) -> "SavedXCFrameworkInfo":
        return cls(
            file_reference_id=obj["fileReferenceId"],
            build_file_ids=list(obj.get("buildFileIds") or []),
            group_id=obj.get("groupId"),
            original_path=obj["originalPath"],
            original_name=obj["originalName"],
        )


@dataclass(frozen=True)
class LinkState:
    enabled: bool
    mapping: str
    timestamp: datetime
    saved_xcframework_info: Optional[SavedXCFrameworkInfo] = None

    def to_json(self) -> Dict:
        info = self.saved_xcframework_info
        return {
            "enabled": self.enabled,
            "mapping": self.mapping,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "savedXCFrameworkInfo": info.to_json() if info else None,
        }

    @classmethod
    def from_json(cls, obj: Dict) -> "LinkState":
        info = obj.get("savedXCFrameworkInfo")
        stamp = obj["timestamp"]
        if stamp.endswith("Z"):
            stamp = stamp[:-1] + "+00:00"
        return cls(
            enabled=bool(obj["enabled"]),
            mapping=obj["mapping"],
            timestamp=datetime.fromisoformat(stamp),
            saved_xcframework_info=SavedXCFrameworkInfo.from_json(info) if info else None,
        )


class LinkStateStore:
    def __init__(self, base_path: Union[str, Path], file_name: str = STATE_FILE_NAME):
        self.path = Path(base_path) / file_name

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> LinkState:
        if not self.path.exists():
            raise LinkStateNotFoundError(str(self.path))
        try:
            with open(self.path, "r", encoding="utf-8") as fp:
                data = json.load(fp)
            return LinkState.from_json(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedLinkStateError(str(self.path), str(e) or type(e).__name__) from e

    def write(self,
              enabled: bool,
              mapping: str,
              saved_xcframework_info: Optional[SavedXCFrameworkInfo] = None) -> LinkState:
        state = LinkState(
            enabled=enabled,
            mapping=mapping,
            timestamp=datetime.now(timezone.utc),
            saved_xcframework_info=saved_xcframework_info,
        )
        # scrittura su file temporaneo + rename: il record è vecchio o nuovo, mai troncato
        fd, tmp = tempfile.mkstemp(prefix=self.path.name + ".", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fp:
                json.dump(state.to_json(), fp, indent=2)
                fp.write("\n")
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        return state

    def clear(self) -> bool:
        """Cancella il record; ritorna False se non c'era."""
        try:
            self.path.unlink()
            return True
        except FileNotFoundError:
            return False
