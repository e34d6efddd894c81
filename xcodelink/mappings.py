# -*- coding: utf-8 -*-
"""Tabella dei mapping framework ⇄ progetto sorgente.

La tabella è immutabile: viene costruita all'avvio (mapping built-in + file
JSON opzionale) e passata esplicitamente a chi ne ha bisogno.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ConfigError, UnknownMappingError

TARGET_BACKUP_SUFFIX = "-target"


@dataclass(frozen=True)
class ProjectReference:
    name: str
    project_path: str          # .xcodeproj relativo alla root del repository
    expected_directory: str    # nome della cartella del repository su disco


@dataclass(frozen=True)
class FrameworkRemapping:
    framework_name: str
    original_path: str
    linked_path: str


@dataclass(frozen=True)
class TargetFrameworkInfo:
    """xcframework del progetto target da sostituire con il suo .xcodeproj."""
    framework_name: str
    framework_path: str
    nested_project_path: str
    product_name: str


@dataclass(frozen=True)
class FrameworkMapping:
    id: str
    display_name: str
    source_project: ProjectReference
    target_project: ProjectReference
    framework_remappings: Tuple[FrameworkRemapping, ...] = ()
    nested_project_path: Optional[str] = None
    target_framework: Optional[TargetFrameworkInfo] = None

    @property
    def target_backup_id(self) -> str:
        return f"{self.id}{TARGET_BACKUP_SUFFIX}"


def _carthage(name: str, sub: str = "Carthage/Build") -> FrameworkRemapping:
    return FrameworkRemapping(
        framework_name=f"{name}.xcframework",
        original_path=f"../{sub}/{name}.xcframework",
        linked_path=f"../../pd-mob-b2c-ios/{sub}/{name}.xcframework",
    )


SUBSCRIPTION = FrameworkMapping(
    id="subscription",
    display_name="pd-mob-subscription-ios",
    source_project=ProjectReference(
        name="pd-mob-subscription-ios",
        project_path="Subscription/Subscription.xcodeproj",
        expected_directory="pd-mob-subscription-ios",
    ),
    target_project=ProjectReference(
        name="pd-mob-b2c-ios",
        project_path="Volo.xcodeproj",
        expected_directory="pd-mob-b2c-ios",
    ),
    framework_remappings=tuple(
        [_carthage(n) for n in ("ApiClient", "RxCocoa", "RxRelay", "RxSwift", "SDWebImage",
                                "Bento", "Lottie", "UnifiedLogging")]
        + [_carthage(n, "Carthage/Checkouts/apollo-ios-xcframework/xcframeworks")
           for n in ("Apollo", "ApolloAPI")]
    ),
    nested_project_path="../pd-mob-subscription-ios/Subscription/Subscription.xcodeproj",
    target_framework=TargetFrameworkInfo(
        framework_name="Subscription.xcframework",
        framework_path="Carthage/Build/Subscription.xcframework",
        nested_project_path="../pd-mob-subscription-ios/Subscription/Subscription.xcodeproj",
        product_name="Subscription",
    ),
)

BUILTIN_MAPPINGS: Tuple[FrameworkMapping, ...] = (SUBSCRIPTION,)


class MappingTable:
    def __init__(self, mappings: Iterable[FrameworkMapping]):
        table: Dict[str, FrameworkMapping] = {}
        for m in mappings:
            if not m.id or "_" in m.id:
                raise ConfigError(f"Id mapping non valido '{m.id}': '_' è riservato ai nomi dei backup")
            if m.id.endswith(TARGET_BACKUP_SUFFIX):
                raise ConfigError(
                    f"Id mapping non valido '{m.id}': il suffisso '{TARGET_BACKUP_SUFFIX}' è riservato ai backup del target"
                )
            table[m.id] = m
        self._mappings = table

    def get(self, mapping_id: str) -> FrameworkMapping:
        try:
            return self._mappings[mapping_id]
        except KeyError:
            raise UnknownMappingError(mapping_id, self.ids()) from None

    def find(self, mapping_id: str) -> Optional[FrameworkMapping]:
        return self._mappings.get(mapping_id)

    def ids(self) -> List[str]:
        return sorted(self._mappings)

    def __contains__(self, mapping_id: str) -> bool:
        return mapping_id in self._mappings

    def __iter__(self):
        return iter(self._mappings[k] for k in self.ids())

    def __len__(self) -> int:
        return len(self._mappings)


# --- JSON --------------------------------------------------------------------
def _project_from_json(obj: Dict) -> ProjectReference:
    return ProjectReference(
        name=obj["name"],
        project_path=obj["projectPath"],
        expected_directory=obj.get("expectedDirectory") or obj["name"],
    )


def mapping_from_json(obj: Dict) -> FrameworkMapping:
    tf = obj.get("targetFramework")
    return FrameworkMapping(
        id=obj["id"],
        display_name=obj.get("displayName") or obj["id"],
        source_project=_project_from_json(obj["sourceProject"]),
        target_project=_project_from_json(obj["targetProject"]),
        framework_remappings=tuple(
            FrameworkRemapping(
                framework_name=r["frameworkName"],
                original_path=r["originalPath"],
                linked_path=r["linkedPath"],
            )
            for r in obj.get("frameworkRemappings", []) or []
        ),
        nested_project_path=obj.get("nestedProjectPath"),
        target_framework=TargetFrameworkInfo(
            framework_name=tf["frameworkName"],
            framework_path=tf["frameworkPath"],
            nested_project_path=tf["nestedProjectPath"],
            product_name=tf["productName"],
        ) if tf else None,
    )


def load_mappings_file(path: Path) -> List[FrameworkMapping]:
    """Legge {"mappings": [...]} da file. File assente = nessun mapping extra."""
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as fp:
            data = json.load(fp)
    except json.JSONDecodeError as e:
        raise ConfigError(f"File mapping non valido {path}: {e}") from e
    try:
        return [mapping_from_json(m) for m in data.get("mappings", [])]
    except (KeyError, TypeError, AttributeError) as e:
        raise ConfigError(f"Mapping non valido in {path}: campo mancante {e}") from e


def build_table(extra_file: Optional[Path] = None) -> MappingTable:
    mappings: List[FrameworkMapping] = list(BUILTIN_MAPPINGS)
    if extra_file is not None:
        mappings.extend(load_mappings_file(extra_file))
    return MappingTable(mappings)
