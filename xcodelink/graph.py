# -*- coding: utf-8 -*-
"""Grafo degli oggetti di un project.pbxproj.

Gli oggetti vivono in un'arena piatta ``id -> dict`` (il dizionario pbx
originale, chiavi sconosciute comprese). Gli archi sono solo id: nessun
riferimento Python tra nodi, quindi i cicli Group ↔ figli o
Target ↔ dependency ↔ proxy ↔ portal non sono un problema e cancellare un
nodo significa "togli dall'arena + sistema le liste che lo citano".

Il tipo di un nodo si legge da ``kind_of()`` (enum chiuso ``NodeKind``);
il resto del codice fa dispatch su quello, mai su stringhe ``isa`` sparse.
"""

import copy
import uuid
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class NodeKind(Enum):
    FILE_REFERENCE = "file_reference"
    BUILD_FILE = "build_file"
    BUILD_PHASE = "build_phase"
    GROUP = "group"
    TARGET = "target"
    TARGET_DEPENDENCY = "target_dependency"
    CONTAINER_ITEM_PROXY = "container_item_proxy"
    REFERENCE_PROXY = "reference_proxy"
    PROJECT = "project"
    OTHER = "other"


class PhaseKind(Enum):
    FRAMEWORKS = "frameworks"
    COPY_FILES = "copy_files"
    SOURCES = "sources"
    RESOURCES = "resources"
    HEADERS = "headers"
    SHELL_SCRIPT = "shell_script"
    OTHER = "other"


ISA_KINDS: Dict[str, NodeKind] = {
    "PBXFileReference": NodeKind.FILE_REFERENCE,
    "PBXBuildFile": NodeKind.BUILD_FILE,
    "PBXFrameworksBuildPhase": NodeKind.BUILD_PHASE,
    "PBXCopyFilesBuildPhase": NodeKind.BUILD_PHASE,
    "PBXSourcesBuildPhase": NodeKind.BUILD_PHASE,
    "PBXResourcesBuildPhase": NodeKind.BUILD_PHASE,
    "PBXHeadersBuildPhase": NodeKind.BUILD_PHASE,
    "PBXShellScriptBuildPhase": NodeKind.BUILD_PHASE,
    "PBXRezBuildPhase": NodeKind.BUILD_PHASE,
    "PBXGroup": NodeKind.GROUP,
    "PBXVariantGroup": NodeKind.GROUP,
    "XCVersionGroup": NodeKind.GROUP,
    "PBXFileSystemSynchronizedRootGroup": NodeKind.GROUP,
    "PBXNativeTarget": NodeKind.TARGET,
    "PBXAggregateTarget": NodeKind.TARGET,
    "PBXLegacyTarget": NodeKind.TARGET,
    "PBXTargetDependency": NodeKind.TARGET_DEPENDENCY,
    "PBXContainerItemProxy": NodeKind.CONTAINER_ITEM_PROXY,
    "PBXReferenceProxy": NodeKind.REFERENCE_PROXY,
    "PBXProject": NodeKind.PROJECT,
}

PHASE_KINDS: Dict[str, PhaseKind] = {
    "PBXFrameworksBuildPhase": PhaseKind.FRAMEWORKS,
    "PBXCopyFilesBuildPhase": PhaseKind.COPY_FILES,
    "PBXSourcesBuildPhase": PhaseKind.SOURCES,
    "PBXResourcesBuildPhase": PhaseKind.RESOURCES,
    "PBXHeadersBuildPhase": PhaseKind.HEADERS,
    "PBXShellScriptBuildPhase": PhaseKind.SHELL_SCRIPT,
}

# Campi che contengono id di altri oggetti, per tipo di nodo.
EDGE_FIELDS: Dict[NodeKind, Tuple[str, ...]] = {
    NodeKind.BUILD_FILE: ("fileRef", "productRef"),
    NodeKind.BUILD_PHASE: ("files",),
    NodeKind.GROUP: ("children", "currentVersion", "exceptions"),
    NodeKind.TARGET: ("buildPhases", "dependencies", "buildConfigurationList",
                      "productReference", "packageProductDependencies",
                      "fileSystemSynchronizedGroups"),
    NodeKind.TARGET_DEPENDENCY: ("target", "targetProxy", "productRef"),
    NodeKind.CONTAINER_ITEM_PROXY: ("containerPortal",),
    NodeKind.REFERENCE_PROXY: ("remoteRef",),
    NodeKind.PROJECT: ("mainGroup", "productRefGroup", "targets",
                       "buildConfigurationList", "packageReferences"),
    NodeKind.OTHER: ("buildConfigurations", "package", "baseConfigurationReference"),
}

PRODUCT_TYPE_APPLICATION = "com.apple.product-type.application"


def new_object_id() -> str:
    """Id in stile Xcode: 24 cifre esadecimali maiuscole."""
    return uuid.uuid4().hex[:24].upper()


class ObjectGraph:
    def __init__(self,
                 objects: Optional[Dict[str, Dict]] = None,
                 root_object: str = "",
                 archive_version: str = "1",
                 object_version: str = "56",
                 classes: Optional[Dict] = None):
        self.objects: Dict[str, Dict] = objects if objects is not None else {}
        self.root_object = root_object
        self.archive_version = archive_version
        self.object_version = object_version
        self.classes = classes if classes is not None else {}

    # --- (de)serializzazione plist ------------------------------------------
    @classmethod
    def from_plist(cls, data: Dict) -> "ObjectGraph":
        objects = data.get("objects")
        if not isinstance(objects, dict):
            raise ValueError("manca il dizionario 'objects'")
        root = data.get("rootObject")
        if not root or root not in objects:
            raise ValueError(f"rootObject non valido: {root!r}")
        return cls(
            objects={str(k): dict(v) for k, v in objects.items()},
            root_object=root,
            archive_version=str(data.get("archiveVersion", "1")),
            object_version=str(data.get("objectVersion", "56")),
            classes=dict(data.get("classes") or {}),
        )

    def to_plist(self) -> Dict:
        return {
            "archiveVersion": self.archive_version,
            "classes": self.classes,
            "objectVersion": self.object_version,
            "objects": self.objects,
            "rootObject": self.root_object,
        }

    def copy(self) -> "ObjectGraph":
        return ObjectGraph.from_plist(copy.deepcopy(self.to_plist()))

    # --- Arena ---------------------------------------------------------------
    def __contains__(self, obj_id: str) -> bool:
        return obj_id in self.objects

    def __len__(self) -> int:
        return len(self.objects)

    def get(self, obj_id: str) -> Dict:
        return self.objects[obj_id]

    def kind_of(self, obj_id: str) -> NodeKind:
        return ISA_KINDS.get(self.objects[obj_id].get("isa", ""), NodeKind.OTHER)

    def phase_kind(self, obj_id: str) -> PhaseKind:
        return PHASE_KINDS.get(self.objects[obj_id].get("isa", ""), PhaseKind.OTHER)

    def ids_of(self, kind: NodeKind) -> List[str]:
        return [obj_id for obj_id in self.objects if self.kind_of(obj_id) == kind]

    def nodes_of(self, kind: NodeKind) -> Iterator[Tuple[str, Dict]]:
        for obj_id in self.ids_of(kind):
            yield obj_id, self.objects[obj_id]

    def add(self, fields: Dict, preferred_id: Optional[str] = None) -> str:
        """Aggiunge un nodo; usa ``preferred_id`` solo se è libero."""
        if "isa" not in fields:
            raise ValueError("un nodo pbx deve avere 'isa'")
        obj_id = preferred_id if preferred_id and preferred_id not in self.objects else None
        while obj_id is None or obj_id in self.objects:
            obj_id = new_object_id()
        self.objects[obj_id] = dict(fields)
        return obj_id

    def delete(self, obj_id: str) -> None:
        """Toglie il nodo dall'arena. Gli archi entranti vanno staccati prima."""
        self.objects.pop(obj_id, None)

    # --- Archi ---------------------------------------------------------------
    def edges_from(self, obj_id: str) -> Iterator[Tuple[str, str]]:
        """(campo, id destinazione) per ogni arco uscente del nodo."""
        obj = self.objects[obj_id]
        for field in EDGE_FIELDS.get(self.kind_of(obj_id), ()):
            value = obj.get(field)
            if isinstance(value, str):
                yield field, value
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, str):
                        yield field, item
        if self.kind_of(obj_id) == NodeKind.PROJECT:
            for entry in obj.get("projectReferences", []) or []:
                for key in ("ProductGroup", "ProjectRef"):
                    if isinstance(entry, dict) and entry.get(key):
                        yield f"projectReferences.{key}", entry[key]

    def references_to(self, target_id: str) -> List[Tuple[str, str]]:
        return [(owner, field)
                for owner in list(self.objects)
                for field, dst in self.edges_from(owner)
                if dst == target_id]

    def detach(self, child_id: str, field: str, kind: NodeKind) -> List[str]:
        """Rimuove ``child_id`` dalla lista ``field`` di ogni nodo di tipo ``kind``.

        Ritorna gli id dei nodi modificati.
        """
        touched = []
        for owner_id, obj in self.nodes_of(kind):
            items = obj.get(field)
            if isinstance(items, list) and child_id in items:
                obj[field] = [i for i in items if i != child_id]
                touched.append(owner_id)
        return touched

    def dangling_references(self) -> List[Tuple[str, str, str]]:
        """Archi verso id inesistenti: (owner, campo, id mancante)."""
        dangling = []
        for owner in self.objects:
            for field, dst in self.edges_from(owner):
                if dst not in self.objects:
                    dangling.append((owner, field, dst))
        return dangling

    # --- Navigazione ---------------------------------------------------------
    @property
    def project_id(self) -> str:
        return self.root_object

    def project(self) -> Dict:
        return self.objects[self.root_object]

    @property
    def main_group_id(self) -> Optional[str]:
        return self.project().get("mainGroup")

    def groups(self) -> List[str]:
        return self.ids_of(NodeKind.GROUP)

    def find_group(self, name: str) -> Optional[str]:
        for group_id, group in self.nodes_of(NodeKind.GROUP):
            if group.get("name") == name:
                return group_id
        return None

    def groups_containing(self, child_id: str) -> List[str]:
        return [g for g, group in self.nodes_of(NodeKind.GROUP)
                if child_id in (group.get("children") or [])]

    def append_child(self, group_id: str, child_id: str) -> None:
        group = self.objects[group_id]
        group["children"] = list(group.get("children") or []) + [child_id]

    def targets(self) -> List[str]:
        """Target nell'ordine dichiarato da PBXProject.targets."""
        declared = [t for t in self.project().get("targets", []) or [] if t in self.objects]
        rest = [t for t in self.ids_of(NodeKind.TARGET) if t not in declared]
        return declared + rest

    def application_target(self) -> Optional[str]:
        for target_id in self.targets():
            if self.objects[target_id].get("productType") == PRODUCT_TYPE_APPLICATION:
                return target_id
        return None

    def build_phases(self, target_id: str, kind: Optional[PhaseKind] = None) -> List[str]:
        phases = [p for p in self.objects[target_id].get("buildPhases", []) or [] if p in self.objects]
        if kind is None:
            return phases
        return [p for p in phases if self.phase_kind(p) == kind]

    def frameworks_phase(self, target_id: str) -> Optional[str]:
        phases = self.build_phases(target_id, PhaseKind.FRAMEWORKS)
        return phases[0] if phases else None

    def file_references(self) -> Iterator[Tuple[str, Dict]]:
        return self.nodes_of(NodeKind.FILE_REFERENCE)

    def build_files_for(self, file_ref_id: str) -> List[str]:
        return [bf for bf, obj in self.nodes_of(NodeKind.BUILD_FILE) if obj.get("fileRef") == file_ref_id]
