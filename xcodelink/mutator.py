# -*- coding: utf-8 -*-
"""Modifiche strutturali al grafo di un progetto Xcode.

Tutte le operazioni lavorano in memoria su un ``ObjectGraph`` e sono
ri-eseguibili: un riferimento già rimosso o già aggiunto è un no-op, non un
errore. Le cancellazioni staccano sempre prima gli archi entranti e poi il
nodo, così nessun id resta pendente.
"""

import os
from typing import List, Optional, Sequence

from .graph import NodeKind, ObjectGraph
from .log import log_verbose, log_warn
from .mappings import FrameworkRemapping
from .state import SavedXCFrameworkInfo

NESTED_PROJECT_FILE_TYPE = "wrapper.pb-project"
FRAMEWORK_FILE_TYPE = "wrapper.framework"
XCFRAMEWORK_FILE_TYPE = "wrapper.xcframework"
SOURCE_ROOT = "SOURCE_ROOT"
BUILT_PRODUCTS_DIR = "BUILT_PRODUCTS_DIR"
GROUP_SOURCE_TREE = "<group>"
FRAMEWORKS_GROUP = "Frameworks"


def product_framework_name(framework_name: str) -> str:
    """'Subscription.xcframework' -> 'Subscription.framework'."""
    base = framework_name[:-len(".xcframework")] if framework_name.endswith(".xcframework") else framework_name
    if base.endswith(".framework"):
        return base
    return f"{base}.framework"


class ProjectMutator:
    def __init__(self, graph: ObjectGraph):
        if graph is None:
            raise ValueError("nessun grafo caricato")
        self.graph = graph

    # --- Query ---------------------------------------------------------------
    def _matches(self, obj: dict, framework_name: str) -> bool:
        return obj.get("name") == framework_name or (obj.get("path") or "").endswith(framework_name)

    def find_packaged_reference(self, framework_name: str) -> Optional[str]:
        for ref_id, ref in self.graph.file_references():
            if self._matches(ref, framework_name):
                return ref_id
        return None

    def find_reference_by_path(self, path: str) -> Optional[str]:
        for ref_id, ref in self.graph.file_references():
            if ref.get("path") == path:
                return ref_id
        return None

    def has_nested_project_reference(self, relative_path: str) -> bool:
        return self.find_reference_by_path(relative_path) is not None

    def _frameworks_or_main_group(self) -> Optional[str]:
        return self.graph.find_group(FRAMEWORKS_GROUP) or self.graph.main_group_id

    # --- Remap ---------------------------------------------------------------
    def remap_paths(self, remappings: Sequence[FrameworkRemapping], to_linked: bool) -> int:
        """Riscrive i path dei framework verso il percorso linked (o originale).

        Il match è su nome *oppure* suffisso del path: lo stesso framework a
        volte ha un name esplicito, a volte solo il path.
        """
        changed = 0
        for remapping in remappings:
            new_path = remapping.linked_path if to_linked else remapping.original_path
            for ref_id, ref in self.graph.file_references():
                if not self._matches(ref, remapping.framework_name):
                    continue
                if ref.get("path") != new_path:
                    log_verbose(f"{remapping.framework_name}: {ref.get('path')} → {new_path}")
                    ref["path"] = new_path
                    changed += 1
        return changed

    # --- Nested project ------------------------------------------------------
    def add_nested_project_reference(self, relative_path: str) -> str:
        existing = self.find_reference_by_path(relative_path)
        if existing:
            log_verbose(f"Riferimento a {relative_path} già presente ({existing})")
            return existing

        ref_id = self.graph.add({
            "isa": "PBXFileReference",
            "lastKnownFileType": NESTED_PROJECT_FILE_TYPE,
            "name": os.path.basename(relative_path.rstrip("/")),
            "path": relative_path,
            "sourceTree": SOURCE_ROOT,
        })
        main_group = self.graph.main_group_id
        if main_group and main_group in self.graph:
            self.graph.append_child(main_group, ref_id)
        log_verbose(f"Aggiunto riferimento a {relative_path} ({ref_id})")
        return ref_id

    def _proxies_for_portal(self, portal_id: str) -> List[str]:
        return [p for p, proxy in self.graph.nodes_of(NodeKind.CONTAINER_ITEM_PROXY)
                if proxy.get("containerPortal") == portal_id]

    def remove_nested_project_reference(self, relative_path: str) -> bool:
        """Cancellazione a cascata del progetto annidato. False se non c'era."""
        g = self.graph
        ref_id = self.find_reference_by_path(relative_path)
        if ref_id is None:
            return False

        # (a) proxy che puntano al progetto annidato
        proxies = set(self._proxies_for_portal(ref_id))
        for proxy_id in proxies:
            g.delete(proxy_id)

        # (b) target dependency: prima fuori dalle liste dei target, poi via
        deps = [d for d, dep in g.nodes_of(NodeKind.TARGET_DEPENDENCY)
                if dep.get("targetProxy") in proxies]
        for dep_id in deps:
            g.detach(dep_id, "dependencies", NodeKind.TARGET)
            g.delete(dep_id)

        # (c) prodotti esposti dal progetto annidato
        ref_proxies = [r for r, rp in g.nodes_of(NodeKind.REFERENCE_PROXY)
                       if rp.get("remoteRef") in proxies]
        for rp_id in ref_proxies:
            for bf in g.build_files_for(rp_id):
                g.detach(bf, "files", NodeKind.BUILD_PHASE)
                g.delete(bf)
            g.detach(rp_id, "children", NodeKind.GROUP)
            g.delete(rp_id)

        # (c') PBXProject.projectReferences e relativo gruppo Products
        project = g.project()
        entries = project.get("projectReferences")
        if isinstance(entries, list):
            kept = []
            for entry in entries:
                if isinstance(entry, dict) and entry.get("ProjectRef") == ref_id:
                    product_group = entry.get("ProductGroup")
                    if product_group in g and not g.get(product_group).get("children"):
                        g.detach(product_group, "children", NodeKind.GROUP)
                        g.delete(product_group)
                else:
                    kept.append(entry)
            if len(kept) != len(entries):
                project["projectReferences"] = kept

        # (d) fuori dai gruppi, (e) fuori dall'arena
        g.detach(ref_id, "children", NodeKind.GROUP)
        g.delete(ref_id)
        log_verbose(
            f"Rimosso {relative_path}: {len(proxies)} proxy, {len(deps)} dipendenze, "
            f"{len(ref_proxies)} reference proxy"
        )
        return True

    # --- Build file ----------------------------------------------------------
    def _remove_file_reference(self, ref_id: str) -> List[str]:
        """Rimuove un file reference con i suoi build file. Ritorna gli id dei build file."""
        g = self.graph
        g.detach(ref_id, "children", NodeKind.GROUP)
        build_files = g.build_files_for(ref_id)
        for bf in build_files:
            g.detach(bf, "files", NodeKind.BUILD_PHASE)
            g.delete(bf)
        g.delete(ref_id)
        return build_files

    def _link_in_app_target(self, ref_id: str, preferred_id: Optional[str] = None) -> Optional[str]:
        """Nuovo PBXBuildFile per ``ref_id`` nella fase Frameworks del target app."""
        g = self.graph
        target = g.application_target()
        phase = g.frameworks_phase(target) if target else None
        if phase is None:
            log_warn("Nessuna fase Frameworks in un target applicazione: framework non linkato")
            return None
        bf_id = g.add({"isa": "PBXBuildFile", "fileRef": ref_id}, preferred_id=preferred_id)
        phase_obj = g.get(phase)
        phase_obj["files"] = list(phase_obj.get("files") or []) + [bf_id]
        return bf_id

    # --- Swap ----------------------------------------------------------------
    def swap_packaged_for_nested(self,
                                 framework_name: str,
                                 framework_path: str,
                                 nested_project_path: str,
                                 product_name: str) -> Optional[SavedXCFrameworkInfo]:
        """Sostituisce l'xcframework con il suo .xcodeproj annidato.

        Ritorna il token per annullare lo scambio, oppure None se l'xcframework
        non c'è (scambio già fatto).
        """
        g = self.graph
        ref_id = self.find_packaged_reference(framework_name)
        if ref_id is None:
            log_verbose(f"{framework_name} non trovato: progetto già linkato?")
            return None

        ref = g.get(ref_id)
        groups = g.groups_containing(ref_id)
        token = SavedXCFrameworkInfo(
            file_reference_id=ref_id,
            build_file_ids=g.build_files_for(ref_id),
            group_id=groups[0] if groups else None,
            original_path=ref.get("path") or framework_path,
            original_name=ref.get("name") or framework_name,
        )
        self._remove_file_reference(ref_id)

        self.add_nested_project_reference(nested_project_path)

        product = f"{product_name}.framework"
        product_ref = self.find_reference_by_path(product)
        if product_ref is None:
            product_ref = g.add({
                "isa": "PBXFileReference",
                "lastKnownFileType": FRAMEWORK_FILE_TYPE,
                "name": product,
                "path": product,
                "sourceTree": BUILT_PRODUCTS_DIR,
            })
            group = self._frameworks_or_main_group()
            if group:
                g.append_child(group, product_ref)
        if not g.build_files_for(product_ref):
            self._link_in_app_target(product_ref)
        log_verbose(f"{framework_name} sostituito da {nested_project_path} ({product})")
        return token

    def swap_nested_for_packaged(self,
                                 nested_project_path: str,
                                 framework_path: str,
                                 framework_name: str,
                                 token: Optional[SavedXCFrameworkInfo] = None) -> Optional[str]:
        """Operazione inversa di ``swap_packaged_for_nested``.

        Con il token il ripristino è esatto (id, path, nome e gruppo
        originali); senza, si usano path/nome di default e il gruppo
        Frameworks (o il main group). Ritorna l'id dell'xcframework.
        """
        g = self.graph
        self.remove_nested_project_reference(nested_project_path)

        product = product_framework_name(framework_name)
        for ref_id, ref in list(g.file_references()):
            if ref.get("name") == product or ref.get("path") == product:
                self._remove_file_reference(ref_id)

        existing = self.find_packaged_reference(framework_name)
        if existing:
            return existing

        if token is None:
            log_warn(f"Nessun token salvato per {framework_name}: ripristino best-effort")
        ref_id = g.add({
            "isa": "PBXFileReference",
            "lastKnownFileType": XCFRAMEWORK_FILE_TYPE,
            "name": token.original_name if token else framework_name,
            "path": token.original_path if token else framework_path,
            "sourceTree": GROUP_SOURCE_TREE,
        }, preferred_id=token.file_reference_id if token else None)

        group = token.group_id if token and token.group_id in g else None
        if group is None or g.kind_of(group) != NodeKind.GROUP:
            group = self._frameworks_or_main_group()
        if group:
            g.append_child(group, ref_id)

        preferred_bf = token.build_file_ids[0] if token and token.build_file_ids else None
        self._link_in_app_target(ref_id, preferred_id=preferred_bf)
        log_verbose(f"Ripristinato {framework_name} ({ref_id})")
        return ref_id
