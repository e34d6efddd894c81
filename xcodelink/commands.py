# -*- coding: utf-8 -*-
"""Flussi enable / disable / status / fix.

Ordine garantito per ogni progetto: backup → load → modifica → save; lo
stato di linking si scrive solo dopo che entrambi i progetti sono salvati e
si cancella solo dopo un ripristino riuscito.
"""

import os
import subprocess
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from . import pbxstore
from .backup import BackupLedger
from .config import Settings
from .errors import (CannotFixError, DanglingReferenceError, ExternalToolError,
                     LinkStateNotFoundError, NoBackupFoundError, ProjectAlreadyLinkedError,
                     ProjectNotLinkedError, ProjectsNotFoundError)
from .locator import LocatedProjects, ProjectLocator, detect_single_project, find_xcode_projects
from .log import LINK, log_info, log_ok, log_plain, log_step, log_verbose, log_warn
from .mappings import FrameworkMapping, MappingTable
from .mutator import ProjectMutator
from .state import LinkState, LinkStateStore

TUIST_MARKERS = ("Project.swift", "Workspace.swift", "Tuist")
XCODEGEN_MARKERS = ("project.yml", "project.yaml", "project.json")


class Context:
    """Dipendenze condivise dai comandi, costruite una volta all'avvio."""

    def __init__(self,
                 settings: Settings,
                 mappings: MappingTable,
                 ledger: Optional[BackupLedger] = None,
                 locator: Optional[ProjectLocator] = None,
                 runner: Optional[Callable] = None):
        self.settings = settings
        self.mappings = mappings
        self.ledger = ledger or BackupLedger(settings.backups_dir)
        self.locator = locator or ProjectLocator()
        self.runner = runner or subprocess.run

    def state_store(self, base_path: Union[str, Path]) -> LinkStateStore:
        return LinkStateStore(base_path, self.settings.state_file_name)

    def find_state(self, base_path: Union[str, Path]) -> Tuple[LinkStateStore, Optional[LinkState]]:
        """Cerca il record in ``base_path`` e nella cartella padre.

        Da dentro il repository target lo stato sta un livello più su.
        """
        base = Path(base_path).expanduser().resolve()
        first = self.state_store(base)
        for store in (first, self.state_store(base.parent)):
            if store.exists():
                return store, store.read()
        return first, None


def _base(path: Optional[str]) -> Path:
    return Path(path or os.getcwd()).expanduser().resolve()


# --- enable ------------------------------------------------------------------
def _report_plan(mapping: FrameworkMapping, projects: LocatedProjects):
    log_plain()
    log_info("[DRY RUN] Modifiche previste:")
    log_plain()
    source = ProjectMutator(pbxstore.load(projects.source_project_path))
    matches = source.remap_paths(mapping.framework_remappings, to_linked=True)
    log_plain(f"1. Remap dei path in {mapping.source_project.name} ({matches} riferimenti):")
    for r in mapping.framework_remappings:
        log_plain(f"   - {r.framework_name}")
        log_plain(f"     DA: {r.original_path}")
        log_plain(f"     A:  {r.linked_path}")
    log_plain()
    tf = mapping.target_framework
    if tf:
        target = ProjectMutator(pbxstore.load(projects.target_project_path))
        present = target.find_packaged_reference(tf.framework_name) is not None
        log_plain(f"2. In {mapping.target_project.name}:")
        if present:
            log_plain(f"   - sostituire {tf.framework_name} con {tf.nested_project_path}")
            log_plain(f"   - linkare {tf.product_name}.framework nel target applicazione")
        else:
            log_plain(f"   - {tf.framework_name} non presente: nulla da sostituire")
    elif mapping.nested_project_path:
        log_plain(f"2. Aggiungere il progetto annidato in {mapping.target_project.name}:")
        log_plain(f"   - {mapping.nested_project_path}")


def enable(ctx: Context, mapping_id: str, path: Optional[str] = None, dry_run: bool = False) -> int:
    mapping = ctx.mappings.get(mapping_id)
    log_info(f"{LINK} Abilito il linking per '{mapping.id}'…")
    base = _base(path)
    log_verbose(f"Cerco i progetti a partire da: {base}")
    projects = ctx.locator.locate(base, mapping)
    log_info("Progetti trovati:")
    log_plain(f"   Sorgente: {projects.source_project_path}")
    log_plain(f"   Target:   {projects.target_project_path}")

    store = ctx.state_store(projects.base_path)
    if store.exists():
        current = store.read()
        if current.enabled:
            raise ProjectAlreadyLinkedError(current.mapping)

    if dry_run:
        _report_plan(mapping, projects)
        return 0

    # progetto sorgente: se è già linkato (enable interrotto) niente backup
    graph = pbxstore.load(projects.source_project_path)
    changed = ProjectMutator(graph).remap_paths(mapping.framework_remappings, to_linked=True)
    if changed:
        log_step("Backup del progetto sorgente…")
        record = ctx.ledger.create(projects.source_project_path, mapping.id)
        log_verbose(f"Backup: {record.path}")
        pbxstore.save(graph, projects.source_project_path)
        log_ok(f"Progetto sorgente aggiornato ({changed} path riscritti)")
    else:
        log_info("Progetto sorgente già linkato: nessun backup né modifica")

    # progetto target
    token = None
    tf = mapping.target_framework
    if tf or mapping.nested_project_path:
        log_step("Backup del progetto target…")
        record = ctx.ledger.create(projects.target_project_path, mapping.target_backup_id)
        log_verbose(f"Backup: {record.path}")
        graph = pbxstore.load(projects.target_project_path)
        mutator = ProjectMutator(graph)
        if tf:
            log_step(f"Sostituisco {tf.framework_name} con {tf.nested_project_path}…")
            token = mutator.swap_packaged_for_nested(
                tf.framework_name, tf.framework_path, tf.nested_project_path, tf.product_name,
            )
            if token is None:
                log_warn(f"{tf.framework_name} non trovato nel target: già sostituito?")
        else:
            log_step(f"Aggiungo il riferimento a {mapping.nested_project_path}…")
            mutator.add_nested_project_reference(mapping.nested_project_path)
        pbxstore.save(graph, projects.target_project_path)
        log_ok("Progetto target aggiornato")

    store.write(True, mapping.id, token)

    log_plain()
    log_ok(f"Linking abilitato per '{mapping.id}'!")
    log_plain()
    log_info("Prossimi passi:")
    log_plain(f"  1. Apri {mapping.target_project.name} in Xcode")
    log_plain(f"  2. Il progetto {mapping.source_project.name} compare nel navigator")
    log_plain("  3. Ora puoi mettere breakpoint e fare debug dei sorgenti del framework")
    return 0


# --- disable -----------------------------------------------------------------
def _restore_source_paths(mapping: FrameworkMapping, projects: LocatedProjects) -> int:
    """Riporta i framework del sorgente ai path originali. Idempotente.

    Va eseguito anche dopo un ripristino da backup: il backup più recente può
    essere stato preso con il sorgente già linkato.
    """
    graph = pbxstore.load(projects.source_project_path)
    changed = ProjectMutator(graph).remap_paths(mapping.framework_remappings, to_linked=False)
    if changed:
        pbxstore.save(graph, projects.source_project_path)
        log_ok(f"Framework del progetto sorgente riportati ai path originali ({changed})")
    return changed


def _discard_backups(ctx: Context, mapping: FrameworkMapping):
    # a ripristino concluso i backup rimasti sono superati
    ctx.ledger.discard(mapping.id)
    ctx.ledger.discard(mapping.target_backup_id)


def disable(ctx: Context, mapping_id: str, path: Optional[str] = None) -> int:
    mapping = ctx.mappings.get(mapping_id)
    log_info(f"{LINK} Disabilito il linking per '{mapping.id}'…")
    base = _base(path)
    projects = ctx.locator.locate(base, mapping)
    store = ctx.state_store(projects.base_path)

    token = None
    try:
        state = store.read()
        if state.enabled and state.mapping != mapping.id:
            raise ProjectNotLinkedError(mapping.id, state.mapping)
        token = state.saved_xcframework_info
    except LinkStateNotFoundError:
        log_verbose("Nessuno stato salvato: ripristino di default")

    log_step("Ripristino del progetto sorgente…")
    try:
        ctx.ledger.restore_latest(mapping.id)
        log_ok("Progetto sorgente ripristinato dal backup")
    except NoBackupFoundError:
        log_warn("Nessun backup del progetto sorgente: remap manuale dei framework…")
    _restore_source_paths(mapping, projects)

    tf = mapping.target_framework
    if tf:
        log_step(f"Sostituisco {tf.nested_project_path} con {tf.framework_name}…")
        graph = pbxstore.load(projects.target_project_path)
        ProjectMutator(graph).swap_nested_for_packaged(
            tf.nested_project_path, tf.framework_path, tf.framework_name, token,
        )
        pbxstore.save(graph, projects.target_project_path)
        log_ok("Progetto target ripristinato")
    elif mapping.nested_project_path:
        log_step("Ripristino del progetto target…")
        try:
            ctx.ledger.restore_latest(mapping.target_backup_id)
            log_ok("Progetto target ripristinato dal backup")
        except NoBackupFoundError:
            log_warn("Nessun backup del progetto target: rimuovo il progetto annidato…")
            graph = pbxstore.load(projects.target_project_path)
            ProjectMutator(graph).remove_nested_project_reference(mapping.nested_project_path)
            pbxstore.save(graph, projects.target_project_path)
            log_ok("Riferimento al progetto annidato rimosso")

    _discard_backups(ctx, mapping)
    store.clear()

    log_plain()
    log_ok(f"Linking disabilitato per '{mapping.id}'!")
    log_plain()
    log_info("Potrebbe servire:")
    log_plain("  1. Chiudere e riaprire il progetto in Xcode")
    log_plain("  2. Clean build folder (Cmd+Shift+K)")
    return 0


# --- status ------------------------------------------------------------------
def _check_integrity(ctx: Context, base: Path, mapping: FrameworkMapping) -> int:
    try:
        projects = ctx.locator.locate(base, mapping)
    except ProjectsNotFoundError:
        log_verbose("Progetti non trovati: salto il controllo di integrità")
        return 0
    problems = 0
    for project in (projects.source_project_path, projects.target_project_path):
        dangling = pbxstore.load(project).dangling_references()
        if dangling:
            log_warn(str(DanglingReferenceError(str(project), dangling)))
            problems += 1
        else:
            log_verbose(f"Integrità OK: {project}")
    return problems


def status(ctx: Context, path: Optional[str] = None, verbose: bool = False) -> int:
    base = _base(path)
    log_step("Controllo lo stato del linking…")
    log_plain()
    _, state = ctx.find_state(base)

    if state and state.enabled:
        log_info("Stato: ENABLED")
        log_plain(f"  Mapping:       {state.mapping}")
        log_plain(f"  Abilitato il:  {state.timestamp.isoformat(timespec='seconds')}")
        info = state.saved_xcframework_info
        if verbose and info:
            log_plain(f"  xcframework:   {info.original_name} ({info.original_path})")
            log_plain(f"  FileRef:       {info.file_reference_id}")
            log_plain(f"  BuildFile:     {', '.join(info.build_file_ids) or '-'}")
            log_plain(f"  Gruppo:        {info.group_id or '-'}")
        if verbose:
            for record in ctx.ledger.list(state.mapping) + ctx.ledger.list(f"{state.mapping}-target"):
                log_plain(f"  Backup:        {record.name}")
        log_plain()
        log_info("Per disabilitare:")
        log_plain(f"  xcodelink disable {state.mapping}")
        mapping = ctx.mappings.find(state.mapping)
        if verbose and mapping:
            if _check_integrity(ctx, base, mapping):
                return 1
        return 0

    log_info("Stato: DISABLED")
    log_plain()
    log_info("Mapping disponibili:")
    for mapping in ctx.mappings:
        log_plain(f"  - {mapping.id}: {mapping.display_name}")
    log_plain()
    log_info("Per abilitare il linking:")
    log_plain("  xcodelink enable <mapping>")
    if verbose:
        log_plain()
        log_step(f"Progetti Xcode sotto {base}:")
        for project in find_xcode_projects(base):
            log_plain(f"  - {project.relative_to(base)}")
    return 0


# --- fix ---------------------------------------------------------------------
def detect_project_generator(directory: Union[str, Path]) -> Optional[str]:
    d = Path(directory)
    if any((d / m).exists() for m in TUIST_MARKERS):
        return "tuist"
    if any((d / m).exists() for m in XCODEGEN_MARKERS):
        return "xcodegen"
    return None


def regenerate(ctx: Context, project_path: Path) -> None:
    directory = project_path.parent
    generator = detect_project_generator(directory)
    if generator is None:
        raise CannotFixError(
            "Impossibile sistemare il progetto in automatico.\n"
            "Nessun generatore trovato (manifest Tuist o project.yml).\n\n"
            "Opzioni di recupero manuale:\n"
            f"  1. Da backup: cp {ctx.settings.backups_dir}/<ultimo>/project.pbxproj {project_path}/\n"
            f"  2. Da git: git checkout {project_path}/project.pbxproj\n"
            "  3. Sistemare il progetto a mano in Xcode"
        )
    log_info(f"Progetto gestito da {generator}: eseguo '{generator} generate'")
    try:
        result = ctx.runner(
            [generator, "generate"],
            cwd=str(directory),
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as e:
        raise ExternalToolError(generator, 127, str(e)) from e
    if result.returncode != 0:
        raise ExternalToolError(generator, result.returncode, (result.stdout or "") + (result.stderr or ""))


def _try_restore(ctx: Context, backup_id: str) -> bool:
    try:
        record = ctx.ledger.restore_latest(backup_id)
    except NoBackupFoundError:
        log_verbose(f"Nessun backup per '{backup_id}'")
        return False
    log_ok(f"Ripristinato {record.original_project_path} da {record.name}")
    return True


def fix(ctx: Context, mapping_id: Optional[str] = None, path: Optional[str] = None) -> int:
    base = _base(path)
    _, state = ctx.find_state(base)

    mapping = None
    if mapping_id:
        mapping = ctx.mappings.get(mapping_id)
    elif state and state.mapping in ctx.mappings:
        log_verbose(f"Uso il mapping '{state.mapping}' dallo stato salvato")
        mapping = ctx.mappings.get(state.mapping)

    if mapping is None:
        project_path = detect_single_project(base)
        log_info(f"Provo a sistemare il progetto: {project_path}")
        regenerate(ctx, project_path)
        log_ok("Progetto rigenerato!")
        return 0

    projects = ctx.locator.locate(base, mapping)
    store = ctx.state_store(projects.base_path)
    log_info(f"Provo a sistemare i progetti del mapping '{mapping.id}'")

    _try_restore(ctx, mapping.id)
    _restore_source_paths(mapping, projects)

    if not _try_restore(ctx, mapping.target_backup_id):
        log_warn("Nessun backup del progetto target: provo a rigenerarlo")
        regenerate(ctx, projects.target_project_path)
        log_ok("Progetto target rigenerato!")

    _discard_backups(ctx, mapping)
    store.clear()
    log_ok(f"Progetti del mapping '{mapping.id}' ripristinati")
    return 0
