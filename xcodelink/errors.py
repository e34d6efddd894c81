# -*- coding: utf-8 -*-
"""Gerarchia degli errori di xcodelink.

- NotFoundError: recuperabile, il chiamante sceglie un percorso alternativo.
- CorruptionError: mai riparato in automatico; il messaggio indica come
  recuperare (backup o version control).
- StoreError: I/O su project.pbxproj, fatale per lo step corrente.
- ExternalToolError: un generatore di progetto (tuist/xcodegen) è fallito.
"""

from typing import List, Sequence

RECOVERY_HINT = (
    "Ripristina il progetto da un backup (xcodelink fix <mapping>) "
    "oppure dal version control (git checkout -- <progetto>/project.pbxproj)."
)


class XcodeLinkError(Exception):
    """Errore base: tutto ciò che la CLI presenta all'utente senza traceback."""


# --- NotFound ----------------------------------------------------------------
class NotFoundError(XcodeLinkError):
    pass


class UnknownMappingError(NotFoundError):
    def __init__(self, mapping_id: str, available: Sequence[str]):
        self.mapping_id = mapping_id
        self.available = list(available)
        super().__init__(
            f"Mapping sconosciuto: '{mapping_id}'\n"
            f"Mapping disponibili: {', '.join(self.available) or '(nessuno)'}"
        )


class ProjectsNotFoundError(NotFoundError):
    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(
            "Impossibile trovare entrambi i progetti:\n"
            f"  - {source}\n"
            f"  - {target}\n\n"
            "Esegui il comando da:\n"
            f"  1. dentro il repository {target}, OPPURE\n"
            "  2. una cartella padre che contiene entrambi i repository"
        )


class NoBackupFoundError(NotFoundError):
    def __init__(self, mapping_id: str):
        self.mapping_id = mapping_id
        super().__init__(f"Nessun backup trovato per il mapping '{mapping_id}'")


class LinkStateNotFoundError(NotFoundError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Nessuno stato di linking in {path}")


# --- Corruption --------------------------------------------------------------
class CorruptionError(XcodeLinkError):
    pass


class DanglingReferenceError(CorruptionError):
    def __init__(self, project: str, dangling: List[tuple]):
        self.project = project
        self.dangling = list(dangling)
        lines = [f"  - {owner}.{field} -> {missing}" for owner, field, missing in self.dangling[:10]]
        more = len(self.dangling) - len(lines)
        if more > 0:
            lines.append(f"  … e altri {more}")
        super().__init__(
            f"Grafo corrotto in {project}: {len(self.dangling)} riferimenti pendenti\n"
            + "\n".join(lines) + "\n" + RECOVERY_HINT
        )


class MalformedLinkStateError(CorruptionError):
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"File di stato non valido: {path} ({reason})\n{RECOVERY_HINT}")


class MalformedBackupError(CorruptionError):
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Backup non valido: {path} ({reason})")


# --- I/O sul grafo -----------------------------------------------------------
class StoreError(XcodeLinkError):
    pass


class ParseError(StoreError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Impossibile leggere {path}: {reason}")


class SerializeError(StoreError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Impossibile salvare {path}: {reason}")


# --- Strumenti esterni / fix -------------------------------------------------
class ExternalToolError(XcodeLinkError):
    def __init__(self, tool: str, returncode: int, output: str):
        self.tool = tool
        self.returncode = returncode
        self.output = output
        super().__init__(f"{tool} fallito (exit {returncode}):\n{output.strip()}")


class CannotFixError(XcodeLinkError):
    pass


# --- Stato di linking --------------------------------------------------------
class ProjectAlreadyLinkedError(XcodeLinkError):
    def __init__(self, mapping_id: str):
        self.mapping_id = mapping_id
        super().__init__(
            f"Il progetto è già in stato linked (mapping '{mapping_id}'). "
            f"Esegui prima 'xcodelink disable {mapping_id}'."
        )


class ProjectNotLinkedError(XcodeLinkError):
    def __init__(self, mapping_id: str, linked_mapping: str):
        self.mapping_id = mapping_id
        self.linked_mapping = linked_mapping
        super().__init__(
            f"Il progetto non è linked con '{mapping_id}' "
            f"(mapping attivo: '{linked_mapping}')."
        )


# --- Configurazione ----------------------------------------------------------
class ConfigError(XcodeLinkError):
    pass
