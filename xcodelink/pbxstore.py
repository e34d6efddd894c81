# -*- coding: utf-8 -*-
"""Lettura/scrittura di project.pbxproj (plist OpenStep) <-> ObjectGraph.

La lettura passa da ``plutil`` quando disponibile (macOS), altrimenti usa il
parser OpenStep interno. La scrittura produce il formato di Xcode (sezioni
per isa, oggetti su una riga per PBXBuildFile/PBXFileReference, commenti
``/* nome */`` dopo gli id) e sostituisce il file solo a scrittura conclusa.
"""

import json
import os
import re
import shutil
import stat
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import ParseError, SerializeError
from .graph import NodeKind, ObjectGraph, PhaseKind
from .log import log_verbose, log_warn

PBXPROJ = "project.pbxproj"
UTF8_HEADER = "// !$*UTF8*$!"

_UNQUOTED = re.compile(r"^[A-Za-z0-9_$/:.]+$")
_BARE_CHARS = re.compile(r"[A-Za-z0-9_$/:.\-+]+")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "'": "'", "a": "\a", "b": "\b", "f": "\f", "v": "\v"}
ONE_LINE_ISAS = {"PBXBuildFile", "PBXFileReference"}


def pbxproj_path(project_path: Union[str, Path]) -> Path:
    """Accetta sia la cartella .xcodeproj sia il file project.pbxproj."""
    p = Path(project_path)
    return p if p.name == PBXPROJ else p / PBXPROJ


# --- plutil ------------------------------------------------------------------
def plutil_to_json(pbxproj: Path) -> Optional[Dict]:
    """
    Converte un project.pbxproj (OpenStep plist) in JSON usando plutil.
    Restituisce il dict JSON oppure None se plutil manca o fallisce.
    """
    plutil = shutil.which("plutil")
    if not plutil:
        return None
    try:
        result = subprocess.run(
            [plutil, "-convert", "json", "-o", "-", str(pbxproj)],
            check=True,
            capture_output=True,
            text=True,
        )
        return json.loads(result.stdout)
    except (subprocess.CalledProcessError, json.JSONDecodeError) as e:
        log_warn(f"Impossibile convertire con plutil: {pbxproj} ({e})")
        return None


# --- Parser OpenStep ---------------------------------------------------------
class _Reader:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, msg: str) -> ValueError:
        line = self.text.count("\n", 0, self.pos) + 1
        return ValueError(f"{msg} (riga {line})")

    def skip(self):
        text, n = self.text, len(self.text)
        while self.pos < n:
            ch = text[self.pos]
            if ch.isspace():
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = n if end == -1 else end + 1
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    raise self.error("commento non chiuso")
                self.pos = end + 2
            else:
                break

    def peek(self) -> str:
        self.skip()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str):
        if self.peek() != ch:
            raise self.error(f"atteso '{ch}', trovato {self.peek()!r}")
        self.pos += 1

    def value(self):
        ch = self.peek()
        if ch == "{":
            return self.dictionary()
        if ch == "(":
            return self.array()
        if ch == '"' or ch == "'":
            return self.quoted()
        if ch == "<":
            return self.data()
        m = _BARE_CHARS.match(self.text, self.pos)
        if not m:
            raise self.error(f"valore inatteso {ch!r}")
        self.pos = m.end()
        return m.group(0)

    def dictionary(self) -> Dict:
        self.expect("{")
        result = {}
        while self.peek() != "}":
            if not self.peek():
                raise self.error("dizionario non chiuso")
            key = self.value()
            if not isinstance(key, str):
                raise self.error("chiave non stringa")
            self.expect("=")
            result[key] = self.value()
            self.expect(";")
        self.pos += 1
        return result

    def array(self) -> List:
        self.expect("(")
        result = []
        while self.peek() != ")":
            if not self.peek():
                raise self.error("array non chiuso")
            result.append(self.value())
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != ")":
                raise self.error("atteso ',' o ')'")
        self.pos += 1
        return result

    def quoted(self) -> str:
        delim = self.text[self.pos]
        self.pos += 1
        out = []
        text = self.text
        while True:
            if self.pos >= len(text):
                raise self.error("stringa non chiusa")
            ch = text[self.pos]
            if ch == delim:
                self.pos += 1
                return "".join(out)
            if ch == "\\":
                nxt = text[self.pos + 1:self.pos + 2]
                if nxt == "U":
                    out.append(chr(int(text[self.pos + 2:self.pos + 6], 16)))
                    self.pos += 6
                    continue
                out.append(_ESCAPES.get(nxt, nxt))
                self.pos += 2
                continue
            out.append(ch)
            self.pos += 1

    def data(self) -> bytes:
        end = self.text.find(">", self.pos)
        if end == -1:
            raise self.error("dato <...> non chiuso")
        raw = re.sub(r"\s+", "", self.text[self.pos + 1:end])
        self.pos = end + 1
        return bytes.fromhex(raw)


def parse_openstep(text: str) -> Dict:
    reader = _Reader(text)
    root = reader.value()
    if reader.peek():
        raise reader.error("contenuto inatteso dopo la radice")
    if not isinstance(root, dict):
        raise reader.error("la radice deve essere un dizionario")
    return root


# --- Writer OpenStep ---------------------------------------------------------
def quote(value: str) -> str:
    if value and _UNQUOTED.match(value):
        return value
    escaped = (value.replace("\\", "\\\\").replace('"', '\\"')
               .replace("\n", "\\n").replace("\t", "\\t"))
    return f'"{escaped}"'


_PHASE_TITLES = {
    PhaseKind.FRAMEWORKS: "Frameworks",
    PhaseKind.COPY_FILES: "CopyFiles",
    PhaseKind.SOURCES: "Sources",
    PhaseKind.RESOURCES: "Resources",
    PhaseKind.HEADERS: "Headers",
    PhaseKind.SHELL_SCRIPT: "ShellScript",
}


class _Writer:
    def __init__(self, graph: ObjectGraph):
        self.graph = graph
        self._phase_of_build_file: Dict[str, str] = {}
        for phase_id in graph.ids_of(NodeKind.BUILD_PHASE):
            for bf in graph.get(phase_id).get("files", []) or []:
                self._phase_of_build_file.setdefault(bf, phase_id)

    def comment(self, obj_id: str) -> Optional[str]:
        g = self.graph
        if obj_id not in g:
            return None
        obj = g.get(obj_id)
        kind = g.kind_of(obj_id)
        if kind == NodeKind.PROJECT:
            return "Project object"
        if kind == NodeKind.BUILD_PHASE:
            return obj.get("name") or _PHASE_TITLES.get(g.phase_kind(obj_id), obj.get("isa"))
        if kind == NodeKind.BUILD_FILE:
            ref = obj.get("fileRef") or obj.get("productRef")
            name = (self.comment(ref) if ref else None) or "(null)"
            phase = self._phase_of_build_file.get(obj_id)
            return f"{name} in {self.comment(phase)}" if phase else name
        if kind in (NodeKind.CONTAINER_ITEM_PROXY, NodeKind.TARGET_DEPENDENCY):
            return obj.get("isa")
        name = obj.get("name") or obj.get("productName")
        if not name and obj.get("path"):
            name = os.path.basename(obj["path"])
        return name or None

    def value(self, value, indent: int, one_line: bool) -> str:
        if isinstance(value, dict):
            return self.dictionary(value, indent, one_line)
        if isinstance(value, list):
            return self.array(value, indent, one_line)
        if isinstance(value, bytes):
            return f"<{value.hex()}>"
        if isinstance(value, bool):
            return "YES" if value else "NO"
        text = quote(str(value))
        if isinstance(value, str) and value in self.graph:
            note = self.comment(value)
            if note:
                text += f" /* {note} */"
        return text

    def _keys(self, d: Dict) -> List[str]:
        return sorted(d, key=lambda k: (k != "isa", k))

    def dictionary(self, d: Dict, indent: int, one_line: bool) -> str:
        if one_line:
            body = "".join(f"{quote(k)} = {self.value(d[k], 0, True)}; " for k in self._keys(d))
            return "{" + body + "}"
        pad = "\t" * (indent + 1)
        parts = ["{"]
        for k in self._keys(d):
            parts.append(f"{pad}{quote(k)} = {self.value(d[k], indent + 1, False)};")
        parts.append("\t" * indent + "}")
        return "\n".join(parts)

    def array(self, items: List, indent: int, one_line: bool) -> str:
        if one_line:
            return "(" + "".join(f"{self.value(i, 0, True)}, " for i in items) + ")"
        pad = "\t" * (indent + 1)
        parts = ["("]
        for item in items:
            parts.append(f"{pad}{self.value(item, indent + 1, False)},")
        parts.append("\t" * indent + ")")
        return "\n".join(parts)

    def render(self) -> str:
        g = self.graph
        out = [UTF8_HEADER, "{"]
        out.append(f"\tarchiveVersion = {quote(g.archive_version)};")
        out.append(f"\tclasses = {self.value(g.classes, 1, False)};")
        out.append(f"\tobjectVersion = {quote(g.object_version)};")
        out.append("\tobjects = {")

        by_isa: Dict[str, List[str]] = {}
        for obj_id, obj in g.objects.items():
            by_isa.setdefault(obj.get("isa", ""), []).append(obj_id)
        for isa in sorted(by_isa):
            out.append("")
            out.append(f"/* Begin {isa} section */")
            for obj_id in sorted(by_isa[isa]):
                obj = g.get(obj_id)
                one_line = isa in ONE_LINE_ISAS
                key = self.value(obj_id, 2, one_line)
                out.append(f"\t\t{key} = {self.dictionary(obj, 2, one_line)};")
            out.append(f"/* End {isa} section */")

        out.append("\t};")
        out.append(f"\trootObject = {self.value(g.root_object, 1, False)};")
        out.append("}")
        return "\n".join(out) + "\n"


def serialize(graph: ObjectGraph) -> str:
    return _Writer(graph).render()


# --- API ---------------------------------------------------------------------
def load(project_path: Union[str, Path]) -> ObjectGraph:
    path = pbxproj_path(project_path)
    if not path.exists():
        raise ParseError(str(path), "file inesistente")
    data = plutil_to_json(path)
    if data is None:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(str(path), str(e)) from e
        try:
            data = parse_openstep(text)
        except ValueError as e:
            raise ParseError(str(path), str(e)) from e
    try:
        graph = ObjectGraph.from_plist(data)
    except (ValueError, TypeError, AttributeError) as e:
        raise ParseError(str(path), str(e)) from e
    log_verbose(f"Caricato {path} ({len(graph)} oggetti)")
    return graph


def save(graph: ObjectGraph, project_path: Union[str, Path]) -> Path:
    path = pbxproj_path(project_path)
    text = serialize(graph)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".project.", suffix=".pbxproj.tmp", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(text)
        if path.exists():
            os.chmod(tmp_name, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise SerializeError(str(path), str(e)) from e
    log_verbose(f"Salvato {path}")
    return path
