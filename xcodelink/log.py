# -*- coding: utf-8 -*-
"""Logger "tee" minimale: stdout/stderr + file di log opzionale."""

import sys
from typing import Optional, TextIO

APPLE = "🍏"
SEARCH = "🔍"
FOLDER = "📁"
WARN = "⚠️"
OK = "✅"
RED = "🔴"
LINK = "🔗"

LOG_FP: Optional[TextIO] = None
VERBOSE = False


def configure(verbose: bool = False, log_path: Optional[str] = None):
    """Imposta verbosità e (se richiesto) apre il file di log in append."""
    global LOG_FP, VERBOSE
    VERBOSE = verbose
    close()
    if log_path:
        LOG_FP = open(log_path, "a", encoding="utf-8", buffering=1)


def close():
    global LOG_FP
    if LOG_FP:
        LOG_FP.close()
        LOG_FP = None


def _emit(msg: str, err: bool = False):
    print(msg, file=sys.stderr if err else sys.stdout)
    if LOG_FP:
        try:
            LOG_FP.write(msg + "\n")
        except OSError:
            pass


def log_info(msg: str):
    _emit(f"{APPLE} {msg}")


def log_step(msg: str):
    _emit(f"{SEARCH} {msg}")


def log_warn(msg: str):
    _emit(f"{WARN} {msg}", err=True)


def log_ok(msg: str):
    _emit(f"{OK} {msg}")


def log_error(msg: str):
    _emit(f"{RED} {msg}", err=True)


def log_verbose(msg: str):
    if VERBOSE:
        _emit(f"   · {msg}")


def log_plain(msg: str = ""):
    _emit(msg)
