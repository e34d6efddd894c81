# -*- coding: utf-8 -*-
import argparse
import sys
from datetime import datetime
from typing import List, Optional

from . import __version__, commands, log
from .config import load_settings
from .errors import XcodeLinkError
from .log import APPLE, LINK, log_error, log_plain, log_warn
from .mappings import MappingTable, build_table


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xcodelink",
        description="Passa un progetto Xcode da xcframework precompilato a progetto sorgente annidato (e ritorno).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-file", type=str, help="Scrive anche su questo file di log (append)")
    parser.add_argument("--mappings", type=str, help="File JSON con mapping aggiuntivi")

    # opzioni comuni a tutti i sottocomandi
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-p", "--path", type=str, help="Percorso di partenza (default = cartella corrente)")
    common.add_argument("-v", "--verbose", action="store_true", help="Output dettagliato")

    sub = parser.add_subparsers(dest="command")

    p_enable = sub.add_parser("enable", parents=[common], help="Abilita il linking ai sorgenti")
    p_enable.add_argument("mapping", nargs="?", help="Id del mapping (se omesso, verrà richiesto)")
    p_enable.add_argument("-n", "--dry-run", action="store_true", help="Mostra le modifiche senza applicarle")

    p_disable = sub.add_parser("disable", parents=[common], help="Torna all'xcframework precompilato")
    p_disable.add_argument("mapping", help="Id del mapping")

    sub.add_parser("status", parents=[common], help="Mostra lo stato del linking (default)")

    p_fix = sub.add_parser("fix", parents=[common], help="Ripristina un progetto rovinato da backup o generatore")
    p_fix.add_argument("mapping", nargs="?", help="Id del mapping (se omesso: stato salvato o auto-rilevamento)")

    return parser


def prompt_mapping(table: MappingTable) -> str:
    """Chiede all'utente quale mapping usare (lista numerata)."""
    mappings = list(table)
    log_plain(f"{LINK} Mapping disponibili:")
    for i, m in enumerate(mappings, start=1):
        log_plain(f"  {i}. {m.id} ({m.display_name})")
    answer = input(f"{APPLE} Scegli un mapping (numero o id, default = 1): ").strip()
    if not answer:
        return mappings[0].id
    if answer.isdigit() and 1 <= int(answer) <= len(mappings):
        return mappings[int(answer) - 1].id
    return answer


def run(args: argparse.Namespace) -> int:
    settings = load_settings(mappings_file=args.mappings, log_path=args.log_file)
    table = build_table(settings.mappings_file)
    ctx = commands.Context(settings, table)

    command = args.command or "status"
    path = getattr(args, "path", None)
    verbose = getattr(args, "verbose", False)

    if command == "enable":
        mapping_id = args.mapping or prompt_mapping(table)
        return commands.enable(ctx, mapping_id, path=path, dry_run=args.dry_run)
    if command == "disable":
        return commands.disable(ctx, args.mapping, path=path)
    if command == "fix":
        return commands.fix(ctx, args.mapping, path=path)
    return commands.status(ctx, path=path, verbose=verbose)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log.configure(verbose=getattr(args, "verbose", False), log_path=args.log_file)
    if args.log_file:
        log.log_verbose(f"Avvio xcodelink  •  {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    try:
        return run(args)
    except XcodeLinkError as e:
        log_error(str(e))
        return 1
    except OSError as e:
        log_error(f"Errore di I/O: {e}")
        return 1
    except (KeyboardInterrupt, EOFError):
        log_warn("Interrotto dall'utente")
        return 130
    finally:
        log.close()


if __name__ == "__main__":
    sys.exit(main())
