"""
credstore CLI — entry point for all operations.

Usage:
    creds ...                      # list, filter, delete and add credentials
    credstore creds ...            # same, with --workspace / -v available
    credstore migrate [status|apply [VERSION]] [--dry-run]
    credstore status               # Show database and workspace status
    credstore version              # Show version
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from functools import partial

from credstore.config import Config, get_config
from credstore.errors import CredsError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="credstore",
        description="credstore — inspect and manage harvested credentials.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--workspace", "-w", type=str, help="Workspace to operate on")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # creds: its tokens are split off before parsing (see _split_creds_args)
    subparsers.add_parser("creds", help="List, filter, delete and add credentials", add_help=False)

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Run database migrations")
    migrate_parser.add_argument(
        "action", nargs="?", choices=["status", "apply"], default="status"
    )
    migrate_parser.add_argument("target", nargs="?", help="Only apply this version")
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="Print what would be applied"
    )

    # status
    subparsers.add_parser("status", help="Show database and workspace status")

    # version
    subparsers.add_parser("version", help="Show version")

    argv, creds_args = _split_creds_args(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(argv)

    cfg = get_config()
    if args.workspace:
        cfg = cfg.with_workspace(args.workspace)
    _configure_logging(cfg, args.verbose)

    if args.version or args.command == "version":
        from credstore import __version__

        print(f"credstore {__version__}")
        return 0

    if args.command == "creds":
        return run_creds(creds_args, cfg)
    elif args.command == "migrate":
        return _cmd_migrate(args)
    elif args.command == "status":
        return _cmd_status(cfg)
    else:
        parser.print_help()
        return 0


def _split_creds_args(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split argv at the `creds` command; its tokens follow their own grammar."""
    args = list(argv)
    i = 0
    while i < len(args):
        if args[i] in ("--workspace", "-w"):
            i += 2
            continue
        if args[i] == "creds":
            return args[: i + 1], args[i + 1 :]
        i += 1
    return args, []


def creds_main(argv: list[str] | None = None) -> int:
    """Entry point for the standalone ``creds`` command."""
    cfg = get_config()
    _configure_logging(cfg, False)
    return run_creds(sys.argv[1:] if argv is None else argv, cfg)


def _configure_logging(cfg: Config, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, cfg.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ─── creds ───────────────────────────────────────────────────────────────


def run_creds(argv: Sequence[str], cfg: Config | None = None) -> int:
    """Dispatch one ``creds`` invocation. Returns the exit status."""
    cfg = cfg or get_config()
    args = list(argv)

    # Short-circuit help
    if "-h" in args or "--help" in args:
        print_creds_help()
        return 0

    subcommand = args[0] if args else None
    try:
        if subcommand == "help":
            print_creds_help()
            return 0
        elif subcommand == "add":
            return _creds_add(args[1:], cfg)
        else:
            return _creds_search(args, cfg)
    except CredsError as e:
        logger.debug("creds failed", exc_info=True)
        print(f"[-] {e}")
        return 1
    finally:
        from credstore.db import close_pool

        close_pool()


def _creds_add(args: list[str], cfg: Config) -> int:
    from credstore.adder import add_credential, parse_add_args
    from credstore.dal import open_repository

    request = parse_add_args(args, workspace=cfg.workspace, origin_label=cfg.origin_label)
    with open_repository() as repo:
        core = add_credential(repo, request)
    print(f"[+] Added {request.private_type.label} credential {core.id} to {cfg.workspace}")
    return 0


def _creds_search(args: list[str], cfg: Config) -> int:
    from credstore.dal import open_repository
    from credstore.filters import parse_filter_args
    from credstore.report import run_listing
    from credstore.targets import set_rhosts_from_addrs

    # Parse everything before touching the database
    spec = parse_filter_args(args)
    with open_repository(snapshot=True) as repo:
        run_listing(
            repo,
            spec,
            cfg.workspace,
            rhosts_sink=partial(set_rhosts_from_addrs, rhosts_file=cfg.rhosts_file),
        )
    return 0


def print_creds_help() -> None:
    from credstore.adder import ADD_KEY_HELP
    from credstore.filters import CRED_TYPES

    print()
    print("With no sub-command, list credentials. If an address range is")
    print("given, show only credentials with logins on hosts within that")
    print("range.")
    print()
    print("Usage - Listing credentials:")
    print("  creds [filter options] [address range]")
    print()
    print("Usage - Adding credentials:")
    print("  creds add uses the following named parameters.")
    for keyword, description in ADD_KEY_HELP.items():
        print(f"    {keyword.ljust(10)}:  {description}")
    print()
    print("Examples: Adding")
    print("   # Add a user, password and realm")
    print("   creds add user:admin password:notpassword realm:workgroup")
    print("   # Add a user and password")
    print("   creds add user:guest password:'guest password'")
    print("   # Add a password")
    print("   creds add password:'password without username'")
    print("   # Add a user with an NTLMHash")
    print(
        "   creds add user:admin "
        "ntlm:E2FC15074BF7751DD408E6B105741864:A1074A69B1BDE45403AB680504BBDD1A"
    )
    print("   # Add a user with an SSH key")
    print("   creds add user:sshadmin ssh-key:/path/to/id_rsa")
    print("   # Add a user and a NonReplayableHash")
    print("   creds add user:other hash:d19c32489b870735b5f587d76b934283")
    print("   # Add a password that works on a known service")
    print("   creds add user:root password:toor host:10.0.0.5 port:22")
    print()
    print("General options")
    print("  -h,--help             Show this help information")
    print("  -o <file>             Send output to a file in csv format")
    print("  -d                    Delete one or more credentials")
    print()
    print("Filter options for listing")
    print("  -P,--password <regex> List passwords that match this regex")
    print("  -p,--port <portspec>  List creds with logins on services matching this port spec")
    print("  -s <svc names>        List creds matching comma-separated service names")
    print("  -u,--user <regex>     List users that match this regex")
    print(
        "  -t,--type <type>      List creds that match the following types: "
        f"{','.join(CRED_TYPES)}"
    )
    print("  -O,--origins          List creds that match these origins")
    print("  -R,--rhosts           Set RHOSTS from the results of the search")
    print()
    print("Examples, listing:")
    print("  creds               # Default, returns all credentials")
    print("  creds 1.2.3.4/24    # nmap host specification")
    print("  creds -p 22-25,445  # nmap port specification")
    print("  creds -s ssh,smb    # All creds associated with a login on SSH or SMB services")
    print("  creds -t ntlm       # All NTLM creds")
    print()
    print("Example, deleting:")
    print("  # Delete all SMB credentials")
    print("  creds -d -s smb")
    print()


# ─── migrate / status ────────────────────────────────────────────────────


def _cmd_migrate(args: argparse.Namespace) -> int:
    from credstore.db import migrate

    try:
        if args.action == "apply":
            migrate.apply(version=args.target, dry_run=args.dry_run)
            return 0

        rows = migrate.status()
    except CredsError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        print(f"Error: Migration failed: {e}")
        return 1

    if not rows:
        print("No migration files found.")
        return 0
    print(f"{'Version':<10} {'Filename':<45} {'Status':<10} {'Applied At'}")
    print("-" * 90)
    for r in rows:
        at = str(r.applied_at)[:19] if r.applied_at else ""
        print(f"{r.migration.version:<10} {r.migration.filename:<45} {r.state:<10} {at}")
    return 0


def _cmd_status(cfg: Config) -> int:
    from credstore import __version__

    print(f"credstore v{__version__}")
    print()
    print(f"  PostgreSQL:  {cfg.db.host or 'local socket'}:{cfg.db.port}/{cfg.db.name}")
    try:
        import psycopg2

        conn = psycopg2.connect(**cfg.db.dict, connect_timeout=3)
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT version()")
                pg_version = cur.fetchone()[0].split(",")[0]
                cur.execute(
                    "SELECT count(*) FROM cred_cores WHERE workspace = %s", (cfg.workspace,)
                )
                cred_count = cur.fetchone()[0]
        finally:
            conn.close()
        print(f"               Connected — {pg_version}")
        print(f"               {cred_count} credential(s) in workspace")
    except Exception as e:
        print(f"               UNREACHABLE — {e}")
        return 1

    print()
    print(f"  Workspace:   {cfg.workspace}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
