#!/usr/bin/env python3
"""
CLI for local state, remote synchronization and hashing utilities.

Usage:
    statesync status
    statesync sync   [--conflict latest] [--force] [--type T] [--exclude-type T] [--json]
    statesync pull   [--conflict remote] [--json]
    statesync push   [--force] [--json]
    statesync export [out.json]
    statesync import state.json [--no-verify]
    statesync hash   "some data" [--algorithm sha512] [--iterations 1000] [--salt abc] [--encoding base64]
    statesync verify "some data" <hash> <salt> [--algorithm sha256] [--iterations 100000]
    statesync file   path/to/file
    statesync dir    path/to/dir

Global options --config (YAML) and -v/--verbose go before the command.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .config import SyncConfig
from .core.models import SyncDirection, SyncOptions
from .errors import StateSyncError
from .hashing.digest import (
    DEFAULT_ITERATIONS,
    SUPPORTED_ALGORITHMS,
    SUPPORTED_ENCODINGS,
    HashResult,
    hash_directory,
    hash_file,
    hash_value,
    verify,
)
from .store.persistence import get_encryption_key, load_state_file, load_store, save_state_file, save_store
from .store.record_store import RecordStore
from .sync.engine import SyncEngine


logger = logging.getLogger(__name__)

POLICY_CHOICES = ["local", "remote", "latest", "manual"]
ALGORITHM_CHOICES = list(SUPPORTED_ALGORITHMS) + ["layered"]


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def load_config(args) -> SyncConfig:
    return SyncConfig(Path(args.config) if args.config else None)


def resolve_encryption_key(config: SyncConfig) -> Optional[bytes]:
    """Look up the at-rest encryption key when encryption is enabled."""
    encryption = config.get("state.encryption", {})
    if not encryption.get("enabled"):
        return None

    key = get_encryption_key(
        key_source=encryption.get("key_source", "env"),
        key_env_var=encryption.get("key_env_var", "STATE_ENCRYPTION_KEY"),
        key_file_path=encryption.get("key_file"),
        prompt=sys.stdin.isatty(),
    )
    if not key:
        raise StateSyncError("Encryption is enabled but no encryption key was found")
    return key


def open_store(config: SyncConfig) -> Tuple[RecordStore, Optional[bytes]]:
    key = resolve_encryption_key(config)
    store = load_store(config.state_file, encryption_key=key)
    logger.debug(f"Loaded {len(store)} records from {config.state_file}")
    return store, key


def cmd_status(args) -> int:
    """Show local state and sync status."""
    try:
        config = load_config(args)
        store, _ = open_store(config)
    except (StateSyncError, ValueError, OSError) as e:
        logger.error(f"Failed to load state: {e}")
        return 1

    adapter_names = [a.get("name") or a.get("type") for a in config.get_adapters()]
    status = store.get_sync_status(adapter_names)

    if args.json:
        print_json(dict(status.to_dict(), adapters=adapter_names, state_file=str(config.state_file)))
        return 0

    print("State Status")
    print(f"  State file: {config.state_file}")
    print(f"  Records: {status.record_count}")
    print(f"  Pending sync: {status.pending_sync}")
    print(f"  Last sync: {status.last_sync or 'never'}")
    print(f"  Hash: {status.hash}")
    print(f"  Adapters: {', '.join(adapter_names) or '(none configured)'}")
    return 0


def _run_sync(args, direction: SyncDirection) -> int:
    try:
        config = load_config(args)
        store, key = open_store(config)
        adapters = config.build_adapters()
    except (StateSyncError, ValueError, OSError) as e:
        logger.error(f"Failed to prepare sync: {e}")
        return 1

    if not adapters:
        logger.error("No adapters configured. Add an 'adapters:' list to the config file.")
        return 1

    options = SyncOptions(
        direction=direction,
        force=getattr(args, "force", False),
        include_types=getattr(args, "type", None),
        exclude_types=getattr(args, "exclude_type", None),
        conflict_resolution=getattr(args, "conflict", None),
    )

    engine = SyncEngine(
        store,
        adapters,
        state_key=config.state_key,
        conflict_resolution=config.conflict_resolution,
        max_workers=config.get("sync.max_workers"),
    )

    try:
        result = engine.sync(options)
        save_store(store, config.state_file, encryption_key=key)
    except (StateSyncError, OSError) as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        for adapter in adapters:
            adapter.close()

    if args.json:
        print_json(result.to_dict())
    else:
        print(result.summary())

    return 0 if result.success else 1


def cmd_sync(args) -> int:
    """Pull, merge and push."""
    return _run_sync(args, SyncDirection.BIDIRECTIONAL)


def cmd_pull(args) -> int:
    """Pull and merge only."""
    return _run_sync(args, SyncDirection.PULL)


def cmd_push(args) -> int:
    """Push pending records only."""
    return _run_sync(args, SyncDirection.PUSH)


def cmd_export(args) -> int:
    """Export the local state document to a file or stdout."""
    try:
        config = load_config(args)
        store, _ = open_store(config)
    except (StateSyncError, ValueError, OSError) as e:
        logger.error(f"Failed to load state: {e}")
        return 1

    document = store.export_state()
    if args.file:
        out_path = save_state_file(Path(args.file), document)
        logger.info(f"Exported {len(store)} records to {out_path}")
    else:
        print_json(document)
    return 0


def cmd_import(args) -> int:
    """Replace the local state with an exported document."""
    in_path = Path(args.file)
    if not in_path.exists():
        logger.error(f"File not found: {in_path}")
        return 1

    try:
        config = load_config(args)
        key = resolve_encryption_key(config)
        store = RecordStore()
        count = store.import_state(load_state_file(in_path), verify=not args.no_verify)
        save_store(store, config.state_file, encryption_key=key)
    except (StateSyncError, ValueError, OSError) as e:
        logger.error(f"Import failed: {e}")
        return 1

    logger.info(f"Imported {count} records into {config.state_file}")
    return 0


def cmd_hash(args) -> int:
    """Salted, iterated hash of a string."""
    try:
        result = hash_value(args.data, algorithm=args.algorithm, iterations=args.iterations, salt=args.salt,
                            encoding=args.encoding)
    except ValueError as e:
        logger.error(str(e))
        return 1
    print_json(result.to_dict())
    return 0


def cmd_verify(args) -> int:
    """Check a string against a recorded hash."""
    expected = HashResult(
        hash=args.hash,
        algorithm=args.algorithm,
        iterations=args.iterations,
        salt=args.salt,
        encoding=args.encoding,
    )
    try:
        verification = verify(args.data, expected)
    except ValueError as e:
        logger.error(str(e))
        return 1

    print_json({"valid": verification.valid})
    return 0 if verification.valid else 1


def cmd_file(args) -> int:
    """Hash a file."""
    path = Path(args.path)
    if not path.is_file():
        logger.error(f"File not found: {path}")
        return 1
    print_json(hash_file(path, args.algorithm))
    return 0


def cmd_dir(args) -> int:
    """Hash every file in a directory."""
    path = Path(args.path)
    if not path.is_dir():
        logger.error(f"Directory not found: {path}")
        return 1
    print_json(hash_directory(path, args.algorithm))
    return 0


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="statesync",
        description="Multi-store state synchronization CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument("--config", help="Path to YAML config file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    status_parser = subparsers.add_parser("status", help="Show local state status")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    for command, help_text in (
        ("sync", "Bidirectional sync"),
        ("pull", "Pull remote state and merge"),
        ("push", "Push pending local state"),
    ):
        sync_parser = subparsers.add_parser(command, help=help_text)
        if command != "push":
            sync_parser.add_argument("--conflict", choices=POLICY_CHOICES,
                                     help="Conflict resolution policy for this run")
        if command != "pull":
            sync_parser.add_argument("--force", action="store_true",
                                     help="Push every record to every adapter")
        sync_parser.add_argument("--type", action="append", metavar="TYPE",
                                 help="Only sync records of this type (repeatable)")
        sync_parser.add_argument("--exclude-type", action="append", metavar="TYPE",
                                 help="Skip records of this type (repeatable)")
        sync_parser.add_argument("--json", action="store_true", help="Output result as JSON")

    export_parser = subparsers.add_parser("export", help="Export local state")
    export_parser.add_argument("file", nargs="?", help="Output file (stdout when omitted)")

    import_parser = subparsers.add_parser("import", help="Import exported state")
    import_parser.add_argument("file", help="Exported state file")
    import_parser.add_argument("--no-verify", action="store_true",
                               help="Warn instead of failing on fingerprint mismatches")

    hash_parser = subparsers.add_parser("hash", help="Hash a string")
    hash_parser.add_argument("data", help="Input string")
    hash_parser.add_argument("--algorithm", default="sha256", choices=ALGORITHM_CHOICES)
    hash_parser.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS)
    hash_parser.add_argument("--salt", help="Salt (random when omitted)")
    hash_parser.add_argument("--encoding", default="hex", choices=list(SUPPORTED_ENCODINGS))

    verify_parser = subparsers.add_parser("verify", help="Verify a string against a hash")
    verify_parser.add_argument("data", help="Input string")
    verify_parser.add_argument("hash", help="Expected hash")
    verify_parser.add_argument("salt", help="Salt used when hashing")
    verify_parser.add_argument("--algorithm", default="sha256", choices=ALGORITHM_CHOICES)
    verify_parser.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS)
    verify_parser.add_argument("--encoding", default="hex", choices=list(SUPPORTED_ENCODINGS))

    file_parser = subparsers.add_parser("file", help="Hash a file")
    file_parser.add_argument("path", help="File path")
    file_parser.add_argument("--algorithm", default="sha256", choices=list(SUPPORTED_ALGORITHMS))

    dir_parser = subparsers.add_parser("dir", help="Hash a directory")
    dir_parser.add_argument("path", help="Directory path")
    dir_parser.add_argument("--algorithm", default="sha256", choices=list(SUPPORTED_ALGORITHMS))

    return parser.parse_args(argv)


COMMANDS = {
    "status": cmd_status,
    "sync": cmd_sync,
    "pull": cmd_pull,
    "push": cmd_push,
    "export": cmd_export,
    "import": cmd_import,
    "hash": cmd_hash,
    "verify": cmd_verify,
    "file": cmd_file,
    "dir": cmd_dir,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(verbose=args.verbose)

    handler = COMMANDS.get(args.command)
    if handler is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
