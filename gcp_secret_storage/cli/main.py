"""CLI entrypoint for gcp-secret-storage."""
import sys
import argparse
import logging

from .validators import validate_key_name, validate_prefix

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr
    )


def _open_storage(args):
    """Open storage from the config file, applying --project-id when given."""
    from gcp_secret_storage.storage.domains.config_loader import load_config
    from gcp_secret_storage.storage.workflows.provisioning import open_storage

    config = load_config(args.config)
    if args.project_id:
        config.project_id = args.project_id
    return open_storage(config)


def cmd_version(args):
    """Show version information."""
    print(f"gcp-secret-storage {VERSION}")


def cmd_config_show(args):
    """Show the resolved configuration."""
    from gcp_secret_storage.storage.domains.config_loader import load_config

    config = load_config(args.config)
    print(f"Project ID: {config.project_id} (source: {config.source})")
    print(f"Credentials file: {config.credentials_file or '<ambient credentials>'}")
    print(f"Lock timeout: {config.lock_timeout:g}s")


def cmd_keys_put(args):
    """Store a value under a new key."""
    validate_key_name(args.key)

    if args.file:
        with open(args.file, 'rb') as f:
            value = f.read()
    elif args.value is not None:
        value = args.value.encode("utf-8")
    else:
        value = sys.stdin.buffer.read()

    with _open_storage(args) as storage:
        storage.store(args.key, value, timeout=args.timeout)
    print(f"Stored '{args.key}' ({len(value)} bytes)")


def cmd_keys_get(args):
    """Print the value stored under a key."""
    validate_key_name(args.key)

    with _open_storage(args) as storage:
        value = storage.load(args.key, timeout=args.timeout)
    sys.stdout.buffer.write(value)
    sys.stdout.flush()


def cmd_keys_delete(args):
    """Delete a key."""
    validate_key_name(args.key)

    with _open_storage(args) as storage:
        storage.delete(args.key, timeout=args.timeout)
    print(f"Deleted '{args.key}'")


def cmd_keys_exists(args):
    """Exit 0 if the key exists, 1 otherwise."""
    validate_key_name(args.key)

    with _open_storage(args) as storage:
        found = storage.exists(args.key, timeout=args.timeout)
    print("yes" if found else "no")
    sys.exit(0 if found else 1)


def cmd_keys_list(args):
    """List keys matching a prefix."""
    validate_prefix(args.prefix)

    with _open_storage(args) as storage:
        for key in storage.list(args.prefix, timeout=args.timeout):
            print(key)


def cmd_keys_stat(args):
    """Show key metadata."""
    validate_key_name(args.key)

    with _open_storage(args) as storage:
        info = storage.stat(args.key, timeout=args.timeout)
    print(f"Key: {info.key}")
    print(f"Modified: {info.modified.isoformat()}")
    print(f"Terminal: {info.is_terminal}")


KEYS_COMMANDS = {
    "put": cmd_keys_put,
    "get": cmd_keys_get,
    "delete": cmd_keys_delete,
    "exists": cmd_keys_exists,
    "list": cmd_keys_list,
    "stat": cmd_keys_stat,
}


def build_parser():
    """Build the top-level parser. Returns it with the config and keys subparsers."""
    parser = argparse.ArgumentParser(
        prog="gcp-secret-storage",
        description="Certificate storage backed by GCP Secret Manager",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (configuration, authentication, network, key not found, etc.)
  2 - Usage error (invalid arguments, invalid key name format, etc.)

Environment variables:
  GCP_PROJECT - GCP project ID (overrides config file)
  GCP_SECRET_STORAGE_CONFIG - Config file path (overridden by --config)

Configuration:
  Default location: ~/.config/gcp-secret-storage/config.yml
        """
    )
    parser.add_argument("--config", help="Path to config file")
    parser.add_argument("--project-id", help="GCP project ID (overrides config and GCP_PROJECT)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of gcp-secret-storage"
    )

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Inspect gcp-secret-storage configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_subparsers.add_parser(
        "show",
        help="Show resolved configuration",
        description="Load and validate the config file, then print the resulting settings"
    )

    keys_parser = subparsers.add_parser(
        "keys",
        help="Key operations",
        description="Store, read, list and delete keys in GCP Secret Manager"
    )
    keys_parser.add_argument(
        "--timeout",
        type=float,
        help="Per-request timeout in seconds (client library default if omitted)"
    )
    keys_subparsers = keys_parser.add_subparsers(dest="keys_command")

    put_parser = keys_subparsers.add_parser(
        "put",
        help="Store a value under a new key",
        description="""
Create a key holding a value. Storing a key that already exists fails;
delete it first.

The value is taken from the argument, from --file, or from stdin.
        """
    )
    put_parser.add_argument("key", help="Key name (format: [a-zA-Z0-9_-]+)")
    put_parser.add_argument("value", nargs="?", help="Value to store")
    put_parser.add_argument("--file", help="Read the value from this file")

    for name, help_text in (
        ("get", "Print the value of a key"),
        ("delete", "Delete a key"),
        ("exists", "Check whether a key exists (exit 1 if not)"),
        ("stat", "Show key metadata"),
    ):
        sub = keys_subparsers.add_parser(name, help=help_text, description=help_text)
        sub.add_argument("key", help="Key name (format: [a-zA-Z0-9_-]+)")

    list_parser = keys_subparsers.add_parser(
        "list",
        help="List keys",
        description="List keys whose name matches a prefix, in backend order"
    )
    list_parser.add_argument("prefix", nargs="?", default="", help="Key prefix (default: all keys)")

    return parser, config_parser, keys_parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (configuration, authentication, network, key not found, etc.)
        2 - Usage errors (invalid arguments, invalid key name format, etc.)
    """
    parser, config_parser, keys_parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    _configure_logging(args.verbose)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "show":
                cmd_config_show(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "keys":
            handler = KEYS_COMMANDS.get(args.keys_command)
            if handler is None:
                keys_parser.print_help()
                sys.exit(2)
            handler(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
