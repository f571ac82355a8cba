#!/usr/bin/env python3
"""Manage Harvest credentials in the OS keychain.

Settings read ``HARVEST_ACCESS_TOKEN`` and ``HARVEST_ACCOUNT_ID`` from the
keychain before the environment, so storing them here keeps them out of
``.env``.

Usage:
    python -m scripts.harvest_credentials show
    python -m scripts.harvest_credentials set HARVEST_ACCOUNT_ID 123456
    python -m scripts.harvest_credentials set HARVEST_ACCESS_TOKEN      # prompts
    python -m scripts.harvest_credentials import-env --clean
    python -m scripts.harvest_credentials delete HARVEST_ACCESS_TOKEN
"""

import argparse
import getpass
import re
import sys
from pathlib import Path

from dotenv import dotenv_values

from services.credential_manager import (
    CREDENTIAL_KEYS,
    delete_credential,
    get_credential,
    list_credentials,
    set_credential,
)

DEFAULT_ENV_FILE = Path(__file__).parent.parent / ".env"


def mask(value: str) -> str:
    """Show only the last four characters of a secret."""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


def show() -> int:
    stored = list_credentials()
    for key in sorted(CREDENTIAL_KEYS):
        value = stored.get(key)
        print(f"  {key:<22} {mask(value) if value else '(not set)'}")
    return 0


def import_env(env_path: Path, *, clean: bool = False) -> int:
    """Copy non-empty Harvest credentials from ``env_path`` into the keychain.

    Returns:
        Process exit code (1 if any credential could not be stored).
    """
    if not env_path.exists():
        print(f"No .env file found at {env_path}")
        return 1

    values = dotenv_values(env_path)
    stored: list[str] = []
    failed: list[str] = []
    for key in sorted(CREDENTIAL_KEYS):
        value = values.get(key)
        if not value:
            print(f"  - {key}: empty or missing in {env_path.name}")
            continue
        if get_credential(key) == value or set_credential(key, value):
            stored.append(key)
            print(f"  + {key}")
        else:
            failed.append(key)
            print(f"  ! {key}: could not be stored")

    if clean and stored:
        remove_env_keys(env_path, stored)
    return 1 if failed else 0


def remove_env_keys(env_path: Path, keys: list[str]) -> None:
    """Drop ``KEY=`` lines for ``keys`` from ``env_path``, keeping everything else."""
    pattern = re.compile(r"^(" + "|".join(re.escape(k) for k in keys) + r")\s*=")
    lines = env_path.read_text().splitlines(keepends=True)
    env_path.write_text("".join(line for line in lines if not pattern.match(line)))
    print(f"Removed {len(keys)} credential(s) from {env_path}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Manage Harvest credentials in the OS keychain")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("show", help="List stored credentials (masked)")

    set_cmd = commands.add_parser("set", help="Store one credential")
    set_cmd.add_argument("key", choices=sorted(CREDENTIAL_KEYS))
    set_cmd.add_argument("value", nargs="?", help="Prompted for when omitted")

    delete_cmd = commands.add_parser("delete", help="Remove one credential")
    delete_cmd.add_argument("key", choices=sorted(CREDENTIAL_KEYS))

    import_cmd = commands.add_parser("import-env", help="Copy credentials from a .env file")
    import_cmd.add_argument("--env-file", type=Path, default=DEFAULT_ENV_FILE)
    import_cmd.add_argument(
        "--clean",
        action="store_true",
        help="Remove imported credentials from the .env file",
    )

    args = parser.parse_args(argv)

    if args.command == "show":
        code = show()
    elif args.command == "set":
        value = args.value or getpass.getpass(f"{args.key}: ")
        code = 0 if set_credential(args.key, value) else 1
    elif args.command == "delete":
        code = 0 if delete_credential(args.key) else 1
    else:
        code = import_env(args.env_file, clean=args.clean)
    sys.exit(code)


if __name__ == "__main__":
    main()
