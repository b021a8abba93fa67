"""Command-line client for the marketplace Build API."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn, TextIO

from pydantic import ValidationError

from flexbuild.api.assets import AssetsApi
from flexbuild.api.auth_storage import AuthData, clear_auth, write_auth
from flexbuild.api.client import BuildApiClient
from flexbuild.config import Settings
from flexbuild.exceptions import FlexBuildError
from flexbuild.services.asset_sync_service import SyncStatus, pull_assets, push_assets

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024


def format_download_progress(downloaded: int) -> str:
    return f"\r\x1b[KDownloaded {downloaded / _BYTES_PER_MB:.2f}MB"


class _DownloadProgress:
    """Rewrites a single progress line while an archive downloads."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.active = False

    def __call__(self, downloaded: int) -> None:
        self.stream.write(format_download_progress(downloaded))
        self.stream.flush()
        self.active = True

    def finish(self) -> None:
        if self.active:
            self.stream.write("\n")
            self.stream.flush()
            self.active = False


def _configure_logging(verbose: bool) -> None:
    """Configure logging; stdout is reserved for command output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flex-build",
        description="Manage a marketplace through the Build API",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--marketplace", "-m", help="marketplace identifier")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("login", help="log in with an API key")
    subparsers.add_parser("logout", help="log out")

    assets_parser = subparsers.add_parser("assets", help="manage marketplace assets")
    assets_subparsers = assets_parser.add_subparsers(dest="assets_command")

    pull_parser = assets_subparsers.add_parser("pull", help="pull assets from remote")
    pull_parser.add_argument(
        "--path", required=True, help="path to directory where assets will be stored"
    )
    pull_parser.add_argument("--version", help="version of assets to pull")
    pull_parser.add_argument(
        "--prune",
        action="store_true",
        help="delete local files no longer present as remote assets",
    )

    push_parser = assets_subparsers.add_parser("push", help="push assets to remote")
    push_parser.add_argument("--path", required=True, help="path to directory with assets")
    push_parser.add_argument(
        "--prune",
        action="store_true",
        help="delete remote assets no longer present locally",
    )

    for sub in (pull_parser, push_parser):
        sub.add_argument(
            "--marketplace",
            "-m",
            default=argparse.SUPPRESS,
            help="marketplace identifier",
        )
    return parser


def _login(settings: Settings) -> None:
    api_key = getpass.getpass("Enter API key: ")
    if not api_key.strip():
        _fail("API key cannot be empty")
    write_auth(settings.auth_file, AuthData(api_key=api_key))
    print("Successfully logged in.")


def _logout(settings: Settings) -> None:
    clear_auth(settings.auth_file)
    print("Successfully logged out.")


def _run_assets(args: argparse.Namespace, settings: Settings) -> None:
    marketplace = args.marketplace
    if not marketplace:
        _fail("--marketplace is required")

    progress = _DownloadProgress(sys.stderr)
    with BuildApiClient(settings) as client:
        api = AssetsApi(client)
        try:
            if args.assets_command == "pull":
                pulled = pull_assets(
                    api,
                    marketplace,
                    Path(args.path),
                    version=args.version,
                    prune=args.prune,
                    on_progress=progress,
                )
                progress.finish()
                if pulled.status is SyncStatus.UP_TO_DATE:
                    print("Assets are up to date.")
                else:
                    print(f"Version {pulled.version} successfully pulled.")
            else:
                pushed = push_assets(
                    api, marketplace, Path(args.path), prune=args.prune, echo=print
                )
                if pushed.status is SyncStatus.UP_TO_DATE:
                    print("Assets are up to date.")
                else:
                    print(f"New version {pushed.version} successfully created.")
        except (FlexBuildError, OSError) as exc:
            progress.finish()
            logger.debug("assets %s failed", args.assets_command, exc_info=True)
            _fail(str(exc))


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        settings = Settings()
    except ValidationError as exc:
        _fail(f"Invalid configuration: {exc}")

    if args.command == "login":
        _login(settings)
    elif args.command == "logout":
        _logout(settings)
    elif args.command == "assets" and args.assets_command in ("pull", "push"):
        _run_assets(args, settings)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
