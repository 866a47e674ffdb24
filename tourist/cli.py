"""
CLI -- Command interface for tours

One tour file per invocation (default: ./tour.json). Repository
mappings come from configuration, so the same tour file works on any
machine that maps its repositories.

    tourist init "Request lifecycle"
    tourist map app ~/src/app
    tourist add ~/src/app/server.py 42 --title "Entry point"
    tourist refresh
    tourist resolve
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConfigManager
from .core.store import TourStore
from .core.tour import TourFile, load_tour, save_tour
from .errors import TouristError
from .commands.init_cmd import InitCommand
from .commands.stop_cmd import StopCommand
from .commands.sync_cmd import SyncCommand
from .commands.map_cmd import MapCommand
from . import __version__

logger = logging.getLogger(__name__)

DEFAULT_TOUR_FILE = "tour.json"


class TouristCLI:
    """Command-line interface for maintaining code tours."""

    def __init__(
        self,
        project_dir: Path,
        tour_path: Optional[Path] = None,
        config_file: Optional[Path] = None
    ):
        self.project_dir = Path(project_dir)
        self.tour_path = Path(tour_path) if tour_path else self.project_dir / DEFAULT_TOUR_FILE
        self.config_manager = ConfigManager(self.project_dir, config_file)
        self.reload_config()

        # Initialize command handlers (modular architecture)
        self._init_cmd = InitCommand(self)
        self._stop_cmd = StopCommand(self)
        self._sync_cmd = SyncCommand(self)
        self._map_cmd = MapCommand(self)

    def reload_config(self):
        """(Re)load configuration and rebuild the store from it."""
        self.config = self.config_manager.reload()
        self.index = self.config.repository_index()
        self.store = TourStore(
            self.index,
            default_backend=self.config.version_backend,
            workers=self.config.workers,
        )

    def load_tour(self) -> TourFile:
        return load_tour(self.tour_path)

    def save_tour(self, tour: TourFile) -> None:
        save_tour(self.tour_path, tour)
        logger.debug("Saved tour %s to %s", tour.id, self.tour_path)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the tourist CLI.

    Uses command registry pattern for modular command handling.
    Parser definitions and dispatch logic are in individual command modules.

    Returns:
        Process exit code
    """
    parser = argparse.ArgumentParser(
        prog="tourist",
        description="tourist -- Code tours that survive edits",
    )

    parser.add_argument(
        '--project', '-p',
        default=os.environ.get("TOURIST_PROJECT_PATH", "."),
        help='Project directory (default: TOURIST_PROJECT_PATH or current)'
    )
    parser.add_argument('--tour', '-t', default=None,
                        help=f'Tour file (default: <project>/{DEFAULT_TOUR_FILE})')
    parser.add_argument('--config', '-c', default=None, help='Explicit config file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'tourist {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Register all commands from command modules (self-registration pattern)
    from .commands import register_all, dispatch
    register_all(subparsers)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        cli = TouristCLI(
            Path(args.project),
            tour_path=Path(args.tour) if args.tour else None,
            config_file=Path(args.config) if args.config else None,
        )
        _configure_logging("DEBUG" if args.verbose else cli.config.log_level)
        result = dispatch(args.command, cli, args)
    except TouristError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    return result if isinstance(result, int) else 0


if __name__ == '__main__':
    sys.exit(main())
