"""
MapCommand — Repository index management

Maps repository names used in tours to local checkouts. Mappings are
written to the project config (.tourist/config.yaml), never to the tour.
"""

from pathlib import Path

from ..commands.base import BaseCommand
from ..errors import InputValidationError, OperationInputError


class MapCommand(BaseCommand):
    """Command for mapping repositories and showing configuration."""

    def map(self, name: str, path: str):
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            raise InputValidationError(f"Not a directory: {root}", path=root)
        self.config_manager.map_repository(name, root)
        self._cli.reload_config()
        print(f"Mapped {name} -> {root}")

    def unmap(self, name: str):
        if not self.config_manager.unmap_repository(name):
            raise OperationInputError(
                f"Repository '{name}' is not mapped in the project config",
                repository=name,
            )
        self._cli.reload_config()
        print(f"Unmapped {name}")

    def list(self):
        if not len(self.index):
            print("No repositories mapped.")
            return
        for name, root in sorted(self.index.items()):
            print(f"{name}: {root}")

    def show_config(self):
        print(self.config_manager.display())


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['map', 'unmap', 'config']


def register_parser(subparsers):
    """Register map/unmap/config parsers."""
    p = subparsers.add_parser('map', help='Map a repository name to a local checkout')
    p.add_argument('name', nargs='?', help='Repository name (omit to list mappings)')
    p.add_argument('path', nargs='?', help='Local checkout directory')

    p = subparsers.add_parser('unmap', help='Remove a repository mapping')
    p.add_argument('name', help='Repository name')

    p = subparsers.add_parser('config', help='Show configuration')
    return p


def handle(cli, args):
    """Handle map command dispatch."""
    cmd = cli._map_cmd
    if args.command == 'map':
        if args.name is None:
            cmd.list()
        elif args.path is None:
            raise OperationInputError("Usage: tourist map <name> <path>")
        else:
            cmd.map(args.name, args.path)
    elif args.command == 'unmap':
        cmd.unmap(args.name)
    elif args.command == 'config':
        cmd.show_config()
