"""
InitCommand — Create a new, empty tour file

The tour is bound to no repository until its first stop is added.
"""

from ..commands.base import BaseCommand
from ..core.tour import save_tour
from ..errors import OperationInputError


class InitCommand(BaseCommand):
    """Command for tour creation."""

    def init(self, title: str, description: str = "", force: bool = False):
        """
        Create a tour file at the CLI's tour path.

        Args:
            title: Tour title
            description: Optional longer description
            force: Overwrite an existing tour file
        """
        path = self.tour_path
        if path.exists() and not force:
            raise OperationInputError(
                f"Tour file already exists: {path} (use --force to overwrite)",
                path=path,
            )

        tour = self.store.init(title, description)
        save_tour(path, tour)

        print(f"Created tour {tour.id}: {title}")
        print(f"  File: {path}")
        if not len(self.index):
            print("\nNo repositories mapped yet. Map one with:")
            print("  tourist map <name> <path>")
        return tour


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAME = 'init'


def register_parser(subparsers):
    """Register init command parser."""
    p = subparsers.add_parser('init', help='Create a new tour file')
    p.add_argument('title', help='Tour title')
    p.add_argument('--description', '-d', default='', help='Tour description')
    p.add_argument('--force', '-f', action='store_true',
                   help='Overwrite an existing tour file')
    return p


def handle(cli, args):
    """Handle init command dispatch."""
    cli._init_cmd.init(args.title, description=args.description, force=args.force)
