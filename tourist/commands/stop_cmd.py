"""
StopCommand — Structural edits to a tour's stops

Subcommands:
- add FILE LINE: capture a working-copy position as a new stop
- remove STOP / edit STOP / move STOP FILE LINE
- scramble I [I ...]: reorder (and drop) stops by index
- link STOP TOUR_ID INDEX / unlink STOP LINK_INDEX

STOP is a stop id or a 0-based index. An existing id always wins.
Every edit loads the tour, applies one store operation, then saves,
so a failed operation leaves the file untouched.
"""

from pathlib import Path
from typing import List, Optional

from ..commands.base import BaseCommand
from ..core.tour import ChildStopRef, StopPosition


class StopCommand(BaseCommand):
    """Command for adding, editing and rearranging stops."""

    def _position(self, file: str, line: int) -> StopPosition:
        return StopPosition(Path(file).expanduser().absolute(), line)

    def add(self, file: str, line: int, title: str, body: str = "", index: Optional[int] = None):
        tour = self._cli.load_tour()
        stop_id = self.store.add(tour, self._position(file, line), title, body=body, index=index)
        self._cli.save_tour(tour)
        stop = self.store.get_stop(tour, stop_id)
        print(f"Added stop {stop_id}: {title}")
        print(f"  {stop.repository}:{stop.relative_path}:{stop.line}")
        return stop_id

    def remove(self, ref: str):
        tour = self._cli.load_tour()
        stop = self.store.remove(tour, self.stop_ref(tour, ref))
        self._cli.save_tour(tour)
        print(f"Removed stop {stop.id}: {stop.title}")

    def edit(self, ref: str, title: Optional[str] = None, body: Optional[str] = None):
        if title is None and body is None:
            print("Nothing to change. Pass --title and/or --body.")
            return
        tour = self._cli.load_tour()
        stop = self.store.edit(tour, self.stop_ref(tour, ref), title=title, body=body)
        self._cli.save_tour(tour)
        print(f"Updated stop {stop.id}: {stop.title}")

    def move(self, ref: str, file: str, line: int):
        tour = self._cli.load_tour()
        stop = self.store.move(tour, self.stop_ref(tour, ref), self._position(file, line))
        self._cli.save_tour(tour)
        print(f"Moved stop {stop.id} to {stop.repository}:{stop.relative_path}:{stop.line}")

    def scramble(self, indices: List[int]):
        tour = self._cli.load_tour()
        before = len(tour.stops)
        self.store.scramble(tour, indices)
        self._cli.save_tour(tour)
        dropped = before - len(tour.stops)
        print(f"Reordered {len(tour.stops)} stop(s)" + (f", dropped {dropped}" if dropped else ""))

    def link(self, ref: str, tour_id: str, stop_index: int):
        tour = self._cli.load_tour()
        stop = self.store.link(tour, self.stop_ref(tour, ref), ChildStopRef(tour_id, stop_index))
        self._cli.save_tour(tour)
        print(f"Linked stop {stop.id} -> {tour_id}[{stop_index}]")

    def unlink(self, ref: str, link_index: int):
        tour = self._cli.load_tour()
        removed = self.store.unlink(tour, self.stop_ref(tour, ref), link_index)
        self._cli.save_tour(tour)
        print(f"Unlinked {removed.tour_id}[{removed.stop_index}]")


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['add', 'remove', 'edit', 'move', 'scramble', 'link', 'unlink']


def register_parser(subparsers):
    """Register stop editing command parsers."""
    p = subparsers.add_parser('add', help='Add a stop at FILE:LINE')
    p.add_argument('file', help='File in a mapped repository')
    p.add_argument('line', type=int, help='1-indexed line number')
    p.add_argument('--title', '-t', required=True, help='Stop title')
    p.add_argument('--body', '-b', default='', help='Stop body')
    p.add_argument('--index', '-i', type=int, default=None,
                   help='Insert position (default: append)')

    p = subparsers.add_parser('remove', help='Remove a stop')
    p.add_argument('stop', help='Stop id or index')

    p = subparsers.add_parser('edit', help="Change a stop's title or body")
    p.add_argument('stop', help='Stop id or index')
    p.add_argument('--title', '-t', default=None, help='New title')
    p.add_argument('--body', '-b', default=None, help='New body')

    p = subparsers.add_parser('move', help='Point a stop at a new FILE:LINE')
    p.add_argument('stop', help='Stop id or index')
    p.add_argument('file', help='File in a mapped repository')
    p.add_argument('line', type=int, help='1-indexed line number')

    p = subparsers.add_parser('scramble', help='Reorder stops by index (omitted stops are dropped)')
    p.add_argument('indices', type=int, nargs='+', help='New order as 0-based indices')

    p = subparsers.add_parser('link', help='Link a stop to a stop in another tour')
    p.add_argument('stop', help='Stop id or index')
    p.add_argument('tour_id', help='Target tour id')
    p.add_argument('stop_index', type=int, help='Target stop index')

    p = subparsers.add_parser('unlink', help='Remove a child link from a stop')
    p.add_argument('stop', help='Stop id or index')
    p.add_argument('link_index', type=int, help="Position in the stop's link list")
    return p


def handle(cli, args):
    """Handle stop command dispatch."""
    cmd = cli._stop_cmd
    if args.command == 'add':
        cmd.add(args.file, args.line, args.title, body=args.body, index=args.index)
    elif args.command == 'remove':
        cmd.remove(args.stop)
    elif args.command == 'edit':
        cmd.edit(args.stop, title=args.title, body=args.body)
    elif args.command == 'move':
        cmd.move(args.stop, args.file, args.line)
    elif args.command == 'scramble':
        cmd.scramble(args.indices)
    elif args.command == 'link':
        cmd.link(args.stop, args.tour_id, args.stop_index)
    elif args.command == 'unlink':
        cmd.unlink(args.stop, args.link_index)
