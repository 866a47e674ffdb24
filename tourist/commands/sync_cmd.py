"""
SyncCommand — Keep a tour in step with its repositories

Subcommands:
- refresh [REPO]: advance bindings to the checked-out versions
- resolve [--json]: show where every stop is in the working copy
- check [--json]: report every problem, exit 1 if any
- dump: print the tour file as stored
"""

from typing import Optional

import orjson

from ..commands.base import BaseCommand
from ..core.tour import BrokenStop, serialize


class SyncCommand(BaseCommand):
    """Command for refreshing, resolving and checking a tour."""

    def refresh(self, repository: Optional[str] = None):
        tour = self._cli.load_tour()
        reports = self.store.refresh(tour, repository)
        self._cli.save_tour(tour)

        if not reports:
            print("Tour has no repositories to refresh.")
        for report in reports:
            if not report.changed:
                print(f"{report.repository}: already at {report.current}")
                continue
            print(f"{report.repository}: {report.previous} -> {report.current}")
            if report.remapped:
                print(f"  {len(report.remapped)} stop(s) remapped")
            for stop_id in report.unmapped:
                stop = self.store.get_stop(tour, stop_id)
                print(f"  ! {stop.title} ({stop_id}): line deleted")
        return reports

    def resolve(self, as_json: bool = False):
        tour = self._cli.load_tour()
        resolved = self.store.resolve(tour)

        if as_json:
            print(orjson.dumps(_resolved_to_dict(resolved), option=orjson.OPT_INDENT_2).decode("utf-8"))
            return resolved

        print(f"{resolved.title} ({resolved.id})")
        if resolved.description:
            print(f"  {resolved.description}")
        print()
        for i, stop in enumerate(resolved.stops):
            if isinstance(stop, BrokenStop):
                reasons = ", ".join(r.value for r in stop.reasons)
                print(f"{i}. {stop.title} [BROKEN: {reasons}]")
            else:
                print(f"{i}. {stop.title}")
                print(f"   {stop.absolute_path}:{stop.line}")
            if stop.body:
                print(f"   {stop.body}")
        if resolved.broken:
            print(f"\n{len(resolved.broken)} of {len(resolved.stops)} stop(s) broken.")
        return resolved

    def check(self, as_json: bool = False) -> int:
        tour = self._cli.load_tour()
        errors = self.store.check(tour)

        if as_json:
            print(orjson.dumps([e.to_dict() for e in errors], option=orjson.OPT_INDENT_2).decode("utf-8"))
        elif not errors:
            print(f"Tour OK: {len(tour.stops)} stop(s), {len(tour.repositories)} repository(ies)")
        else:
            for error in errors:
                print(f"[{error.kind.value}] {error.message}")
            print(f"\n{len(errors)} problem(s) found.")
        return 1 if errors else 0

    def dump(self):
        print(serialize(self._cli.load_tour()))


def _resolved_to_dict(resolved) -> dict:
    stops = []
    for stop in resolved.stops:
        entry = {
            "id": stop.id,
            "title": stop.title,
            "body": stop.body,
            "childStops": [c.to_dict() for c in stop.child_stops],
        }
        if isinstance(stop, BrokenStop):
            entry["broken"] = [r.value for r in stop.reasons]
        else:
            entry["absolutePath"] = str(stop.absolute_path)
            entry["line"] = stop.line
        stops.append(entry)
    return {
        "id": resolved.id,
        "title": resolved.title,
        "description": resolved.description,
        "stops": stops,
    }


# =============================================================================
# Command Registration (Self-Registration Pattern)
# =============================================================================

COMMAND_NAMES = ['refresh', 'resolve', 'check', 'dump']


def register_parser(subparsers):
    """Register refresh/resolve/check/dump parsers."""
    p = subparsers.add_parser('refresh', help='Advance repository bindings to the checked-out versions')
    p.add_argument('repository', nargs='?', default=None,
                   help='Repository to refresh (default: all bound repositories)')

    p = subparsers.add_parser('resolve', help='Show every stop at its working-copy location')
    p.add_argument('--json', action='store_true', dest='as_json', help='Output as JSON')

    p = subparsers.add_parser('check', help='Report problems with the tour (exit 1 if any)')
    p.add_argument('--json', action='store_true', dest='as_json', help='Output as JSON')

    p = subparsers.add_parser('dump', help='Print the tour file')
    return p


def handle(cli, args):
    """Handle sync command dispatch."""
    cmd = cli._sync_cmd
    if args.command == 'refresh':
        cmd.refresh(args.repository)
    elif args.command == 'resolve':
        cmd.resolve(as_json=args.as_json)
    elif args.command == 'check':
        return cmd.check(as_json=args.as_json)
    elif args.command == 'dump':
        cmd.dump()
    return 0
