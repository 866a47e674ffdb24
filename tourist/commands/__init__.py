"""
Commands — Modular CLI command implementations with self-registration

Each command module:
1. Defines XxxCommand class (handler implementation)
2. Exports register_parser(subparsers) to configure its argparse
3. Exports handle(cli, args) to dispatch to handler methods

Modules that serve several subcommands list them in COMMAND_NAMES.
"""

import importlib
import logging
from typing import Any, Callable, Dict

from .base import BaseCommand

logger = logging.getLogger(__name__)

# Command modules that participate in auto-registration
# Order determines help display order
COMMAND_MODULES = [
    # Lifecycle
    'init_cmd',
    # Editing
    'stop_cmd',
    # Tracking
    'sync_cmd',
    # Configuration
    'map_cmd',
]

# Handler registry: command_name -> handle function
_handlers: Dict[str, Callable] = {}


def register_all(subparsers) -> None:
    """
    Discover and register all command parsers.

    Imports each module in COMMAND_MODULES and calls its register_parser()
    function. Also registers the handle() function for dispatch.

    Args:
        subparsers: argparse subparsers object from main parser
    """
    _handlers.clear()

    for module_name in COMMAND_MODULES:
        module = importlib.import_module(f'.{module_name}', __package__)
        module.register_parser(subparsers)

        # Derive from module name: 'init_cmd' -> 'init'
        cmd_name = getattr(module, 'COMMAND_NAME', module_name.replace('_cmd', ''))
        for name in getattr(module, 'COMMAND_NAMES', [cmd_name]):
            _handlers[name] = module.handle
    logger.debug("Registered commands: %s", ", ".join(_handlers))


def dispatch(command: str, cli: Any, args: Any) -> Any:
    """
    Dispatch command to its registered handler.

    Args:
        command: Command name from args.command
        cli: TouristCLI instance
        args: Parsed argparse arguments

    Returns:
        Result from handler (if any)

    Raises:
        KeyError: If command not registered
    """
    if command not in _handlers:
        raise KeyError(f"Unknown command: {command}. Available: {list(_handlers.keys())}")

    return _handlers[command](cli, args)


def get_registered_commands() -> list:
    """Get list of registered command names."""
    return list(_handlers.keys())


__all__ = ['BaseCommand', 'register_all', 'dispatch', 'get_registered_commands']
