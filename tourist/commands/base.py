"""
BaseCommand — Shared foundation for all CLI commands

Provides access to CLI resources via composition.
Commands receive the CLI instance and access its resources through properties.
"""

from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from ..cli import TouristCLI
    from ..core.tour import TourFile


class BaseCommand:
    """
    Base class for CLI commands with access to shared resources.

    Commands never build their own store or config; they use the CLI's.
    """

    def __init__(self, cli: 'TouristCLI'):
        """
        Initialize command with CLI instance.

        Args:
            cli: The main TouristCLI instance holding all resources
        """
        self._cli = cli

    @property
    def project_dir(self):
        """Project root directory."""
        return self._cli.project_dir

    @property
    def tour_path(self):
        """Tour file the command operates on."""
        return self._cli.tour_path

    @property
    def config(self):
        """Application configuration."""
        return self._cli.config

    @property
    def config_manager(self):
        """Configuration loader/persister."""
        return self._cli.config_manager

    @property
    def index(self):
        """Repository index (name -> local root)."""
        return self._cli.index

    @property
    def store(self):
        """Tour store performing edits, refresh and resolve."""
        return self._cli.store

    def stop_ref(self, tour: 'TourFile', raw: str) -> Union[int, str]:
        """Interpret a command-line stop reference: an existing id wins over an index."""
        if raw in tour.stop_ids():
            return raw
        if raw.lstrip("-").isdigit():
            return int(raw)
        return raw
