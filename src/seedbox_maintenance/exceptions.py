#!/usr/bin/env python3
"""Exception hierarchy for seedbox maintenance."""


class SeedboxMaintenanceError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(SeedboxMaintenanceError):
    """The configuration could not be loaded or failed validation."""


class InvariantViolation(ConfigError):
    """A rule structure is internally inconsistent (e.g. a clause with no bounds)."""


class SeedboxConnectionError(SeedboxMaintenanceError):
    """The seed-box endpoint could not be reached or refused our login."""


class ProtocolError(SeedboxMaintenanceError):
    """The seed-box answered, but not with something we understand."""


class RPCError(SeedboxMaintenanceError):
    """The seed-box rejected an individual command."""


class MalformedRecordError(ProtocolError):
    """A single torrent record is missing fields or carries invalid values."""

    def __init__(self, message: str, torrent_id: str = ""):
        super().__init__(message)
        self.torrent_id = torrent_id
