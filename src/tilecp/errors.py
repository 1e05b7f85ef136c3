"""Error types raised while copying tiles."""

from __future__ import annotations


class TileCopyError(RuntimeError):
    """Base class for errors that abort a copy run."""


class ConfigError(TileCopyError):
    """Invalid copy configuration or sources config file."""


class SourceError(TileCopyError):
    """A tile source failed to produce a tile or its metadata."""


class EncodingParseError(SourceError):
    """The accepted-encoding preference could not be parsed."""


class SinkError(TileCopyError):
    """The destination archive rejected a schema, insert, or metadata call."""


class ChannelError(TileCopyError):
    """The hand-off between fetch workers and the writer broke down."""
