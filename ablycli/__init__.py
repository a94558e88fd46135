"""ablycli: command-line client for Ably channels, presence and stats."""

from ablycli.runtime.version import VERSION

__version__ = VERSION

__all__ = ["__version__"]
