"""Version information for mailwire."""

__version__ = "0.1.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Release information
__title__ = "mailwire"
__description__ = "MIME message encoder and SMTP sender"
__license__ = "MIT"


def get_version() -> str:
    """Return the current version string."""
    return __version__
