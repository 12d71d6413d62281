"""Virtual branches over a single git working directory."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("vbranch")
except PackageNotFoundError:
    # Fallback for development mode
    __version__ = "0.0.0-dev"
