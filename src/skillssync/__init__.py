"""skillssync: keep agent skill packages in sync across ecosystems."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("skillssync")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
