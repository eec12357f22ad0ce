"""tariffstack - tariff schedule hierarchy and duty stack resolution."""

from . import tariff
from .version import __version__

__all__ = [
    "tariff",
    "__version__",
]
