# Keep this TINY so importing the package never drags in heavy deps.
from . import lib  # so: from modules.hiring_watch import lib

__all__ = ["lib"]
