"""Interactive provisioning for a single-board home server."""

from .resolver import ConfigResolver
from .sequencer import Sequencer

__version__ = "0.1.0"

__all__ = ["ConfigResolver", "Sequencer", "__version__"]
