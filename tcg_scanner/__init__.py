"""TCG Scanner - identify, price and cache trading card scans."""

__version__ = "1.0.0"
__author__ = "TCG Scanner Team"
__description__ = "Trading card identification and resolution cache backed by vision and pricing APIs"

from .core.keys import build_key, normalize
from .pipeline import ScanOrchestrator
from .ui.notifier import notifier
from .utils.config import settings

# Core functionality imports
from .utils.log import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__description__",
    # Core components
    "configure_logging",
    "get_logger",
    "settings",
    "build_key",
    "normalize",
    "ScanOrchestrator",
    "notifier",
]
