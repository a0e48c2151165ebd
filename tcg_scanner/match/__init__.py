"""
Match module for candidate resolution and scan session state.
"""

from .resolution import ScanSession, ScanState, resolve

__all__ = [
    "ScanSession",
    "ScanState",
    "resolve"
]
