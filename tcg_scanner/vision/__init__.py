"""Card identification from photos via hosted vision and recognition APIs."""

from .identify import IdentifyOutcome, VisionIdentifier
from .ximilar import XimilarRecognizer

__all__ = ["IdentifyOutcome", "VisionIdentifier", "XimilarRecognizer"]
