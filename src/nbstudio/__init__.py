"""NB Studio - Family image editing and generation with Google Gemini."""

__version__ = "0.3.0"

from nbstudio.core.config import StudioConfig, config
from nbstudio.core.phases import Phase
from nbstudio.core.progress import ProgressEstimator

__all__ = [
    "Phase",
    "ProgressEstimator",
    "StudioConfig",
    "config",
]
