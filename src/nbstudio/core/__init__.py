"""Core functionality for NB Studio.

This module provides the building blocks shared by the HTTP API and the
client:

- **ProgressEstimator**: Simulated progress over a sequence of phases
- **Phase / PHASE_SEQUENCES**: Per-mode phase definitions
- **StudioConfig / config**: Configuration management using Pydantic Settings

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with NBSTUDIO_ in .env files

2. **Progress Layer** (progress.py, phases.py):
   - Timer-driven progress simulation with a completion signal
   - Hand-tuned phase sequences for each creative mode

3. **Request Preparation** (validation.py, prompt_builder.py, presets.py):
   - Upload size and type checks
   - Prompt compilation for every creative mode
   - Curated presets for single-image edits

4. **Remote Collaborators** (gemini_client.py, url_metadata.py):
   - Gemini image generation via google-genai
   - Best-effort scraping of contact URLs

5. **Support Utilities**:
   - image_optimization.py: Pillow-based downscaling before upload

Usage Example
-------------
    from nbstudio.core import ProgressEstimator, get_phases

    estimator = ProgressEstimator(on_complete=lambda: print("done"))
    estimator.start(get_phases("edit"))
"""

from nbstudio.core.config import StudioConfig, config
from nbstudio.core.phases import PHASE_SEQUENCES, Phase, get_phases
from nbstudio.core.progress import (
    EstimatorState,
    InvalidPhaseSequenceError,
    ProgressEstimator,
    ProgressSnapshot,
)

__all__ = [
    "EstimatorState",
    "InvalidPhaseSequenceError",
    "PHASE_SEQUENCES",
    "Phase",
    "ProgressEstimator",
    "ProgressSnapshot",
    "StudioConfig",
    "config",
    "get_phases",
]
