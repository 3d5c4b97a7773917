"""Phase definitions and the per-mode phase sequences.

A :class:`Phase` is one named step of a generation request with a hand-tuned
duration estimate.  Each creative mode owns a fixed, ordered sequence of
phases which the progress estimator walks through while the remote call is in
flight.  The durations reflect the typical latency profile of each mode: the
flipbook issues four sequential Gemini calls, so its sequence is much longer
than the single-call modes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Phase:
    """A named, ordered stage of an operation used purely for progress display.

    Attributes:
        id: Identifier, unique within one sequence.
        label: Display text.
        estimated_duration_ms: Expected duration in milliseconds.
    """

    id: str
    label: str
    estimated_duration_ms: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "estimated_duration_ms": self.estimated_duration_ms,
        }


SINGLE_EDIT_PHASES: tuple[Phase, ...] = (
    Phase("upload", "Uploading image...", 1500),
    Phase("analyze", "Analysing image...", 1800),
    Phase("prompt", "Processing prompt...", 1200),
    Phase("generate", "Generating image with Gemini...", 6500),
    Phase("optimize", "Optimising result...", 1200),
    Phase("complete", "Done", 400),
)

FLIPBOOK_PHASES: tuple[Phase, ...] = (
    Phase("plan", "Planning the story...", 1500),
    Phase("frame1", "Generating frame 1/4...", 3600),
    Phase("frame2", "Generating frame 2/4...", 3200),
    Phase("frame3", "Generating frame 3/4...", 3200),
    Phase("frame4", "Generating frame 4/4...", 3200),
    Phase("compile", "Putting the finishing touches...", 1200),
    Phase("complete", "Done", 400),
)

FREESTYLE_PHASES: tuple[Phase, ...] = (
    Phase("gather", "Loading reference images...", 1600),
    Phase("plan", "Building the edit plan...", 1800),
    Phase("prompt", "Interpreting instructions...", 1500),
    Phase("generate", "Generating image with Gemini...", 6200),
    Phase("refine", "Refining the result...", 1400),
    Phase("complete", "Done", 400),
)

PROMPT_ONLY_PHASES: tuple[Phase, ...] = (
    Phase("plan", "Imagining the scene...", 1400),
    Phase("prompt", "Reading instructions...", 1600),
    Phase("generate", "Generating image with Gemini...", 6400),
    Phase("refine", "Polishing the result...", 1200),
    Phase("complete", "Done", 400),
)

ICON_PHASES: tuple[Phase, ...] = (
    Phase("analyze", "Analysing contact details...", 1200),
    Phase("fetch-url", "Fetching information from URL...", 1800),
    Phase("build-prompt", "Building the design plan...", 1200),
    Phase("generate", "Generating icon with Gemini...", 6000),
    Phase("polish", "Polishing...", 1000),
    Phase("complete", "Done", 400),
)

# Mode name -> phase sequence.  Mode names match the CLI subcommands.
PHASE_SEQUENCES: dict[str, tuple[Phase, ...]] = {
    "edit": SINGLE_EDIT_PHASES,
    "flipbook": FLIPBOOK_PHASES,
    "freestyle": FREESTYLE_PHASES,
    "prompt": PROMPT_ONLY_PHASES,
    "icon": ICON_PHASES,
}


def get_phases(mode: str) -> tuple[Phase, ...]:
    """Return the phase sequence for a creative mode.

    Args:
        mode: One of the keys of :data:`PHASE_SEQUENCES`.

    Returns:
        The mode's ordered phase tuple.

    Raises:
        KeyError: If the mode is unknown.
    """
    try:
        return PHASE_SEQUENCES[mode]
    except KeyError:
        raise KeyError(f"Unknown creative mode: {mode!r}") from None
