"""Client-side flows that pair a remote call with simulated progress."""

from nbstudio.ui.flow import run_with_progress

__all__ = ["run_with_progress"]
