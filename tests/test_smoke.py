"""Smoke tests for the pygame UI.

These check that the main loop can initialise and run a handful of frames
under the SDL dummy video driver. Rendering correctness is not exercised.
"""

from __future__ import annotations

import os
from pathlib import Path

# Use the dummy drivers before importing pygame or the application
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def test_app_runs_headless(tmp_path: Path) -> None:
    """Ensure the application can start and run a few frames headlessly."""
    # Import inside the test so that environment variables take effect
    from synapse_studio.app import run

    exit_code = run(max_frames=3, store_path=tmp_path / "progress.sqlite3")
    assert exit_code == 0
