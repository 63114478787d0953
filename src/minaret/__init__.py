"""Minaret - prayer-time audio interruption engine.

Minaret coordinates timed interruptions of an audio stream:
- Fades out and pauses playback ahead of each prayer time
- Plays the Azan, then resumes, switches to alternate content or stays silent
- Falls back to a looping track while the stream is buffering
- Ducks the volume for spoken announcements

Usage:
    python -m minaret --profile dev --mock-audio
    python -m minaret --config config/prod.yaml --dry-run
"""

__version__ = "0.1.0"

from .config import MinaretConfig
from .config.loader import load_config
from .engine import InterruptionEngine

__all__ = [
    "InterruptionEngine",
    "MinaretConfig",
    "__version__",
    "load_config",
]
