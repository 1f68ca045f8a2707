"""Secret Santa exchange: profiles, the draw and private notifications."""

__version__ = "0.3.0"
