"""Doomsday Countdown - 1000-day countdown with AI daily content and community chat"""

from __future__ import annotations

__version__ = "1.0.0"
