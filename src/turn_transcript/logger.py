"""
Logging utilities for turn_transcript.
Handles logging setup and console formatting of transcript segments and
inference progress.
"""

import logging
import threading
from typing import Optional, TextIO
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(verbose: bool = False):
    """Configure root logging the same way for every entry point."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def format_time(seconds: float) -> str:
    """Format time in HH:MM:SS.ms format."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    seconds = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:06.3f}"


def format_segment(segment) -> str:
    """``[start - end]: text`` for one transcript segment."""
    line = f"[{format_time(segment.start_time)} - {format_time(segment.end_time)}]: {segment.text}"
    if segment.speaker_turn_after:
        line += " (speaker turn)"
    return line


class ProgressPrinter:
    """Prints inference progress once per distinct percentage."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.last_percent: Optional[int] = None
        self.lock = threading.Lock()

    def __call__(self, percent: int):
        with self.lock:
            if percent == self.last_percent:
                return
            self.last_percent = percent
        print(f"Progress: {percent}%", file=self.stream)
