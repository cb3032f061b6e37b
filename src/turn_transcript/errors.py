"""
Error taxonomy for the capture -> resample -> transcribe pipeline.
Every failure the library raises derives from TurnTranscriptError so the
command layer can turn it into a readable message.
"""


class TurnTranscriptError(Exception):
    """Base class for pipeline errors."""


class AudioIOError(TurnTranscriptError, OSError):
    """Filesystem or audio container access failed."""


class FormatError(TurnTranscriptError):
    """Audio violates the mono / 16-bit integer PCM / sample rate constraints."""


class DeviceError(TurnTranscriptError):
    """No usable capture device or configuration."""


class StateError(TurnTranscriptError):
    """Operation not valid in the current state (e.g. double finalize)."""


class ResamplerError(TurnTranscriptError):
    """Degenerate or rejected resampling parameters."""


class ModelError(TurnTranscriptError):
    """Inference model missing or failed to load."""


class InferenceError(TurnTranscriptError):
    """The engine call failed or a segment could not be retrieved."""
