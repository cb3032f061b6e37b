"""
Turn Transcript

Records microphone audio to a mono 16-bit PCM WAV file and transcribes it
into timestamped, speaker-segmented text using faster-whisper.
"""

__version__ = "1.0.0"
__description__ = "Record-then-transcribe with speaker-turn segmentation using faster-whisper"

from .audio_capture import AudioCapture, CaptureResult
from .errors import (
    AudioIOError,
    DeviceError,
    FormatError,
    InferenceError,
    ModelError,
    ResamplerError,
    StateError,
    TurnTranscriptError,
)
from .resampler import resample
from .transcription_engine import Transcript, TranscriptSegment, TranscriptionOrchestrator, transcribe
from .wav_codec import AudioBuffer, WavWriter, create_writer, read_wav

__all__ = [
    "AudioBuffer",
    "AudioCapture",
    "AudioIOError",
    "CaptureResult",
    "DeviceError",
    "FormatError",
    "InferenceError",
    "ModelError",
    "ResamplerError",
    "StateError",
    "Transcript",
    "TranscriptSegment",
    "TranscriptionOrchestrator",
    "TurnTranscriptError",
    "WavWriter",
    "create_writer",
    "read_wav",
    "resample",
    "transcribe",
]
