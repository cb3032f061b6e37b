"""
Pytest configuration and fixtures for Turn Transcript tests.
"""

import pytest
import tempfile
import os
import sys
import numpy as np
import soundfile as sf
from pathlib import Path

# Add src to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from turn_transcript.inference import EngineSegment


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_audio_data():
    """Generate one second of a 440 Hz tone as int16 samples."""
    sample_rate = 16000
    duration = 1.0
    frequency = 440

    t = np.linspace(0, duration, int(sample_rate * duration), False)
    audio_data = (np.sin(2 * np.pi * frequency * t) * 0.5 * 32767).astype(np.int16)

    return audio_data, sample_rate


@pytest.fixture
def make_wav(temp_dir):
    """Write a WAV file with soundfile and return its path."""
    def _make(name="audio.wav", samples=None, sample_rate=16000, subtype="PCM_16"):
        if samples is None:
            samples = np.zeros(sample_rate, dtype=np.int16)
        path = temp_dir / name
        sf.write(str(path), samples, sample_rate, format="WAV", subtype=subtype)
        return path
    return _make


@pytest.fixture
def model_dir(temp_dir):
    """An existing (empty) model directory."""
    path = temp_dir / "model"
    path.mkdir()
    return path


class FakeEngine:
    """InferenceEngine double that returns fixed segments."""

    def __init__(self, segments=None, error=None):
        self.segments = segments if segments is not None else []
        self.error = error
        self.calls = []

    def transcribe(self, samples, params):
        self.calls.append((samples, params))
        if params.progress_callback:
            params.progress_callback(50)
            params.progress_callback(100)
        if self.error:
            raise self.error
        return list(self.segments)


@pytest.fixture
def two_speaker_segments():
    """Two segments, the first followed by a speaker turn."""
    return [
        EngineSegment(text=" Hello, how are you?", start=0.0, end=1.5, speaker_turn_next=True),
        EngineSegment(text=" I'm doing well, thanks.", start=1.5, end=3.2, speaker_turn_next=False),
    ]


@pytest.fixture
def fake_engine(two_speaker_segments):
    return FakeEngine(two_speaker_segments)


@pytest.fixture
def audio_device_list():
    """Mock sounddevice device list for testing."""
    return [
        {'name': 'Default Microphone', 'max_input_channels': 1, 'max_output_channels': 0,
         'default_samplerate': 44100.0},
        {'name': 'Default Speakers', 'max_input_channels': 0, 'max_output_channels': 2,
         'default_samplerate': 44100.0},
        {'name': 'USB Headset', 'max_input_channels': 2, 'max_output_channels': 2,
         'default_samplerate': 48000.0},
    ]
