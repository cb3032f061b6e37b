"""
Tests for inference and compute_device modules.
"""

from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
import pytest

from turn_transcript.compute_device import (
    cuda_device_count,
    is_cuda_available,
    resolve_compute_type,
    resolve_device,
)
from turn_transcript.errors import InferenceError, ModelError
from turn_transcript.inference import (
    SPEAKER_TURN_TOKEN,
    EngineSegment,
    FasterWhisperEngine,
    InferenceParams,
)

TURN_ID = 50360


class _FakeSegment:
    def __init__(self, start, end, text, tokens):
        self.start = start
        self.end = end
        self.text = text
        self.tokens = tokens


class _FakeTokenizer:
    def token_to_id(self, token):
        return TURN_ID if token == SPEAKER_TURN_TOKEN else None


class _FakeWhisperModel:
    def __init__(self, model_path=None, device=None, compute_type=None, segments=None, error=None):
        self.model_path = model_path
        self.device = device
        self.compute_type = compute_type
        self.hf_tokenizer = _FakeTokenizer()
        self.segments = segments or [
            _FakeSegment(0.0, 2.0, " Hi there.", [50364, 2421, TURN_ID, 50464]),
            _FakeSegment(2.0, 4.0, " Hello.", [50464, 2425, 50564]),
        ]
        self.error = error
        self.calls = []

    def transcribe(self, audio, **kwargs):
        self.calls.append((audio, kwargs))
        if self.error:
            raise self.error
        return iter(self.segments), SimpleNamespace(duration=4.0)


class TestFasterWhisperEngine:
    """Test cases for FasterWhisperEngine."""

    def test_segments_and_turns(self):
        model = _FakeWhisperModel()
        engine = FasterWhisperEngine(model, speaker_turn_token_id=TURN_ID)
        samples = np.zeros(16000, dtype=np.float32)

        result = engine.transcribe(samples, InferenceParams(initial_prompt="experience"))

        assert result == [
            EngineSegment(" Hi there.", 0.0, 2.0, speaker_turn_next=True),
            EngineSegment(" Hello.", 2.0, 4.0, speaker_turn_next=False),
        ]
        audio, kwargs = model.calls[0]
        assert audio is samples
        assert kwargs["initial_prompt"] == "experience"
        assert kwargs["language"] is None

    def test_turn_token_not_suppressed(self):
        from faster_whisper.transcribe import get_suppressed_tokens

        tokenizer = SimpleNamespace(
            non_speech_tokens=(1, 2, 7),
            transcribe=50359,
            translate=50358,
            sot=50258,
            sot_prev=50361,
            sot_lm=TURN_ID,
            no_speech=50362,
            no_timestamps=50363,
            eot=50257,
        )
        model = _FakeWhisperModel()
        engine = FasterWhisperEngine(model, speaker_turn_token_id=TURN_ID)

        engine.transcribe(np.zeros(10, dtype=np.float32), InferenceParams(speaker_turns=True))

        _, kwargs = model.calls[0]
        suppressed = get_suppressed_tokens(tokenizer, list(kwargs["suppress_tokens"]))
        assert TURN_ID not in suppressed

    def test_default_suppression_without_turns(self):
        model = _FakeWhisperModel()
        engine = FasterWhisperEngine(model, speaker_turn_token_id=TURN_ID)

        engine.transcribe(np.zeros(10, dtype=np.float32), InferenceParams(speaker_turns=False))

        _, kwargs = model.calls[0]
        assert kwargs["suppress_tokens"] == [-1]

    def test_turns_disabled(self):
        engine = FasterWhisperEngine(_FakeWhisperModel(), speaker_turn_token_id=TURN_ID)

        result = engine.transcribe(np.zeros(10, dtype=np.float32),
                                   InferenceParams(speaker_turns=False))

        assert not any(segment.speaker_turn_next for segment in result)

    def test_no_turn_token_in_vocabulary(self):
        engine = FasterWhisperEngine(_FakeWhisperModel(), speaker_turn_token_id=None)

        result = engine.transcribe(np.zeros(10, dtype=np.float32), InferenceParams())

        assert not any(segment.speaker_turn_next for segment in result)

    def test_progress_reported(self):
        percents = []
        engine = FasterWhisperEngine(_FakeWhisperModel())

        engine.transcribe(np.zeros(10, dtype=np.float32),
                          InferenceParams(progress_callback=percents.append))

        assert percents == [50, 100, 100]

    def test_engine_failure(self):
        engine = FasterWhisperEngine(_FakeWhisperModel(error=RuntimeError("CUDA out of memory")))

        with pytest.raises(InferenceError, match="out of memory"):
            engine.transcribe(np.zeros(10, dtype=np.float32), InferenceParams())

    def test_load_missing_model(self, temp_dir):
        with pytest.raises(ModelError):
            FasterWhisperEngine.load(temp_dir / "missing-model")

    def test_load(self, model_dir):
        with patch('faster_whisper.WhisperModel', _FakeWhisperModel):
            engine = FasterWhisperEngine.load(model_dir, device="cpu")

        assert engine.model.model_path == str(model_dir)
        assert engine.model.device == "cpu"
        assert engine.model.compute_type == "int8"
        assert engine.speaker_turn_token_id == TURN_ID

    def test_load_failure(self, model_dir):
        with patch('faster_whisper.WhisperModel', side_effect=RuntimeError("Unable to open file 'model.bin'")):
            with pytest.raises(ModelError, match="model.bin"):
                FasterWhisperEngine.load(model_dir, device="cpu")


class TestComputeDevice:
    """Test cases for device resolution."""

    def test_cpu(self):
        assert resolve_device("cpu", cuda_available_checker=lambda: True) == "cpu"

    def test_auto(self):
        assert resolve_device("auto", cuda_available_checker=lambda: True) == "cuda"
        assert resolve_device("auto", cuda_available_checker=lambda: False) == "cpu"

    def test_cuda_unavailable(self):
        with pytest.raises(ModelError):
            resolve_device("cuda", cuda_available_checker=lambda: False)

    def test_unknown_device(self):
        with pytest.raises(ModelError):
            resolve_device("tpu")

    def test_compute_type(self):
        assert resolve_compute_type("auto", "cuda") == "float16"
        assert resolve_compute_type("auto", "cpu") == "int8"
        assert resolve_compute_type("float32", "cuda") == "float32"

    @patch('turn_transcript.compute_device.ctranslate2.get_cuda_device_count', return_value=2)
    def test_cuda_probe(self, mock_count):
        assert cuda_device_count() == 2
        assert is_cuda_available() is True

    @patch('turn_transcript.compute_device.ctranslate2.get_cuda_device_count',
           side_effect=RuntimeError("driver missing"))
    def test_cuda_probe_failure(self, mock_count):
        assert cuda_device_count() == 0
        assert is_cuda_available() is False
