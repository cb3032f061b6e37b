#!/usr/bin/env python3
"""
Record-then-transcribe engine.
Loads a WAV file, brings it to the engine's rate, runs one inference call on
the whole buffer and rebuilds a speaker-segmented transcript from the result.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from .config import DEFAULT_PROMPT
from .errors import FormatError, InferenceError, ModelError
from .inference import ENGINE_SAMPLE_RATE, FasterWhisperEngine, InferenceEngine, InferenceParams
from .logger import format_segment
from .resampler import resample
from .wav_codec import read_wav

logger = logging.getLogger(__name__)

SPEAKER_TURN_MARKER = "-"

EngineFactory = Callable[[Path], InferenceEngine]


@dataclass(frozen=True)
class TranscriptSegment:
    """A span of transcribed text with timestamps in seconds."""

    text: str
    start_time: float
    end_time: float
    speaker_turn_after: bool = False

    def __post_init__(self):
        text = (self.text or "").strip()
        if not text:
            raise ValueError("segment text is empty")
        if self.start_time > self.end_time:
            raise ValueError(f"segment starts after it ends ({self.start_time} > {self.end_time})")
        object.__setattr__(self, "text", text)


@dataclass(frozen=True)
class Transcript:
    """Ordered segments of one transcription call."""

    segments: Tuple[TranscriptSegment, ...] = ()
    inference_seconds: float = field(default=0.0, compare=False)

    @property
    def text(self) -> str:
        """Segments joined by spaces, with a marker after each speaker turn."""
        parts = []
        for segment in self.segments:
            parts.append(segment.text)
            if segment.speaker_turn_after:
                parts.append(SPEAKER_TURN_MARKER)
        return " ".join(parts)

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)


def to_float_audio(samples: np.ndarray) -> np.ndarray:
    """int16 samples -> float32 in [-1, 1) as the engine expects."""
    return np.asarray(samples, dtype=np.int16).astype(np.float32) / 32768.0


class TranscriptionOrchestrator:
    """Runs transcriptions against one model, one call at a time."""

    def __init__(
        self,
        model_path: Union[str, Path],
        target_rate: int = ENGINE_SAMPLE_RATE,
        initial_prompt: Optional[str] = DEFAULT_PROMPT,
        speaker_turns: bool = True,
        language: Optional[str] = None,
        engine_factory: Optional[EngineFactory] = None,
        progress_callback: Optional[Callable[[int], None]] = None,
        max_workers: int = 1,
    ):
        self.model_path = Path(model_path)
        self.target_rate = target_rate
        self.initial_prompt = initial_prompt
        self.speaker_turns = speaker_turns
        self.language = language
        self.engine_factory = engine_factory or FasterWhisperEngine.load
        self.progress_callback = progress_callback or self._log_progress

        self.engine: Optional[InferenceEngine] = None
        # Serializes model loading and inference on the single model handle.
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="transcription")

    @staticmethod
    def _log_progress(percent: int):
        logger.debug(f"Progress: {percent}%")

    def _check_model_path(self):
        if not self.model_path.exists():
            raise ModelError(f"model does not exist: {self.model_path}")

    def load_model(self) -> InferenceEngine:
        """Load the engine once; later calls reuse it."""
        with self._lock:
            return self._load_model_locked()

    def _load_model_locked(self) -> InferenceEngine:
        if self.engine is not None:
            return self.engine

        self._check_model_path()
        try:
            self.engine = self.engine_factory(self.model_path)
        except ModelError:
            raise
        except Exception as e:
            raise ModelError(f"failed to initialize model {self.model_path}: {e}") from e
        return self.engine

    def _prepare_audio(self, audio_path: Union[str, Path]) -> np.ndarray:
        buffer = read_wav(audio_path)
        if len(buffer) == 0:
            raise FormatError(f"{audio_path} contains no samples")

        samples = buffer.samples
        if buffer.sample_rate != self.target_rate:
            logger.info(f"Resampling {buffer.sample_rate} Hz -> {self.target_rate} Hz")
            samples = resample(samples, buffer.sample_rate, self.target_rate)

        return to_float_audio(samples)

    def _build_segments(self, raw) -> List[TranscriptSegment]:
        segments: List[TranscriptSegment] = []
        for i in range(len(raw)):
            try:
                item = raw[i]
                text = str(item.text)
                start, end = float(item.start), float(item.end)
                turn = bool(item.speaker_turn_next)
            except Exception as e:
                raise InferenceError(f"failed to retrieve segment {i}: {e}") from e

            if not text.strip():
                logger.debug(f"Skipping empty segment {i}")
                if turn and segments:
                    last = segments[-1]
                    segments[-1] = TranscriptSegment(last.text, last.start_time,
                                                     last.end_time, speaker_turn_after=True)
                elif turn:
                    logger.debug(f"Dropping speaker turn after empty segment {i}: "
                                 f"no earlier segment to carry it")
                continue

            try:
                segment = TranscriptSegment(text, start, end, speaker_turn_after=turn)
            except ValueError as e:
                raise InferenceError(f"invalid segment {i}: {e}") from e

            logger.info(format_segment(segment))
            segments.append(segment)
        return segments

    def transcribe(self, audio_path: Union[str, Path]) -> Transcript:
        """
        Transcribe a WAV file. Blocks until the engine returns.

        Raises:
            ModelError: The model is missing or fails to initialize.
            AudioIOError, FormatError: The audio cannot be read.
            InferenceError: The engine call or segment retrieval failed.
        """
        self._check_model_path()
        samples = self._prepare_audio(audio_path)

        params = InferenceParams(
            initial_prompt=self.initial_prompt,
            speaker_turns=self.speaker_turns,
            language=self.language,
            progress_callback=self.progress_callback,
        )

        with self._lock:
            engine = self._load_model_locked()

            logger.info(f"Transcribing {audio_path} ({len(samples) / self.target_rate:.1f}s)")
            started = time.perf_counter()
            try:
                raw = engine.transcribe(samples, params)
            except InferenceError:
                raise
            except Exception as e:
                raise InferenceError(f"transcription failed: {e}") from e
            elapsed = time.perf_counter() - started

        segments = self._build_segments(raw)
        logger.info(f"Transcription took {elapsed * 1000:.0f}ms ({len(segments)} segments)")
        return Transcript(segments=tuple(segments), inference_seconds=elapsed)

    def submit(self, audio_path: Union[str, Path]) -> "Future[Transcript]":
        """Run ``transcribe`` on the background worker."""
        return self._executor.submit(self.transcribe, audio_path)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()


def transcribe(audio_path: Union[str, Path], model_path: Union[str, Path],
               target_rate: int = ENGINE_SAMPLE_RATE, **kwargs) -> Transcript:
    """One-shot transcription of ``audio_path`` with the model at ``model_path``."""
    with TranscriptionOrchestrator(model_path, target_rate=target_rate, **kwargs) as orchestrator:
        return orchestrator.transcribe(audio_path)
