"""
Inference engine boundary.

The orchestrator talks to any object implementing ``InferenceEngine``; the
default implementation runs a faster-whisper model and reports speaker turns
when the model emits the tinydiarize turn token.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Union

import numpy as np

from .compute_device import resolve_compute_type, resolve_device
from .errors import InferenceError, ModelError

logger = logging.getLogger(__name__)

ENGINE_SAMPLE_RATE = 16000

# Token tinydiarize checkpoints emit where the speaker changes.
SPEAKER_TURN_TOKEN = "<|startoflm|>"


@dataclass(frozen=True)
class InferenceParams:
    """Options passed to a single engine call."""

    initial_prompt: Optional[str] = None
    speaker_turns: bool = True
    language: Optional[str] = None
    beam_size: int = 5
    progress_callback: Optional[Callable[[int], None]] = None


@dataclass(frozen=True)
class EngineSegment:
    """One raw segment as emitted by the engine."""

    text: str
    start: float
    end: float
    speaker_turn_next: bool = False


class InferenceEngine(Protocol):
    """Contract for speech-to-text engines."""

    def transcribe(self, samples: np.ndarray, params: InferenceParams) -> Sequence[EngineSegment]:
        """Decode 16 kHz float32 mono samples; blocks until decoding finishes."""
        ...


class FasterWhisperEngine:
    """InferenceEngine backed by ``faster_whisper.WhisperModel``."""

    def __init__(self, model, speaker_turn_token_id: Optional[int] = None):
        self.model = model
        self.speaker_turn_token_id = speaker_turn_token_id

    @classmethod
    def load(cls, model_path: Union[str, Path], device: str = "auto",
             compute_type: str = "auto") -> "FasterWhisperEngine":
        """Load a CTranslate2 Whisper model from ``model_path``."""
        model_path = Path(model_path)
        if not model_path.exists():
            raise ModelError(f"model does not exist: {model_path}")

        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise ModelError("faster-whisper is not installed") from e

        resolved_device = resolve_device(device)
        resolved_compute = resolve_compute_type(compute_type, resolved_device)

        logger.info(f"Loading faster-whisper model: {model_path} "
                    f"({resolved_device}, {resolved_compute})")
        try:
            model = WhisperModel(
                str(model_path),
                device=resolved_device,
                compute_type=resolved_compute,
            )
        except Exception as e:
            raise ModelError(f"failed to load model {model_path}: {e}") from e

        token_id = cls._lookup_turn_token(model)
        if token_id is None:
            logger.info("Model vocabulary has no speaker-turn token; turns will not be reported")
        logger.info("Model loaded successfully")
        return cls(model, speaker_turn_token_id=token_id)

    @staticmethod
    def _lookup_turn_token(model) -> Optional[int]:
        tokenizer = getattr(model, "hf_tokenizer", None)
        if tokenizer is None:
            return None
        return tokenizer.token_to_id(SPEAKER_TURN_TOKEN)

    def transcribe(self, samples: np.ndarray, params: InferenceParams) -> List[EngineSegment]:
        detect_turns = params.speaker_turns and self.speaker_turn_token_id is not None
        # Any non-empty suppress list gets <|startoflm|> added by faster-whisper.
        suppress_tokens = [] if detect_turns else [-1]
        try:
            segments, info = self.model.transcribe(
                samples,
                language=params.language,
                initial_prompt=params.initial_prompt,
                beam_size=params.beam_size,
                suppress_tokens=suppress_tokens,
            )
            duration = float(getattr(info, "duration", 0.0) or 0.0)

            results = []
            for segment in segments:
                turn = detect_turns and self.speaker_turn_token_id in (segment.tokens or [])
                results.append(EngineSegment(
                    text=segment.text,
                    start=float(segment.start),
                    end=float(segment.end),
                    speaker_turn_next=bool(turn),
                ))
                if params.progress_callback and duration > 0:
                    params.progress_callback(min(100, int(segment.end / duration * 100)))
        except Exception as e:
            raise InferenceError(f"transcription failed: {e}") from e

        if params.progress_callback:
            params.progress_callback(100)
        return results
