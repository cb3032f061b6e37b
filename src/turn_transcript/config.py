"""Application configuration shared by the command surface."""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_OUTPUT = "output.wav"
DEFAULT_MAX_DURATION = 10.0
DEFAULT_TARGET_RATE = 16000
DEFAULT_PROMPT = "experience"

ENV_MODEL = "TURN_TRANSCRIPT_MODEL"
ENV_OUTPUT = "TURN_TRANSCRIPT_OUTPUT"
ENV_MAX_DURATION = "TURN_TRANSCRIPT_MAX_DURATION"


@dataclass(frozen=True)
class AppConfig:
    """Recording and transcription options."""

    output_path: Path = Path(DEFAULT_OUTPUT)
    max_duration: float = DEFAULT_MAX_DURATION
    input_device: Optional[int] = None
    model_path: Optional[Path] = None
    target_rate: int = DEFAULT_TARGET_RATE
    initial_prompt: Optional[str] = DEFAULT_PROMPT
    speaker_turns: bool = True
    language: Optional[str] = None
    device: str = "auto"
    compute_type: str = "auto"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Defaults, overridden by ``TURN_TRANSCRIPT_*`` environment variables."""
        environ = os.environ if environ is None else environ
        config = cls()

        if environ.get(ENV_MODEL):
            config = replace(config, model_path=Path(environ[ENV_MODEL]))
        if environ.get(ENV_OUTPUT):
            config = replace(config, output_path=Path(environ[ENV_OUTPUT]))
        if environ.get(ENV_MAX_DURATION):
            raw = environ[ENV_MAX_DURATION]
            try:
                duration = float(raw)
            except ValueError:
                raise ValueError(f"{ENV_MAX_DURATION} must be a number, got {raw!r}") from None
            if duration <= 0:
                raise ValueError(f"{ENV_MAX_DURATION} must be positive, got {raw!r}")
            config = replace(config, max_duration=duration)

        return config

    def with_overrides(self, **overrides) -> "AppConfig":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
