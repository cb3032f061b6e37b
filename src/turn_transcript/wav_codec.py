"""
WAV container codec restricted to mono, 16-bit signed integer PCM.
Reads with strict format validation and writes through a buffered writer
that the capture callback can feed without touching the disk.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import soundfile as sf

from .errors import AudioIOError, FormatError, StateError

logger = logging.getLogger(__name__)

INT16_MIN = -32768
INT16_MAX = 32767

_WAV_FORMATS = ("WAV", "WAVEX")
_PCM_BITS = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
}
_FLOAT_BITS = {"FLOAT": 32, "DOUBLE": 64}

PathLike = Union[str, Path]


def _as_int16(samples) -> np.ndarray:
    """Coerce a sample sequence to int16, rejecting out-of-range values."""
    array = np.asarray(samples)
    if array.dtype == np.int16:
        return array
    if array.size and not np.issubdtype(array.dtype, np.integer):
        raise FormatError(f"expected integer samples, got {array.dtype}")
    if array.size and (array.min() < INT16_MIN or array.max() > INT16_MAX):
        raise FormatError("sample values outside the signed 16-bit range")
    return array.astype(np.int16)


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Immutable mono 16-bit PCM samples plus their sample rate."""

    samples: np.ndarray
    sample_rate: int
    channels: int = 1
    bit_depth: int = 16

    def __post_init__(self):
        if self.channels != 1:
            raise FormatError(f"expected mono audio, got {self.channels} channels")
        if self.bit_depth != 16:
            raise FormatError(f"expected 16 bits per sample, got {self.bit_depth}")
        if self.sample_rate <= 0:
            raise FormatError(f"invalid sample rate: {self.sample_rate}")

        samples = np.array(_as_int16(self.samples), dtype=np.int16).reshape(-1)
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return len(self) / self.sample_rate


def read_wav(path: PathLike, expected_rate: Optional[int] = None) -> AudioBuffer:
    """
    Read a mono 16-bit PCM WAV file.

    Args:
        path: File to read.
        expected_rate: Strict-rate mode. When set, a header rate that differs
            from this value is rejected.

    Raises:
        AudioIOError: The file is missing or cannot be opened as audio.
        FormatError: The container is not mono 16-bit integer PCM WAV, or the
            rate differs from ``expected_rate``.
    """
    path = Path(path)
    if not path.is_file():
        raise AudioIOError(f"audio file does not exist: {path}")

    try:
        info = sf.info(str(path))
    except (sf.LibsndfileError, OSError) as e:
        raise AudioIOError(f"cannot read audio file {path}: {e}") from e

    if info.format not in _WAV_FORMATS:
        raise FormatError(f"expected a WAV container, got {info.format}")

    problems = []
    if info.channels != 1:
        problems.append(f"expected mono audio, got {info.channels} channels")
    if info.subtype not in _PCM_BITS:
        problems.append(f"expected integer sample format, got {info.subtype}")
    bits = _PCM_BITS.get(info.subtype, _FLOAT_BITS.get(info.subtype))
    if bits != 16:
        problems.append(f"expected 16 bits per sample, got {bits or info.subtype}")
    if problems:
        raise FormatError(f"{path}: " + "; ".join(problems))

    if expected_rate is not None and info.samplerate != expected_rate:
        raise FormatError(
            f"{path}: expected sample rate {expected_rate} Hz, got {info.samplerate} Hz"
        )

    try:
        samples, sample_rate = sf.read(str(path), dtype="int16", always_2d=False)
    except (sf.LibsndfileError, OSError) as e:
        raise AudioIOError(f"failed to decode {path}: {e}") from e

    logger.debug(f"Read {len(samples)} samples at {sample_rate} Hz from {path}")
    return AudioBuffer(samples=samples, sample_rate=int(sample_rate))


class WavWriter:
    """
    16-bit PCM WAV writer.

    Samples are appended in memory and written together with the final header
    by ``finalize()``; appends never perform file I/O.
    """

    def __init__(self, path: PathLike, channels: int = 1, sample_rate: int = 16000):
        if channels < 1:
            raise FormatError(f"invalid channel count: {channels}")
        if sample_rate <= 0:
            raise FormatError(f"invalid sample rate: {sample_rate}")

        self.path = Path(path)
        self.channels = channels
        self.sample_rate = sample_rate

        self._chunks: List[np.ndarray] = []
        self._singles: List[int] = []
        self._pending = 0
        self.finalized = False
        self.errored = False

        if not self.path.parent.is_dir():
            raise AudioIOError(f"output directory does not exist: {self.path.parent}")
        try:
            self._file = sf.SoundFile(
                str(self.path),
                mode="w",
                samplerate=sample_rate,
                channels=channels,
                format="WAV",
                subtype="PCM_16",
            )
        except (sf.LibsndfileError, OSError) as e:
            raise AudioIOError(f"cannot create {self.path}: {e}") from e

        logger.debug(f"Opened WAV writer {self.path} ({channels} ch, {sample_rate} Hz)")

    @property
    def samples_written(self) -> int:
        """Samples appended so far (across all channels)."""
        return self._pending

    def _check_writable(self):
        if self.finalized:
            raise AudioIOError(f"writer for {self.path} is already finalized")
        if self.errored:
            raise AudioIOError(f"writer for {self.path} is in an error state")

    def write_sample(self, value: int):
        """Append one sample."""
        self._check_writable()
        value = int(value)
        if value < INT16_MIN or value > INT16_MAX:
            raise ValueError(f"sample {value} outside the signed 16-bit range")
        self._singles.append(value)
        self._pending += 1

    def _flush_singles(self):
        if self._singles:
            self._chunks.append(np.array(self._singles, dtype=np.int16))
            self._singles = []

    def write_samples(self, block: np.ndarray):
        """Append a block of int16 samples (interleaved when multi-channel)."""
        self._check_writable()
        block = np.array(block, dtype=np.int16).reshape(-1)
        if block.size:
            self._flush_singles()
            self._chunks.append(block)
            self._pending += int(block.size)

    def finalize(self):
        """Write buffered samples and the final header, then close the file."""
        if self.finalized:
            raise StateError(f"writer for {self.path} was already finalized")
        self.finalized = True

        try:
            self._flush_singles()
            data = np.concatenate(self._chunks) if self._chunks else np.zeros(0, dtype=np.int16)
            usable = data.size - data.size % self.channels
            if usable != data.size:
                logger.warning(f"Dropping {data.size - usable} samples of an incomplete frame")
            data = data[:usable]
            if self.channels > 1:
                data = data.reshape(-1, self.channels)
            self._file.write(data)
        except (sf.LibsndfileError, OSError) as e:
            self.errored = True
            raise AudioIOError(f"failed to flush {self.path}: {e}") from e
        finally:
            self._chunks = []
            self._singles = []
            self._file.close()

        logger.info(f"Finalized {self.path}: {self._pending} samples at {self.sample_rate} Hz")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.finalized:
            self.finalize()


def create_writer(path: PathLike, channels: int = 1, sample_rate: int = 16000) -> WavWriter:
    """Create (or truncate) a 16-bit PCM WAV file for writing."""
    return WavWriter(path, channels=channels, sample_rate=sample_rate)


def write_wav(path: PathLike, buffer: AudioBuffer):
    """Write a whole buffer to ``path``."""
    with create_writer(path, channels=1, sample_rate=buffer.sample_rate) as writer:
        writer.write_samples(buffer.samples)
