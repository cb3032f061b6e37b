"""
Microphone capture into a 16-bit PCM WAV file.
One bounded recording session at a time; the real-time callback only appends
to an in-memory writer under a short lock, and a watchdog thread performs the
single stop/finalize when the deadline passes, stop is requested or the
stream fails.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import sounddevice as sd

from .errors import DeviceError, StateError, TurnTranscriptError
from .wav_codec import INT16_MAX, INT16_MIN, WavWriter, create_writer

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    RECORDING = "recording"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class CaptureFormat:
    """Configuration negotiated with the input device."""

    device: Optional[int]
    device_name: str
    channels: int
    sample_rate: int
    sample_format: str = "float32"


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of a finished session."""

    path: Path
    samples_written: int
    sample_rate: int
    error: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.samples_written / self.sample_rate if self.sample_rate else 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def to_pcm16(frames: np.ndarray) -> np.ndarray:
    """Float samples in [-1, 1] -> int16, scaled by 32767 and truncated."""
    scaled = np.clip(np.asarray(frames, dtype=np.float32) * INT16_MAX, INT16_MIN, INT16_MAX)
    return scaled.astype(np.int16)


class SharedWriter:
    """
    Writer handle shared between the audio callback and the session controller.

    Appends and close are mutually exclusive; once closed, the handle drops
    every further append and the underlying writer is finalized exactly once.
    """

    def __init__(self, writer: WavWriter):
        self._writer: Optional[WavWriter] = writer
        self._lock = threading.Lock()
        self._written = 0

    @property
    def closed(self) -> bool:
        return self._writer is None

    @property
    def samples_written(self) -> int:
        return self._written

    def append(self, block: np.ndarray) -> bool:
        """Append one delivered frame. Returns False once the handle is closed."""
        with self._lock:
            if self._writer is None:
                return False
            self._writer.write_samples(block)
            self._written += int(block.size)
            return True

    def close(self):
        """Finalize the writer; a second close raises StateError."""
        with self._lock:
            writer, self._writer = self._writer, None
        if writer is None:
            raise StateError("capture writer was already finalized")
        writer.finalize()


class CaptureSession:
    """One in-progress recording."""

    def __init__(self, capture_format: CaptureFormat, path: Path, writer: SharedWriter,
                 max_duration: float):
        self.format = capture_format
        self.path = path
        self.writer = writer
        self.started_at = time.monotonic()
        self.deadline = self.started_at + max_duration

        self.state = CaptureState.RECORDING
        self.error: Optional[str] = None
        self.stream = None
        self.watchdog: Optional[threading.Thread] = None

        self.stop_event = threading.Event()
        self.finished = threading.Event()

    @property
    def samples_written(self) -> int:
        return self.writer.samples_written

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def request_stop(self, error: Optional[str] = None):
        """Ask the watchdog to stop; the first reported error is kept."""
        if error and self.error is None:
            self.error = error
        self.stop_event.set()

    def on_stream_finished(self):
        if not self.stop_event.is_set():
            self.request_stop("audio stream ended unexpectedly")

    def result(self) -> CaptureResult:
        return CaptureResult(
            path=self.path,
            samples_written=self.samples_written,
            sample_rate=self.format.sample_rate,
            error=self.error,
        )


class AudioCapture:
    """Bounded microphone recording to a WAV file."""

    def __init__(
        self,
        output_path: Union[str, Path] = "output.wav",
        max_duration: float = 10.0,
        device: Optional[int] = None,
        blocksize: int = 0,
    ):
        if max_duration <= 0:
            raise ValueError(f"max_duration must be positive, got {max_duration}")

        self.output_path = Path(output_path)
        self.max_duration = max_duration
        self.device = device
        self.blocksize = blocksize

        self.state = CaptureState.IDLE
        self.session: Optional[CaptureSession] = None
        self._lock = threading.Lock()

    @staticmethod
    def list_audio_devices() -> Dict[str, List[Dict]]:
        """List available input devices."""
        try:
            devices = sd.query_devices()
        except sd.PortAudioError as e:
            raise DeviceError(f"Failed to list audio devices: {e}") from e

        input_devices = []
        for i, device in enumerate(devices):
            if device['max_input_channels'] > 0:
                input_devices.append({
                    'id': i,
                    'name': device['name'],
                    'channels': device['max_input_channels'],
                    'sample_rate': device['default_samplerate'],
                })
        return {'input': input_devices}

    def negotiate(self) -> CaptureFormat:
        """Pick the input device's default configuration, captured as mono."""
        try:
            info = sd.query_devices(self.device, kind='input')
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"No input device available: {e}") from e

        channels = int(info['max_input_channels'])
        sample_rate = int(info['default_samplerate'])
        if channels < 1:
            raise DeviceError(f"Device '{info['name']}' has no input channels")
        if sample_rate <= 0:
            raise DeviceError(f"Device '{info['name']}' reports no usable sample rate")

        try:
            sd.check_input_settings(device=self.device, channels=1,
                                    samplerate=sample_rate, dtype='float32')
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(f"Device '{info['name']}' rejected {sample_rate} Hz mono: {e}") from e

        capture_format = CaptureFormat(
            device=self.device,
            device_name=info['name'],
            channels=1,
            sample_rate=sample_rate,
        )
        logger.info(f"Negotiated {capture_format.device_name}: "
                    f"{sample_rate} Hz mono ({channels} channel(s) available)")
        return capture_format

    def _make_callback(self, session: CaptureSession):
        def callback(indata, frames, time_info, status):
            if status:
                logger.warning(f"Capture status: {status}")

            block = indata[:, 0] if indata.ndim > 1 else indata.reshape(-1)
            try:
                session.writer.append(to_pcm16(block))
            except TurnTranscriptError as e:
                logger.error(f"Capture write failed: {e}")
                session.request_stop(f"capture write failed: {e}")
                raise sd.CallbackAbort from e

        return callback

    def start(self) -> CaptureSession:
        """Negotiate, open the writer and the stream, and begin recording."""
        with self._lock:
            if self.state != CaptureState.IDLE:
                raise StateError(f"capture already active ({self.state.value})")
            self.state = CaptureState.NEGOTIATING

        try:
            capture_format = self.negotiate()
            writer = SharedWriter(create_writer(self.output_path, channels=1,
                                                sample_rate=capture_format.sample_rate))
        except Exception:
            self.state = CaptureState.IDLE
            raise

        session = CaptureSession(capture_format, self.output_path, writer, self.max_duration)
        stream = None
        try:
            stream = sd.InputStream(
                device=capture_format.device,
                channels=1,
                samplerate=capture_format.sample_rate,
                blocksize=self.blocksize,
                dtype='float32',
                callback=self._make_callback(session),
                finished_callback=session.on_stream_finished,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            if stream is not None:
                stream.close()
            writer.close()
            self.state = CaptureState.IDLE
            raise DeviceError(f"Failed to start capture stream: {e}") from e

        session.stream = stream
        self.session = session
        self.state = CaptureState.RECORDING

        session.watchdog = threading.Thread(target=self._watch, args=(session,),
                                            name="capture-watchdog", daemon=True)
        session.watchdog.start()
        logger.info(f"Recording to {self.output_path} for up to {self.max_duration:.1f}s")
        return session

    def _watch(self, session: CaptureSession):
        if not session.stop_event.wait(timeout=session.remaining()):
            logger.info("Capture time limit reached")
            # stop() fires finished_callback; mark the stop as requested first.
            session.stop_event.set()
        self._finalize(session)

    def _finalize(self, session: CaptureSession):
        self.state = CaptureState.FINALIZING
        session.state = CaptureState.FINALIZING

        try:
            session.stream.stop()
        except sd.PortAudioError as e:
            logger.error(f"Error stopping capture stream: {e}")
            session.request_stop(f"error stopping stream: {e}")
        finally:
            try:
                session.stream.close()
            except sd.PortAudioError as e:
                logger.error(f"Error closing capture stream: {e}")

        try:
            session.writer.close()
        except TurnTranscriptError as e:
            logger.error(f"Failed to finalize {session.path}: {e}")
            if session.error is None:
                session.error = str(e)
        finally:
            session.state = CaptureState.IDLE
            self.session = None
            self.state = CaptureState.IDLE
            session.finished.set()

        if session.error:
            logger.error(f"Capture ended with error: {session.error}")
        logger.info(f"Capture stopped: {session.samples_written} samples "
                    f"({session.result().duration:.1f}s)")

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> Optional[CaptureSession]:
        """Request an early stop; by default waits until the file is finalized."""
        session = self.session
        if session is None:
            return None

        logger.info("Stopping capture...")
        session.request_stop()
        if wait and threading.current_thread() is not session.watchdog:
            session.finished.wait(timeout)
        return session

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the active session to finish; True when none is running."""
        session = self.session
        if session is None:
            return True
        return session.finished.wait(timeout)

    def record(self) -> CaptureResult:
        """Record one bounded session and return its result."""
        session = self.start()
        session.finished.wait()
        return session.result()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
