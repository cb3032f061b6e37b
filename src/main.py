"""
Turn Transcript command line.
Exposes the two shell commands, record() and transcribe(path), plus device
listing.
"""

import argparse
import functools
import signal
import sys
import threading
from pathlib import Path
from typing import Optional
import logging

from turn_transcript.audio_capture import AudioCapture
from turn_transcript.config import AppConfig
from turn_transcript.errors import DeviceError, ModelError, TurnTranscriptError
from turn_transcript.inference import FasterWhisperEngine
from turn_transcript.logger import ProgressPrinter, configure_logging
from turn_transcript.transcription_engine import Transcript, TranscriptionOrchestrator

logger = logging.getLogger(__name__)


class TranscriptApp:
    """Command surface: record() and transcribe(path) return messages, never raise."""

    def __init__(self, config: Optional[AppConfig] = None, show_progress: bool = False):
        self.config = config or AppConfig()
        self.show_progress = show_progress

        self.capture: Optional[AudioCapture] = None
        self.orchestrator: Optional[TranscriptionOrchestrator] = None
        self.last_error: Optional[str] = None
        self.last_transcript: Optional[Transcript] = None

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, stopping recording...")
        if self.capture:
            self.capture.stop(wait=False)

    def _fail(self, message: str) -> str:
        logger.error(message)
        self.last_error = message
        return message

    def record(self) -> Optional[str]:
        """Record one bounded session. Returns None on success, else an error message."""
        self.last_error = None
        handlers = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                handlers[signum] = signal.signal(signum, self._signal_handler)

        try:
            self.capture = AudioCapture(
                output_path=self.config.output_path,
                max_duration=self.config.max_duration,
                device=self.config.input_device,
            )
            result = self.capture.record()
        except TurnTranscriptError as e:
            return self._fail(f"Error: recording failed: {e}")
        except Exception as e:
            logger.exception("Unexpected recording failure")
            return self._fail(f"Error: recording failed: {e}")
        finally:
            for signum, handler in handlers.items():
                signal.signal(signum, handler)

        if not result.ok:
            return self._fail(f"Error: recording stopped early: {result.error} "
                              f"({result.duration:.1f}s saved to {result.path})")

        logger.info(f"Saved {result.duration:.1f}s of audio to {result.path}")
        return None

    def _get_orchestrator(self) -> TranscriptionOrchestrator:
        if self.config.model_path is None:
            raise ModelError("no model path configured")

        if self.orchestrator is None or self.orchestrator.model_path != Path(self.config.model_path):
            if self.orchestrator is not None:
                self.orchestrator.shutdown()
            self.orchestrator = TranscriptionOrchestrator(
                self.config.model_path,
                target_rate=self.config.target_rate,
                initial_prompt=self.config.initial_prompt,
                speaker_turns=self.config.speaker_turns,
                language=self.config.language,
                engine_factory=functools.partial(
                    FasterWhisperEngine.load,
                    device=self.config.device,
                    compute_type=self.config.compute_type,
                ),
                progress_callback=ProgressPrinter() if self.show_progress else None,
            )
        return self.orchestrator

    def transcribe(self, path: str) -> str:
        """Transcribe ``path``. Returns the transcript text or an error message."""
        self.last_error = None
        self.last_transcript = None
        try:
            future = self._get_orchestrator().submit(path)
            transcript = future.result()
        except TurnTranscriptError as e:
            return self._fail(f"Error: transcription failed: {e}")
        except Exception as e:
            logger.exception("Unexpected transcription failure")
            return self._fail(f"Error: transcription failed: {e}")

        self.last_transcript = transcript
        return transcript.text

    def shutdown(self):
        if self.capture:
            self.capture.stop()
        if self.orchestrator:
            self.orchestrator.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()


def list_audio_devices():
    """List available audio input devices."""
    print("Scanning audio devices...")
    devices = AudioCapture.list_audio_devices()

    print("\n=== AUDIO INPUT DEVICES ===")
    if not devices['input']:
        print("  No input devices found")
    for device in devices['input']:
        print(f"  [{device['id']:2d}] {device['name']}")
        print(f"       {device['channels']} channels, {device['sample_rate']:.0f} Hz")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Record audio and transcribe it with speaker turns",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List available audio devices
  python main.py --list-devices

  # Record up to 10 seconds into output.wav
  python main.py record

  # Record 30 seconds from device 2
  python main.py record --duration 30 --device 2 --output call.wav

  # Transcribe with a local faster-whisper model
  python main.py transcribe call.wav --model models/small.en
        """
    )

    parser.add_argument('--list-devices', '-l', action='store_true',
                        help='List available audio input devices and exit')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command')

    record = subparsers.add_parser('record', help='Record audio from the input device')
    record.add_argument('--output', '-o', type=Path,
                        help='Output WAV file (default: output.wav)')
    record.add_argument('--duration', '-d', type=float,
                        help='Maximum recording length in seconds (default: 10)')
    record.add_argument('--device', type=int,
                        help='Input device ID (use --list-devices to see options)')

    transcribe = subparsers.add_parser('transcribe', help='Transcribe a mono 16-bit WAV file')
    transcribe.add_argument('path', type=str, help='WAV file to transcribe')
    transcribe.add_argument('--model', '-m', type=Path,
                            help='faster-whisper model directory (or TURN_TRANSCRIPT_MODEL)')
    transcribe.add_argument('--target-rate', type=int,
                            help='Engine sample rate in Hz (default: 16000)')
    transcribe.add_argument('--prompt', type=str,
                            help='Initial prompt to bias decoding (default: "experience")')
    transcribe.add_argument('--language', type=str,
                            help='Language code (default: auto-detect)')
    transcribe.add_argument('--no-speaker-turns', action='store_true',
                            help='Disable speaker-turn detection')
    transcribe.add_argument('--device', type=str, choices=['auto', 'cpu', 'cuda'],
                            help='Compute device (default: auto)')
    transcribe.add_argument('--compute-type', type=str,
                            help='CTranslate2 compute type (default: auto)')
    transcribe.add_argument('--show-progress', action='store_true',
                            help='Print inference progress')

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    if args.list_devices:
        try:
            list_audio_devices()
        except DeviceError as e:
            logger.error(str(e))
            return 1
        return 0

    if args.command is None:
        parser.print_help()
        return 1

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if args.command == 'record':
        config = config.with_overrides(
            output_path=args.output,
            max_duration=args.duration,
            input_device=args.device,
        )
        with TranscriptApp(config) as app:
            error = app.record()
        if error:
            print(error, file=sys.stderr)
            return 1
        print(f"Recording saved to {config.output_path}")
        return 0

    config = config.with_overrides(
        model_path=args.model,
        target_rate=args.target_rate,
        initial_prompt=args.prompt,
        language=args.language,
        device=args.device,
        compute_type=args.compute_type,
        speaker_turns=False if args.no_speaker_turns else None,
    )
    with TranscriptApp(config, show_progress=args.show_progress) as app:
        text = app.transcribe(args.path)
    if app.last_error:
        print(text, file=sys.stderr)
        return 1
    print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
