"""
Microphone capture for rolling dictation.

PCM frames from the default input device accumulate in memory while the
user talks. The app drains them as WAV blobs every few seconds so each
piece can be transcribed on its own, and collects whatever is left when
recording stops.
"""

import asyncio
import io
import logging
import wave
from typing import Optional, List

import pyaudio

logger = logging.getLogger(__name__)


class AudioRecorderError(Exception):
    """Microphone capture failed."""
    pass


class MicrophonePermissionError(AudioRecorderError):
    """The terminal is not allowed to use the microphone."""
    pass


class DeviceError(AudioRecorderError):
    """There is no input device to record from."""
    pass


# A WAV header alone is 44 bytes; anything this small holds no speech
MIN_AUDIO_BYTES = 100

PERMISSION_HINT = (
    "Could not open the microphone.\n"
    "Allow your terminal application to use the microphone and try again."
)


class AudioRecorder:
    """
    Records 16-bit PCM from the default microphone into a drainable buffer.

    16kHz mono is what the transcription backends expect, so that is the
    default. Reads run in the default executor; the buffer is swapped out
    atomically on the event loop thread by ``drain_chunk``.

    Args:
        sample_rate: Capture rate in Hz
        chunk_size: Frames per stream read
        channels: 1 for mono, 2 for stereo

    Example:
        >>> recorder = AudioRecorder()
        >>> await recorder.start_recording()
        >>> piece = recorder.drain_chunk()
        >>> tail = await recorder.stop_recording()
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 512,
        channels: int = 1
    ):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if channels not in (1, 2):
            raise ValueError(f"channels must be 1 or 2, got {channels}")

        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.sample_width = 2  # paInt16

        self._pa: Optional[pyaudio.PyAudio] = None
        self._stream: Optional[pyaudio.Stream] = None
        self._frames: List[bytes] = []
        self._capturing = False
        self._reader: Optional[asyncio.Task] = None

    def is_recording(self) -> bool:
        return self._capturing

    async def start_recording(self) -> None:
        """
        Open the microphone and begin filling the buffer.

        Raises:
            RuntimeError: If a recording is already running
            DeviceError: If the system reports no input device
            MicrophonePermissionError: If the device cannot be opened
            AudioRecorderError: For any other PyAudio failure
        """
        if self._capturing:
            raise RuntimeError("Already recording")

        try:
            self._pa = pyaudio.PyAudio()
            if not self._input_device_present():
                raise DeviceError("No microphone found")
            self._stream = self._open_stream()
        except AudioRecorderError:
            self._release()
            raise
        except Exception as e:
            self._release()
            raise AudioRecorderError(f"Could not start recording: {e}") from e

        self._frames = []
        self._capturing = True
        self._reader = asyncio.create_task(self._read_frames())
        logger.info(f"Microphone open at {self.sample_rate}Hz x{self.channels}")

    async def stop_recording(self) -> bytes:
        """
        Close the microphone and return the frames not drained yet as WAV.

        Raises:
            RuntimeError: If nothing is being recorded
        """
        if not self._capturing:
            raise RuntimeError("Not recording")

        self._capturing = False
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._release()

        tail = self.drain_chunk()
        logger.info(f"Microphone closed, {len(tail)} bytes left to transcribe")
        return tail

    def drain_chunk(self) -> bytes:
        """Hand out everything captured since the last drain as a WAV blob."""
        frames, self._frames = self._frames, []
        return self._to_wav(b"".join(frames))

    def _open_stream(self) -> pyaudio.Stream:
        try:
            return self._pa.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size
            )
        except OSError as e:
            message = str(e).lower()
            if "device" in message or "input" in message:
                raise MicrophonePermissionError(PERMISSION_HINT) from e
            raise AudioRecorderError(f"Could not open input stream: {e}") from e

    async def _read_frames(self) -> None:
        loop = asyncio.get_running_loop()
        stream = self._stream
        while self._capturing and stream is not None:
            try:
                data = await loop.run_in_executor(
                    None, lambda: stream.read(self.chunk_size, exception_on_overflow=False)
                )
            except Exception as e:
                if "overflow" in str(e).lower():
                    logger.debug(f"Input overflow: {e}")
                    await asyncio.sleep(0.01)
                    continue
                logger.error(f"Microphone read failed, capture stopped: {e}")
                return
            if data:
                self._frames.append(data)

    def _to_wav(self, pcm: bytes) -> bytes:
        out = io.BytesIO()
        with wave.open(out, "wb") as wav:
            wav.setnchannels(self.channels)
            wav.setsampwidth(self.sample_width)
            wav.setframerate(self.sample_rate)
            wav.writeframes(pcm)
        return out.getvalue()

    def _input_device_present(self) -> bool:
        try:
            return any(
                self._pa.get_device_info_by_index(i).get("maxInputChannels", 0) > 0
                for i in range(self._pa.get_device_count())
            )
        except Exception as e:
            logger.warning(f"Could not list audio devices: {e}")
            return False

    def _release(self) -> None:
        """Close the stream and PyAudio, ignoring errors from either."""
        try:
            if self._stream is not None:
                if self._stream.is_active():
                    self._stream.stop_stream()
                self._stream.close()
        except Exception as e:
            logger.warning(f"Error closing input stream: {e}")
        finally:
            self._stream = None

        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    async def __aenter__(self) -> "AudioRecorder":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._capturing:
            await self.stop_recording()
        self._release()


def has_speech_payload(wav_data: bytes) -> bool:
    """Whether a WAV blob carries audio beyond its header."""
    return len(wav_data) > MIN_AUDIO_BYTES
