"""
Speech-to-text transcription.

Two backends share one result type:

- ``OpenAITranscriber`` posts audio chunks to the OpenAI transcription
  endpoint (server-mediated, used for rolling batch dictation).
- ``WhisperTranscriber`` runs a local faster-whisper model and reports each
  decoded segment, which live mode treats as a finalized sentence.

Both report failures through ``TranscriptionResult.error`` instead of
raising, so a failed chunk never disturbs the transcript built so far.
"""

from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
import asyncio
import logging
import os
import platform
import re
import tempfile
import time

import openai
import psutil

try:
    from faster_whisper import WhisperModel
    FASTER_WHISPER_AVAILABLE = True
except ImportError:
    FASTER_WHISPER_AVAILABLE = False
    WhisperModel = None

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "ko"

_SENTENCE_END_RE = re.compile(r"(?<=[.!?。？！])\s+")


@dataclass
class TranscriptionResult:
    """Transcribed text, or an error."""
    text: str = ""
    segments: List[str] = field(default_factory=list)  # sentence-level pieces
    language: Optional[str] = None
    processing_time: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def split_sentences(text: str) -> List[str]:
    """Split text after sentence-ending punctuation, dropping blanks."""
    return [part.strip() for part in _SENTENCE_END_RE.split(text) if part.strip()]


class OpenAITranscriber:
    """
    Server-mediated transcription through the OpenAI audio API.

    Args:
        model: Transcription model name
        language: Source language tag sent with every request
        api_key: API key (defaults to OPENAI_API_KEY)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        model: str = "whisper-1",
        language: str = DEFAULT_LANGUAGE,
        api_key: Optional[str] = None,
        timeout: float = 60.0
    ):
        self.model = model
        self.language = language
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.timeout = timeout
        self._client: Optional[openai.OpenAI] = None

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def transcribe(
        self,
        audio_data: bytes,
        language: Optional[str] = None,
        filename: str = "audio.wav"
    ) -> TranscriptionResult:
        """
        Transcribe one audio blob.

        Args:
            audio_data: Encoded audio (WAV from the recorder)
            language: Override for the source language tag
            filename: Name sent with the upload; its extension sets the format

        Returns:
            TranscriptionResult with text, or with ``error`` set.
        """
        if not audio_data:
            return TranscriptionResult(error="No audio provided")

        if not self.is_available():
            logger.error("Missing OPENAI_API_KEY")
            return TranscriptionResult(error="Server misconfiguration: Missing API Key")

        effective_language = language or self.language
        start_time = time.time()

        try:
            loop = asyncio.get_running_loop()
            text = await loop.run_in_executor(
                None,
                self._sync_transcribe,
                audio_data,
                filename,
                effective_language
            )
        except Exception as e:
            logger.error(f"Transcription error: {e}")
            return TranscriptionResult(error="Failed to transcribe audio")

        text = (text or "").strip()
        return TranscriptionResult(
            text=text,
            segments=split_sentences(text),
            language=effective_language,
            processing_time=time.time() - start_time
        )

    def _sync_transcribe(self, audio_data: bytes, filename: str, language: str) -> str:
        if not self._client:
            self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)

        response = self._client.audio.transcriptions.create(
            file=(filename, audio_data),
            model=self.model,
            language=language
        )
        return response.text


class WhisperTranscriber:
    """
    Local faster-whisper transcriber.

    Loads the model lazily on first use, picking CUDA when available and
    otherwise CPU with a compute type sized to free memory. VAD filtering
    keeps silence out of the decoded segments.
    """

    AVAILABLE_MODELS = [
        "large-v3-turbo",
        "large-v3",
        "medium",
        "small",
        "base",
        "tiny"
    ]

    def __init__(
        self,
        model_size: str = "base",
        device: str = "auto",
        compute_type: str = "auto",
        language: Optional[str] = DEFAULT_LANGUAGE,
        beam_size: int = 5,
        vad_filter: bool = True
    ):
        self.model_size = model_size
        self.device = self._detect_optimal_device() if device == "auto" else device
        self.compute_type = self._detect_optimal_compute_type() if compute_type == "auto" else compute_type
        self.language = language
        self.beam_size = beam_size
        self.vad_filter = vad_filter
        self.vad_parameters = {
            "min_silence_duration_ms": 500,
            "speech_pad_ms": 400
        }

        self._model: Optional[WhisperModel] = None

    def _detect_optimal_device(self) -> str:
        try:
            import torch
            if torch.cuda.is_available():
                return "cuda"
        except ImportError:
            pass

        if platform.system() == "Darwin":
            # faster-whisper has no MPS backend
            logger.info("Running on macOS: using CPU device")
        return "cpu"

    def _detect_optimal_compute_type(self) -> str:
        if self.device == "cuda":
            return "float16"
        try:
            available_memory_gb = psutil.virtual_memory().available / (1024 ** 3)
        except Exception as e:
            logger.warning(f"Could not read available memory: {e}")
            return "int8"
        return "int8" if available_memory_gb < 4 else "float32"

    def is_available(self) -> bool:
        return FASTER_WHISPER_AVAILABLE

    def is_model_loaded(self) -> bool:
        return self._model is not None

    def get_available_models(self) -> List[str]:
        return self.AVAILABLE_MODELS.copy()

    def load_model(self) -> None:
        """
        Load the configured model.

        Raises:
            RuntimeError: If faster-whisper is not installed or loading fails.
        """
        if not FASTER_WHISPER_AVAILABLE:
            raise RuntimeError(
                "faster-whisper not available. Install with: pip install 'dictanote[local]'"
            )
        if self._model is not None:
            return

        logger.info(f"Loading Whisper model: {self.model_size} on {self.device} with {self.compute_type}")
        try:
            self._model = WhisperModel(
                self.model_size,
                device=self.device,
                compute_type=self.compute_type
            )
        except Exception as e:
            raise RuntimeError(f"Failed to load Whisper model {self.model_size}: {e}") from e

    async def transcribe(self, audio_data: bytes, language: Optional[str] = None) -> TranscriptionResult:
        """
        Transcribe WAV bytes with the local model.

        Returns:
            TranscriptionResult whose ``segments`` are the decoded sentences.
        """
        if not audio_data:
            return TranscriptionResult(error="No audio provided")

        effective_language = language or self.language
        start_time = time.time()
        temp_path = None

        try:
            loop = asyncio.get_running_loop()
            if self._model is None:
                await loop.run_in_executor(None, self.load_model)

            with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as temp_file:
                temp_file.write(audio_data)
                temp_path = temp_file.name

            pieces, info = await loop.run_in_executor(None, self._sync_transcribe, temp_path, effective_language)

        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            return TranscriptionResult(error=f"Transcription failed: {e}")
        finally:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError as e:
                    logger.warning(f"Failed to cleanup temp file: {e}")

        processing_time = time.time() - start_time
        duration = getattr(info, 'duration', 0) or 0
        if duration > 0:
            logger.info(
                f"Transcription completed: {processing_time:.2f}s for {duration:.2f}s audio "
                f"(RTF: {processing_time / duration:.2f})"
            )

        return TranscriptionResult(
            text=" ".join(pieces),
            segments=pieces,
            language=getattr(info, 'language', effective_language),
            processing_time=processing_time
        )

    def _sync_transcribe(self, path: str, language: Optional[str]):
        params: Dict[str, Any] = {
            "language": language,
            "beam_size": self.beam_size,
            "vad_filter": self.vad_filter,
        }
        if self.vad_filter:
            params["vad_parameters"] = self.vad_parameters

        segments, info = self._model.transcribe(path, **params)
        # segments is a lazy generator; decoding happens while iterating
        pieces = [segment.text.strip() for segment in segments if segment.text.strip()]
        return pieces, info
