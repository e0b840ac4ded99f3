"""
Audio capture and transport encoding.

Captured audio travels to the gateway as standard base64 text and is decoded
back into bytes tagged with a fixed MIME type on the receiving side.

Capture itself is modelled as a two-phase resource. An ``AudioSource`` hands
out a ``CaptureHandle`` when recording starts; the ``AudioRecorder`` finalizes
that handle into a single payload when recording stops and releases it on
every exit path, including teardown of a recording that was never stopped.
"""
import abc
import base64
import binascii
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from config import AUDIO_MIME_TYPE, MIN_RECORDING_MS


class CaptureError(Exception):
    """Raised when the microphone cannot be acquired or read."""


@dataclass(frozen=True)
class AudioBlob:
    data: bytes
    mime_type: str = AUDIO_MIME_TYPE


def encode_audio(payload: bytes) -> str:
    """Encodes raw audio bytes into transport-safe base64 text."""
    return base64.b64encode(payload).decode("ascii")


def decode_audio(encoded: str, mime_type: str = AUDIO_MIME_TYPE) -> AudioBlob:
    """
    Decodes base64 text produced by ``encode_audio``.

    Raises:
        ValueError: If the text is not valid base64.
    """
    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Audio payload is not valid base64: {e}") from e
    return AudioBlob(data=data, mime_type=mime_type)


class CaptureHandle(abc.ABC):
    """
    A live capture. Subclasses decide where the bytes come from.

    ``finalize`` returns everything captured so far; ``release`` frees the
    underlying device and must be safe to call more than once.
    """

    def write(self, chunk: bytes) -> None:
        raise CaptureError("This capture source does not accept pushed audio.")

    @abc.abstractmethod
    def finalize(self) -> bytes:
        ...

    def release(self) -> None:
        pass


class AudioSource(abc.ABC):
    @abc.abstractmethod
    def acquire(self) -> CaptureHandle:
        ...


class _ChunkBuffer(CaptureHandle):
    def __init__(self):
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()
        self.released = False

    def write(self, chunk: bytes) -> None:
        # Empty chunks carry nothing; the browser emits them between timeslices.
        if not chunk:
            return
        with self._lock:
            if self.released:
                return
            self._chunks.append(chunk)

    def finalize(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)

    def release(self) -> None:
        with self._lock:
            self.released = True
            self._chunks = []


class ClientStreamSource(AudioSource):
    """
    Audio pushed by the browser over Socket.IO.

    The microphone itself lives in the browser, so permission failures are
    reported by the client. ``deny`` records such a failure and the next
    ``acquire`` raises it instead of starting a capture.
    """

    def __init__(self):
        self.permission_error: Optional[str] = None

    def deny(self, reason: str) -> None:
        self.permission_error = reason or "Failed to start recording."

    def acquire(self) -> CaptureHandle:
        if self.permission_error:
            reason, self.permission_error = self.permission_error, None
            raise CaptureError(reason)
        return _ChunkBuffer()


class _FileCapture(CaptureHandle):
    def __init__(self, path: str):
        try:
            self._file = open(path, "rb")
        except OSError as e:
            raise CaptureError(f"Could not open audio file '{path}': {e.strerror or e}") from e

    def finalize(self) -> bytes:
        return self._file.read()

    def release(self) -> None:
        self._file.close()


class FileAudioSource(AudioSource):
    """Replays a recorded audio file as if it had just been captured."""

    def __init__(self, path: str):
        self.path = path

    def acquire(self) -> CaptureHandle:
        return _FileCapture(self.path)


class AudioRecorder:
    """
    Owns one capture at a time.

    Stopping a recording earlier than ``min_recording_ms`` after it started
    waits out the remainder, so very short taps still produce a usable
    payload. Stopping never cancels: it always yields a completed (possibly
    empty) capture.
    """

    def __init__(
        self,
        source: AudioSource,
        min_recording_ms: int = MIN_RECORDING_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.min_recording_ms = min_recording_ms
        self._clock = clock
        self._sleep = sleep
        self._handle: Optional[CaptureHandle] = None
        self._started_at: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """
        Acquires the capture device.

        Raises:
            CaptureError: If the device is unavailable, access is denied, or a
                capture is already running.
        """
        if self._handle is not None:
            raise CaptureError("A recording is already in progress.")
        try:
            self._handle = self.source.acquire()
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(str(e) or "Failed to start recording.") from e
        self._started_at = self._clock()

    def feed(self, chunk: bytes) -> None:
        """Forwards a pushed chunk to the running capture, if any."""
        if self._handle is None:
            logging.warning("Dropping audio chunk received while not recording.")
            return
        self._handle.write(chunk)

    def stop(self) -> Optional[bytes]:
        """
        Finalizes the running capture and releases the device.

        Returns:
            The captured bytes, or None when no capture was running.
        """
        handle = self._handle
        if handle is None:
            return None

        elapsed_ms = (self._clock() - self._started_at) * 1000
        if elapsed_ms < self.min_recording_ms:
            self._sleep((self.min_recording_ms - elapsed_ms) / 1000)

        try:
            return handle.finalize()
        finally:
            self._release(handle)

    def close(self) -> None:
        """Releases any running capture without producing a payload."""
        if self._handle is not None:
            self._release(self._handle)

    def _release(self, handle: CaptureHandle) -> None:
        self._handle = None
        self._started_at = None
        try:
            handle.release()
        except Exception as e:
            logging.error(f"Failed to release audio capture: {e}")

    def __enter__(self) -> "AudioRecorder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
