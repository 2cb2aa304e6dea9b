"""Clue encoding: raw capture output to an immutable, backend-agnostic clue.

A clue carries up to three payloads (typed text, a still frame, a voice
recording). The backend adapter renders it through `Clue.parts()`, a closed
set of part variants, so request building never meets an unknown shape.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError

from guesswork.errors import CaptureNotReady, EmptyRecording

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPE = "image/jpeg"
AUDIO_MIME_TYPE = "audio/webm"

EMPTY_CLUE_PLACEHOLDER = "(The player submitted an empty clue.)"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    data: bytes
    mime_type: str = IMAGE_MIME_TYPE


@dataclass(frozen=True)
class AudioPart:
    data: bytes
    mime_type: str = AUDIO_MIME_TYPE


Part = Union[TextPart, ImagePart, AudioPart]


@dataclass(frozen=True)
class Clue:
    """One round's worth of input from the player."""
    text: str = ""
    image: bytes = b""
    audio: bytes = b""

    @property
    def is_empty(self) -> bool:
        return not (self.text or self.image or self.audio)

    @property
    def modality(self) -> str:
        if self.image:
            return "video"
        if self.audio:
            return "voice"
        return "text"

    def parts(self) -> Tuple[Part, ...]:
        parts: list[Part] = []
        if self.text:
            parts.append(TextPart(self.text))
        if self.image:
            parts.append(ImagePart(self.image))
        if self.audio:
            parts.append(AudioPart(self.audio))
        return tuple(parts)

    @classmethod
    def from_text(cls, text: str) -> "Clue":
        return cls(text=text)


@dataclass(frozen=True)
class Frame:
    """A still-frame snapshot as reported by the capture surface."""
    data: bytes
    width: int
    height: int

    @property
    def ready(self) -> bool:
        return self.width > 0 and self.height > 0


@dataclass(frozen=True)
class CaptureCapabilities:
    """What the capture side can currently produce.

    Missing video degrades to audio-only play; it never blocks voice clues.
    """
    video: bool = True
    audio: bool = True


class VoiceRecorder:
    """Press-and-hold recorder yielding one payload per hold-release cycle."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._recording = False

    @property
    def recording(self) -> bool:
        return self._recording

    def start(self) -> None:
        self._chunks = []
        self._recording = True

    def feed(self, chunk: bytes) -> None:
        if not self._recording:
            return
        if chunk:
            self._chunks.append(bytes(chunk))

    def stop(self) -> bytes:
        """Finish the current hold and return the collected audio.

        Raises EmptyRecording when nothing was captured.
        """
        self._recording = False
        payload = b"".join(self._chunks)
        self._chunks = []
        if not payload:
            raise EmptyRecording("Voice recording captured no audio")
        return payload


def is_submittable(text: str | None) -> bool:
    return bool((text or "").strip())


def encode_clue(
    text: str | None = "",
    frame: Frame | None = None,
    recording: bytes | None = None,
) -> Clue:
    """Build a clue from whatever the player supplied.

    A frame must come from a surface with non-zero dimensions, otherwise
    CaptureNotReady is raised. An empty recording raises EmptyRecording.
    If nothing at all was supplied a placeholder text clue is used.
    """
    image = b""
    if frame is not None:
        if not frame.ready:
            raise CaptureNotReady(
                f"Capture surface not ready ({frame.width}x{frame.height})"
            )
        image = frame.data
    audio = b""
    if recording is not None:
        if not recording:
            raise EmptyRecording("Voice recording captured no audio")
        audio = recording
    clue = Clue(text=text or "", image=image, audio=audio)
    if clue.is_empty:
        logger.debug("Empty clue replaced with placeholder text")
        return Clue(text=EMPTY_CLUE_PLACEHOLDER)
    return clue


def image_dimensions(data: bytes) -> Tuple[int, int]:
    """Read (width, height) of an encoded image. (0, 0) if Pillow cannot identify it."""
    try:
        with Image.open(BytesIO(data)) as img:
            width, height = img.size
    except UnidentifiedImageError:
        logger.debug("Unidentified image data (%d bytes)", len(data))
        return 0, 0
    return width, height


def frame_from_image(data: bytes) -> Frame:
    width, height = image_dimensions(data)
    return Frame(data=data, width=width, height=height)
