"""Audio payload models."""

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class AudioPayload:
    """File-like audio payload selected by the user.

    Either ``path`` or ``data`` holds the bytes; ``size`` is always known up
    front so strategy selection never has to read the file.
    """
    name: str
    size: int
    content_type: Optional[str] = None
    path: Optional[Path] = None
    data: Optional[bytes] = None

    def __post_init__(self):
        if self.content_type is None:
            guessed, _ = mimetypes.guess_type(self.name)
            self.content_type = guessed

    @classmethod
    def from_path(cls, path) -> "AudioPayload":
        path = Path(path)
        return cls(name=path.name, size=path.stat().st_size, path=path)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: Optional[str] = None) -> "AudioPayload":
        return cls(name=name, size=len(data), content_type=content_type, data=data)

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower().lstrip(".")

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"Audio payload {self.name} has no data")
        return self.path.read_bytes()

    def to_data_url(self) -> str:
        """Encode the payload as a base64 ``data:`` URL for inline submission."""
        encoded = base64.b64encode(self.read_bytes()).decode("ascii")
        content_type = self.content_type or "application/octet-stream"
        return f"data:{content_type};base64,{encoded}"
