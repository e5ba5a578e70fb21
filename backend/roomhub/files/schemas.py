"""Pydantic schemas for file attachments.

This module defines the data models for file sharing in the chat room:
- FileType: Enum for categorizing files (image, pdf, audio, other)
- Attachment: Descriptor stored as the body of a file-kind message

The hub treats the encoded file content as opaque text. Encoding a file to
text is the client's job.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class FileType(str, Enum):
    """Supported file type categories.

    Files are categorized by MIME type into these groups:
    - IMAGE: JPEG, PNG, GIF, WebP, SVG
    - PDF: PDF documents
    - AUDIO: MP3, WAV, OGG, M4A, FLAC
    - OTHER: All other file types
    """
    IMAGE = "image"
    PDF = "pdf"
    AUDIO = "audio"
    OTHER = "other"


# MIME types by category
ALLOWED_MIME_TYPES = {
    FileType.IMAGE: [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
    ],
    FileType.PDF: [
        "application/pdf",
    ],
    FileType.AUDIO: [
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/ogg",
        "audio/mp4",
        "audio/x-m4a",
        "audio/flac",
    ],
}


def get_file_type(mime_type: str) -> FileType:
    """Determine file type category from MIME type.

    Args:
        mime_type: MIME type string (e.g., "image/jpeg", "application/pdf")

    Returns:
        FileType enum value (IMAGE, PDF, AUDIO, or OTHER)

    Examples:
        >>> get_file_type("image/jpeg")
        <FileType.IMAGE: 'image'>
        >>> get_file_type("text/plain")
        <FileType.OTHER: 'other'>
    """
    mime_type = (mime_type or "").split(";", 1)[0].strip().lower()
    for file_type, mime_types in ALLOWED_MIME_TYPES.items():
        if mime_type in mime_types:
            return file_type
    return FileType.OTHER


class Attachment(BaseModel):
    """Binary attachment carried by a file message.

    The category is derived from ``mimeType`` when not given explicitly.
    """
    fileName: str = Field(..., min_length=1, description="Original filename")
    mimeType: str = Field(default="application/octet-stream", description="MIME type")
    fileType: Optional[FileType] = Field(default=None, description="File type category")
    data: str = Field(..., description="Base64-encoded file content")

    @model_validator(mode="after")
    def _derive_file_type(self) -> "Attachment":
        if self.fileType is None:
            self.fileType = get_file_type(self.mimeType)
        return self
