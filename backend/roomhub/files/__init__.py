"""Attachment descriptors for file messages.

Files travel inline with the chat message as base64 text; the hub never
decodes or stores them on disk. This package only classifies the payload:
- Images: jpeg, png, gif, webp, svg
- Documents: pdf
- Audio: mp3, wav, ogg, m4a, flac
- Anything else is "other"
"""
from .schemas import Attachment, FileType, get_file_type

__all__ = ["Attachment", "FileType", "get_file_type"]
