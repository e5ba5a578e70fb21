"""Pydantic schemas for the chat room.

Stored records:
- ChatMessage: a message in the room log, with its reaction and read-by
  annotations.

Inbound WebSocket frames (validated at the boundary before reaching the room):
- JoinRequest, SendMessageRequest, FileMessageRequest, ReactionRequest,
  ReadReceiptRequest, OlderMessagesRequest
"""
import time
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, Field, field_validator

from roomhub.files import Attachment


def _now() -> float:
    return time.time()


class MessageKind(str, Enum):
    """Kind of chat message.

    Attributes:
        TEXT: Regular text message.
        FILE: File attachment (optional caption in ``content``).
        SYSTEM: Server-issued announcement.
    """
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """Complete chat message with all metadata.

    The payload fields (author, kind, content, attachment, time, ts) never
    change once the message is in the log. ``reactions`` and ``readBy`` are
    annotations that only ever grow.

    Attributes:
        id: Log-issued identifier (empty until appended).
        kind: text, file or system.
        author: Display name of the sender.
        content: Message text, or the caption of a file message.
        attachment: File descriptor for file messages.
        time: Client-supplied display time, carried through verbatim.
        ts: Server receive time (seconds since epoch).
        reactions: Emoji -> cumulative count.
        readBy: Reader names in the order receipts arrived.
    """
    id: str = Field(default="", description="Log-issued message ID")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="Message kind")
    author: str = Field(..., description="Display name of the sender")
    content: str = Field(default="", description="Message text or file caption")
    attachment: Optional[Attachment] = Field(default=None, description="File descriptor")
    time: Optional[str] = Field(default=None, description="Client display time")
    ts: float = Field(default_factory=_now, description="Timestamp in seconds since epoch")
    reactions: Dict[str, int] = Field(default_factory=dict, description="Emoji tally")
    readBy: List[str] = Field(default_factory=list, description="Reader names")


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be empty")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


class JoinRequest(BaseModel):
    """``join`` frame: the requested display name."""
    username: str

    @field_validator("username")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _not_blank(value).strip()


class SendMessageRequest(BaseModel):
    """``message`` frame: a text message from the caller's session."""
    content: NonBlankStr
    time: Optional[str] = None


class FileMessageRequest(BaseModel):
    """``file`` frame: a base64-encoded attachment plus optional caption."""
    fileName: str = Field(..., min_length=1)
    mimeType: str = Field(
        default="application/octet-stream",
        validation_alias=AliasChoices("fileType", "mimeType"),
        description="MIME type; clients send it as ``fileType``",
    )
    data: str = Field(..., min_length=1)
    content: str = ""
    time: Optional[str] = None

    def to_attachment(self) -> Attachment:
        return Attachment(fileName=self.fileName, mimeType=self.mimeType, data=self.data)


class ReactionRequest(BaseModel):
    """``reaction`` frame."""
    messageId: str = Field(..., min_length=1)
    emoji: NonBlankStr


class ReadReceiptRequest(BaseModel):
    """``read`` frame."""
    messageId: str = Field(..., min_length=1)


class OlderMessagesRequest(BaseModel):
    """``request_older`` frame.

    ``requestId`` is echoed back in the reply so the client can match the
    response to its request.
    """
    messageId: str = Field(..., min_length=1)
    requestId: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
