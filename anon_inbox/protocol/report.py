"""
Report payloads carried inside encrypted submissions.

The codec treats payloads as opaque bytes; this module is the
application-level JSON format the inbox uses on top of it.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import MAX_ATTACHMENT_BYTES, REPORT_FORMAT_VERSION
from .hashing import hash_message

ALLOWED_ATTACHMENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "text/plain",
        "application/json",
        "text/csv",
    }
)

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
_TAG = re.compile(r"<[^>]+>")
_JS_SCHEME = re.compile(r"javascript:", re.I)
_INLINE_HANDLER = re.compile(r"on\w+\s*=", re.I)
_DATA_URL_TYPE = re.compile(r"data:([^;,]+)")


class Urgency(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def sanitize_text(text: str) -> str:
    """Strip markup, script blocks, ``javascript:`` and inline event handlers."""
    text = _SCRIPT_BLOCK.sub("", text)
    text = _TAG.sub("", text)
    text = _JS_SCHEME.sub("", text)
    text = _INLINE_HANDLER.sub("", text)
    return text.strip()


def attachment_problem(
    size: int, content_type: str, max_bytes: int = MAX_ATTACHMENT_BYTES
) -> Optional[str]:
    """Return why an attachment is rejected, or None if acceptable."""
    if size > max_bytes:
        return f"File size exceeds {max_bytes // (1024 * 1024)}MB limit"
    if content_type not in ALLOWED_ATTACHMENT_TYPES:
        return f"File type {content_type} is not allowed"
    return None


def base64_attachment_problem(data: str) -> Optional[str]:
    """
    Validate a base64 attachment, optionally prefixed with a data-URL header.

    The decoded size is estimated from the encoded length.
    """
    if not isinstance(data, str):
        return "Invalid attachment format"
    if len(data) * 3 / 4 > MAX_ATTACHMENT_BYTES:
        return f"File size exceeds {MAX_ATTACHMENT_BYTES // (1024 * 1024)}MB limit"
    if "," in data:
        match = _DATA_URL_TYPE.search(data.split(",", 1)[0])
        if match and match.group(1) not in ALLOWED_ATTACHMENT_TYPES:
            return f"File type {match.group(1)} is not allowed"
    return None


@dataclass(frozen=True)
class ReportData:
    """
    Report submitted to the inbox.

    Attributes:
        subject: Short title
        body: Report text
        category: Free-form category (defaults to "general")
        urgency: One of low, medium, high, critical
        timestamp: Unix milliseconds
        attachments: Base64 attachments
        message_hash: Decimal field hash of the body, for proof binding
    """

    subject: str
    body: str
    category: str = "general"
    urgency: Urgency = Urgency.MEDIUM
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    attachments: List[str] = field(default_factory=list)
    message_hash: Optional[str] = None

    def validate(self) -> None:
        if not isinstance(self.subject, str) or not isinstance(self.body, str):
            raise ValueError("subject and body must be strings")
        if not self.subject.strip() or not self.body.strip():
            raise ValueError("subject and body must be non-empty")
        if not isinstance(self.urgency, Urgency):
            raise ValueError("urgency must be an Urgency value")
        for attachment in self.attachments:
            problem = base64_attachment_problem(attachment)
            if problem is not None:
                raise ValueError(problem)

    def sanitized(self) -> "ReportData":
        """Copy with subject, body and category passed through sanitize_text."""
        return ReportData(
            subject=sanitize_text(self.subject),
            body=sanitize_text(self.body),
            category=sanitize_text(self.category) or "general",
            urgency=self.urgency,
            timestamp=self.timestamp,
            attachments=list(self.attachments),
            message_hash=self.message_hash or hash_message(self.body).to_decimal(),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "subject": self.subject,
            "body": self.body,
            "category": self.category,
            "urgency": self.urgency.value,
            "timestamp": self.timestamp,
            "attachments": list(self.attachments),
            "version": REPORT_FORMAT_VERSION,
        }
        if self.message_hash is not None:
            data["messageHash"] = self.message_hash
        return data

    def to_payload(self) -> bytes:
        """Versioned JSON bytes ready for encryption."""
        self.validate()
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes | str) -> "ReportData":
        """
        Parse a decrypted payload, filling defaults for missing fields.

        Raises:
            ValueError: If the payload is not a JSON report
        """
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            parsed = json.loads(payload)
            if not isinstance(parsed, dict):
                raise ValueError("report must be a JSON object")
            return cls(
                subject=parsed.get("subject") or "",
                body=parsed.get("body") or "",
                category=parsed.get("category") or "general",
                urgency=Urgency(parsed.get("urgency") or Urgency.MEDIUM.value),
                timestamp=parsed.get("timestamp") or int(time.time() * 1000),
                attachments=list(parsed.get("attachments") or []),
                message_hash=parsed.get("messageHash"),
            )
        except (UnicodeDecodeError, json.JSONDecodeError, ValueError, TypeError):
            raise ValueError("Invalid report format") from None
