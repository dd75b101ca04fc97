"""MIME-like email values as received from the upstream mail source."""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from email import policy
from email.message import Message
from email.parser import BytesParser
from pathlib import Path
from typing import Any

from .extractor.domain import normalize_address

CHARSET_RE = re.compile(r"charset\s*=\s*\"?([^\";\s]+)", re.IGNORECASE)
_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


class MessageError(ValueError):
    """Raised when an email value is missing or malformed."""


@dataclass(frozen=True)
class Header:
    name: str
    value: str


@dataclass(frozen=True)
class EmailPayload:
    """One MIME node; leaves carry base64 body data, containers carry parts."""

    headers: tuple[Header, ...] = ()
    mime_type: str | None = None
    body_data: str | None = None
    parts: tuple[EmailPayload, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> EmailPayload:
        if not isinstance(raw, Mapping):
            raise MessageError("payload must be a mapping.")
        headers = tuple(_parse_headers(raw.get("headers")))
        body = raw.get("body")
        body_data = body.get("data") if isinstance(body, Mapping) else None
        raw_parts = raw.get("parts") or ()
        if not isinstance(raw_parts, Sequence) or isinstance(raw_parts, (str, bytes)):
            raise MessageError("payload parts must be a list.")
        return cls(
            headers=headers,
            mime_type=_optional_str(raw.get("mimeType")),
            body_data=_optional_str(body_data),
            parts=tuple(cls.from_dict(part) for part in raw_parts),
        )


@dataclass(frozen=True)
class Email:
    """Email as supplied by the mail source: an id plus an optional payload tree."""

    id: str
    payload: EmailPayload | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Email:
        """Parse the Gmail-API-like JSON representation."""

        if not isinstance(raw, Mapping):
            raise MessageError("email must be a mapping.")
        email_id = raw.get("id")
        if not email_id:
            raise MessageError("email requires an 'id'.")
        payload = raw.get("payload")
        return cls(
            id=str(email_id),
            payload=EmailPayload.from_dict(payload) if payload is not None else None,
        )


def email_from_rfc822(raw_message: bytes | str | Message, *, email_id: str | None = None) -> Email:
    """Convert an RFC822 message into the MIME-like payload tree."""

    if isinstance(raw_message, Message):
        message = raw_message
    else:
        data = raw_message if isinstance(raw_message, bytes) else raw_message.encode("utf-8")
        message = BytesParser(policy=policy.default).parsebytes(data)
    if not tuple(message.keys()):
        raise MessageError("message has no headers.")
    identifier = email_id or (message.get("Message-ID") or "").strip()
    if not identifier:
        raise MessageError("message has no Message-ID and no explicit id was given.")
    return Email(id=identifier, payload=_payload_from_message(message))


def read_email(path: Path) -> Email:
    """Load an email from a `.json` (mail source shape) or RFC822 file."""

    file_path = Path(path)
    if not file_path.is_file():
        raise MessageError(f"Email file does not exist: {file_path}")
    if file_path.suffix.lower() == ".json":
        with file_path.open("r", encoding="utf-8") as handle:
            try:
                raw = json.load(handle)
            except json.JSONDecodeError as exc:
                raise MessageError(f"Invalid JSON in {file_path}: {exc}") from exc
        return Email.from_dict(raw)
    return email_from_rfc822(file_path.read_bytes(), email_id=file_path.name)


def header_map(payload: EmailPayload | None) -> dict[str, str]:
    """Return top-level headers keyed by lowercased name (last value wins).

    Headers with an empty value are skipped.
    """

    if payload is None:
        return {}
    return {
        header.name.lower(): header.value
        for header in payload.headers
        if header.name and header.value.strip()
    }


def header_value(payload: EmailPayload | None, name: str) -> str | None:
    if payload is None:
        return None
    wanted = name.lower()
    for header in payload.headers:
        if header.name.lower() == wanted and header.value:
            return header.value
    return None


def sender_address(email: Email) -> str | None:
    """Return the lowercased From address, if any."""

    return normalize_address(header_value(email.payload, "From"))


def decode_body_data(data: str) -> bytes:
    """Decode standard or URL-safe base64 body data, tolerating missing padding."""

    cleaned = "".join(data.split()).translate(_URLSAFE_TO_STANDARD)
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MessageError(f"Undecodable body data: {exc}") from exc


def decode_text(payload: EmailPayload) -> str:
    if not payload.body_data:
        return ""
    content_type = header_value(payload, "Content-Type") or ""
    match = CHARSET_RE.search(content_type)
    return _decode_bytes(decode_body_data(payload.body_data), match.group(1) if match else None)


def find_html(email: Email) -> str:
    """Return the first text/html body, searching nested parts depth-first."""

    payload = email.payload
    if payload is None:
        raise MessageError("Email payload is missing")
    if not payload.parts:
        if _is_html(payload) and payload.body_data:
            return decode_text(payload)
        return ""
    for part in iter_parts(payload.parts):
        if _is_html(part) and part.body_data:
            return decode_text(part)
    return ""


def iter_parts(parts: Sequence[EmailPayload]) -> Iterator[EmailPayload]:
    for part in parts:
        yield part
        if part.parts:
            yield from iter_parts(part.parts)


def _is_html(payload: EmailPayload) -> bool:
    return (payload.mime_type or "").lower() == "text/html"


def _parse_headers(value: Any) -> Iterator[Header]:
    if value is None:
        return
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        raise MessageError("headers must be a list of {name, value} mappings.")
    for entry in value:
        if not isinstance(entry, Mapping):
            raise MessageError("headers must be a list of {name, value} mappings.")
        name = entry.get("name")
        if not name:
            continue
        yield Header(name=str(name), value=str(entry.get("value") or ""))


def _payload_from_message(message: Message) -> EmailPayload:
    headers = tuple(Header(name=str(name), value=str(value)) for name, value in message.items())
    mime_type = message.get_content_type()
    if message.is_multipart():
        parts = message.get_payload()
        return EmailPayload(
            headers=headers,
            mime_type=mime_type,
            parts=tuple(_payload_from_message(part) for part in parts),
        )
    payload = message.get_payload(decode=True)
    if not isinstance(payload, (bytes, bytearray)):
        return EmailPayload(headers=headers, mime_type=mime_type)
    body = bytes(payload)
    if message.get_content_maintype() == "text":
        # Re-encode as UTF-8 and drop the original charset so decode_text agrees.
        body = _decode_bytes(body, message.get_content_charset()).encode("utf-8")
        headers = tuple(h for h in headers if h.name.lower() != "content-type")
        headers += (Header("Content-Type", f'{mime_type}; charset="utf-8"'),)
    return EmailPayload(
        headers=headers,
        mime_type=mime_type,
        body_data=base64.b64encode(body).decode("ascii"),
    )


def _decode_bytes(data: bytes, charset: str | None) -> str:
    candidates: list[str] = [charset] if charset else []
    for encoding in candidates + ["utf-8", "latin-1"]:
        try:
            return data.decode(encoding, errors="replace")
        except LookupError:
            continue
    return data.decode("utf-8", errors="ignore")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


__all__ = [
    "Email",
    "EmailPayload",
    "Header",
    "MessageError",
    "decode_body_data",
    "decode_text",
    "email_from_rfc822",
    "find_html",
    "header_map",
    "header_value",
    "iter_parts",
    "read_email",
    "sender_address",
]
