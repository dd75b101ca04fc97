from __future__ import annotations

import base64
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from quince.message import Email


def encode_body(text: str) -> str:
    """URL-safe base64 without padding, as mail APIs deliver it."""

    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def email_dict(
    email_id: str = "msg-1",
    *,
    sender: str | None = "Alice <alice@example.com>",
    headers: Iterable[tuple[str, str]] = (),
    html: str | None = None,
    text: str | None = None,
) -> dict[str, Any]:
    header_list = [{"name": "From", "value": sender}] if sender is not None else []
    header_list += [{"name": name, "value": value} for name, value in headers]
    parts = []
    if text is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": encode_body(text)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": encode_body(html)}})
    payload: dict[str, Any] = {"headers": header_list, "mimeType": "multipart/alternative"}
    if parts:
        payload["parts"] = parts
    else:
        payload["mimeType"] = "text/plain"
    return {"id": email_id, "payload": payload}


def build_email(email_id: str = "msg-1", **kwargs: Any) -> Email:
    return Email.from_dict(email_dict(email_id, **kwargs))


@pytest.fixture
def make_email() -> Callable[..., Email]:
    return build_email


@pytest.fixture
def make_email_dict() -> Callable[..., dict[str, Any]]:
    return email_dict
