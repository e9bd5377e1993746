"""
Outbound media handling for gateways.

Replies may carry a ``[MEDIA_SEND:<path-or-url>|<type>]`` tag produced by the
send_media tool. Gateways strip the tag, check that local files come from the
managed downloads directory and are fresh, and then attach the media.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path

from parley.config.logging import get_logger

logger = get_logger(__name__)

MEDIA_TAG_RE = re.compile(r"\[MEDIA_SEND:(.+?)\|(.+?)\]")

DEFAULT_CAPTION = "Here is the media you requested:"
REJECTED_OUTSIDE = "I cannot send that file for security reasons."
REJECTED_STALE = "I cannot send this file because it has expired. Please ask me to download it again."
REJECTED_MISSING = "I cannot send that file because it is no longer available."


class MediaRejected(Exception):
    """A local media path failed validation; the message is user-facing."""


@dataclass(frozen=True)
class MediaDispatch:
    location: str
    media_type: str

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))


@dataclass
class OutboundReply:
    text: str
    media: MediaDispatch | None = None


def extract_media_tag(text: str) -> tuple[str, MediaDispatch | None]:
    """Remove the first media tag from ``text`` and return it separately."""
    match = MEDIA_TAG_RE.search(text)
    if match is None:
        return text, None
    stripped = (text[: match.start()] + text[match.end():]).strip()
    return stripped, MediaDispatch(location=match.group(1).strip(), media_type=match.group(2).strip())


def validate_local_media(location: str, downloads_dir: Path, max_age_seconds: float) -> Path:
    """
    Resolve a local media path and check it may be sent.

    Raises:
        MediaRejected: The path escapes the downloads directory, is missing, or is stale
    """
    allowed = Path(downloads_dir).resolve()
    resolved = Path(location).resolve()
    if not resolved.is_relative_to(allowed):
        logger.error(f"Blocked attempt to send file outside downloads directory: {resolved}")
        raise MediaRejected(REJECTED_OUTSIDE)

    try:
        age = time.time() - resolved.stat().st_mtime
    except OSError as e:
        logger.error(f"Media file not accessible: {resolved}: {e}")
        raise MediaRejected(REJECTED_MISSING) from e

    if age > max_age_seconds:
        logger.error(f"Blocked attempt to send stale file (age {age:.0f}s): {resolved}")
        raise MediaRejected(REJECTED_STALE)
    return resolved


def prepare_reply(text: str, downloads_dir: Path, max_age_seconds: float) -> OutboundReply:
    """Turn a model reply into text plus optional media for delivery."""
    stripped, media = extract_media_tag(text)
    if media is None:
        return OutboundReply(text=text)

    if not media.is_remote:
        try:
            validate_local_media(media.location, downloads_dir, max_age_seconds)
        except MediaRejected as e:
            return OutboundReply(text=str(e))

    return OutboundReply(text=stripped or DEFAULT_CAPTION, media=media)
