"""
Media sending.

Remote media is downloaded into the managed downloads directory so gateways
can attach a local file. Local references pass through unchanged. The tool
result carries an in-band tag the gateway strips and dispatches:
``[MEDIA_SEND:<path-or-url>|<type>]``.
"""

import uuid
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import aiofiles
import httpx

from parley.config.logging import get_logger
from parley.config.settings import ToolSettings
from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, require_str

logger = get_logger(__name__)

MEDIA_TYPES = ("image", "video", "audio", "document")

_CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "audio/mpeg": "mp3",
    "application/pdf": "pdf",
}


def media_tag(location: str, media_type: str) -> str:
    return f"[MEDIA_SEND:{location}|{media_type}]"


def guess_extension(content_type: str | None, url: str) -> str:
    """Extension from the content type, else a short URL suffix, else ``bin``."""
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in _CONTENT_TYPE_EXTENSIONS:
            return _CONTENT_TYPE_EXTENSIONS[mime]
    suffix = Path(urlparse(url).path).suffix.lstrip(".").lower()
    if suffix and len(suffix) < 5 and suffix.isalnum():
        return suffix
    return "bin"


class SendMediaTool(ToolHandler):
    tool = BuiltinTool.SEND_MEDIA
    description = (
        "Send an image, video, audio clip or document to the user from a URL "
        "or a previously downloaded file path."
    )
    parameters = {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "Public URL or downloaded file path of the media"},
            "media_type": {"type": "string", "enum": list(MEDIA_TYPES)},
        },
        "required": ["url", "media_type"],
    }

    def __init__(self, client: httpx.AsyncClient, settings: ToolSettings):
        self._client = client
        self._settings = settings

    async def _download(self, url: str, media_type: str) -> Path:
        response = await self._client.get(url, follow_redirects=True)
        response.raise_for_status()

        ext = guess_extension(response.headers.get("content-type"), url)
        target_dir = self._settings.downloads_dir / media_type
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"{uuid.uuid4()}.{ext}"

        async with aiofiles.open(path, "wb") as f:
            await f.write(response.content)
        return path

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        url = require_str(arguments, "url")
        media_type = str(arguments.get("media_type") or "image").strip().lower()
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"media_type must be one of {', '.join(MEDIA_TYPES)}")

        # Local references are checked by the gateway before sending
        if urlparse(url).scheme not in ("http", "https"):
            return media_tag(url, media_type)

        try:
            path = await self._download(url, media_type)
        except (httpx.HTTPError, OSError) as e:
            # The gateway can still try the remote URL directly
            logger.warning(f"Media download failed for {url}, sending URL instead: {e}")
            return media_tag(url, media_type)

        logger.info(f"Downloaded {media_type} to {path}")
        return media_tag(str(path), media_type)
