"""File-backed Knowledge Bank: one text blob injected into every system instruction."""

from pathlib import Path

import aiofiles

from parley.config.logging import get_logger

logger = get_logger(__name__)


class KnowledgeBank:
    """Reads and writes the knowledge bank text file. A missing file reads as empty."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def get(self) -> str:
        if not self._path.exists():
            return ""
        async with aiofiles.open(self._path, encoding="utf-8") as f:
            return await f.read()

    async def set(self, text: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self._path, "w", encoding="utf-8") as f:
            await f.write(text)

    async def append(self, text: str) -> None:
        """Append a section, separated from existing content by a blank line."""
        current = await self.get()
        if current.strip():
            await self.set(current.rstrip("\n") + "\n\n" + text)
        else:
            await self.set(text)
        logger.info(f"Knowledge bank extended by {len(text)} characters")
