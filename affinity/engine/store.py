"""Note storage: metadata blocks on markdown files in a vault directory."""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiofiles
import aiofiles.os
import yaml
from frontmatter.default_handlers import YAMLHandler
from loguru import logger

from .bus import Event, EventBus
from .errors import MetadataFormatError, NoteNotFoundError, PersistenceError
from .models import Note

NOTE_CHANGED = "note.changed"

# Opening and closing lines of three or more dashes, as the YAML handler detects them
_LEADING_BLOCK = re.compile(r"\A-{3,}[ \t]*\n.*?^-{3,}[ \t]*(?:\n|\Z)", re.DOTALL | re.MULTILINE)


class MetadataStore(ABC):
    """
    What the engine needs from whoever owns the notes.

    ``set_metadata`` persists the whole block and announces the change with a
    ``note.changed`` event some time later.
    """

    @abstractmethod
    async def list_notes(self) -> List[str]:
        ...

    @abstractmethod
    async def read_note(self, path: str) -> Note:
        ...

    async def get_metadata(self, path: str) -> Dict[str, Any]:
        return (await self.read_note(path)).metadata

    @abstractmethod
    async def set_metadata(self, path: str, metadata: Dict[str, Any]) -> None:
        ...

    async def remove_keys(self, path: str, keys: Iterable[str]) -> bool:
        """Drop ``keys`` from a note's block. Returns False if none were there."""
        metadata = dict(await self.get_metadata(path))
        present = [key for key in keys if key in metadata]
        if not present:
            return False
        for key in present:
            del metadata[key]
        await self.set_metadata(path, metadata)
        return True


class VaultStore(MetadataStore):
    """
    Markdown files under a vault directory, metadata in a leading YAML block.

    Paths are vault-relative with forward slashes. Hidden directories
    (``.obsidian``, ``.trash``...) are never listed.
    """

    def __init__(self, vault_path: Path, event_bus: Optional[EventBus] = None):
        self.vault_path = Path(vault_path)
        self.event_bus = event_bus

    def _resolve(self, path: str) -> Path:
        return self.vault_path / path

    async def list_notes(self) -> List[str]:
        paths = []
        for file_path in self.vault_path.rglob("*.md"):
            relative = file_path.relative_to(self.vault_path)
            if any(part.startswith(".") for part in relative.parts):
                continue
            paths.append(relative.as_posix())
        return sorted(paths)

    async def _read_text(self, path: str) -> str:
        file_path = self._resolve(path)
        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise NoteNotFoundError(path) from e
        except UnicodeDecodeError as e:
            raise MetadataFormatError(f"{path} is not valid UTF-8: {e}") from e

    def _parse(self, path: str, text: str) -> Dict[str, Any]:
        """Metadata from the leading block, {} when there is none."""
        handler = YAMLHandler()
        if not handler.detect(text):
            return {}
        try:
            fm, _ = handler.split(text)
        except ValueError:
            # Opening line with no closing boundary: not a block
            return {}
        try:
            metadata = handler.load(fm)
        except yaml.YAMLError as e:
            raise MetadataFormatError(f"{path}: {e}") from e
        if metadata is None:
            return {}
        if not isinstance(metadata, dict):
            raise MetadataFormatError(f"{path}: metadata block is not a mapping")
        return metadata

    async def read_note(self, path: str) -> Note:
        text = await self._read_text(path)
        metadata = self._parse(path, text)
        stat = await aiofiles.os.stat(self._resolve(path))
        return Note(
            path=path,
            content=text,
            metadata=dict(metadata),
            modified_ms=stat.st_mtime_ns // 1_000_000,
        )

    async def set_metadata(self, path: str, metadata: Dict[str, Any]) -> None:
        text = await self._read_text(path)
        self._parse(path, text)

        # The body is kept byte for byte; only the block is rewritten
        match = _LEADING_BLOCK.match(text)
        body = text[match.end():] if match else text

        if metadata:
            block = YAMLHandler().export(dict(metadata), sort_keys=False)
            rendered = f"---\n{block}\n---\n{body}"
        else:
            rendered = body

        await self._write_atomic(path, rendered)
        logger.debug(f"Wrote metadata block for {path} ({len(metadata)} keys)")

        if self.event_bus is not None and self.event_bus.running:
            await self.event_bus.emit(Event(
                type=NOTE_CHANGED,
                data={"path": path},
                source="vault_store"
            ))

    async def _write_atomic(self, path: str, text: str) -> None:
        target = self._resolve(path)
        tmp = target.with_name(f".{target.name}.tmp")
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(text)
                await f.flush()
            await aiofiles.os.replace(tmp, target)
        except OSError as e:
            try:
                await aiofiles.os.remove(tmp)
            except OSError:
                pass
            raise PersistenceError(path, e) from e
