"""Service wiring and logging setup for Affinity."""

import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .bus import EventBus
from .config import Config
from .extraction import KeywordExtractionClient, create_extraction_client
from .indexing import BatchReport, IndexingOrchestrator, IndexOutcome
from .related import RelatedNote, RelatedNotesQuery
from .store import MetadataStore, VaultStore


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Send logs to stderr and, optionally, to a rotating file."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level
    )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level="DEBUG"
        )


class AffinityService:
    """Owns the event bus, the store and the engine components."""

    def __init__(
        self,
        config: Config,
        client: Optional[KeywordExtractionClient] = None,
        store: Optional[MetadataStore] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.config = config
        self.event_bus = event_bus or EventBus()
        self.store = store or VaultStore(config.vault_path, self.event_bus)
        self.client = client or create_extraction_client(config.extraction)
        self.indexer = IndexingOrchestrator(config, self.store, self.client, self.event_bus)
        self.query = RelatedNotesQuery(config, self.store)

    async def start(self) -> Optional[BatchReport]:
        """Start the bus; run one stale-note pass when auto_reindex is on."""
        await self.event_bus.start()
        logger.debug(f"Affinity service started for vault {self.config.vault_path}")

        if self.config.indexing.auto_reindex:
            logger.info("Auto reindex enabled, checking for modified notes")
            return await self.indexer.reindex_stale()
        return None

    async def stop(self) -> None:
        await self.client.aclose()
        await self.event_bus.stop()
        logger.debug("Affinity service stopped")

    async def __aenter__(self) -> "AffinityService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def index_one(self, path: str) -> IndexOutcome:
        return await self.indexer.index_note(path)

    async def index_all(self, cancel=None) -> BatchReport:
        return await self.indexer.index_all(cancel)

    async def reindex_stale(self, cancel=None) -> BatchReport:
        return await self.indexer.reindex_stale(cancel)

    async def remove_all_keywords(self, cancel=None) -> BatchReport:
        return await self.indexer.remove_all_keywords(cancel)

    async def query_related(self, path: str) -> List[RelatedNote]:
        return await self.query.find_related(path)
