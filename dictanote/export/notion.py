"""
Export transcripts to a Notion database.

Creates one page per transcript with the title, summary and tags as page
properties, and the summary plus full transcript in the page body. Notion
caps a rich-text item at 2000 characters and a children list at 100
blocks, so long text is chunked and overflow blocks are appended after the
page is created.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import asyncio
import logging
import os

from notion_client import Client

from ..correction.models import NotionMetadata

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 2000
MAX_CHILDREN_PER_REQUEST = 100


@dataclass
class ExportResult:
    """Outcome of an export: the page URL, or an error message."""
    url: Optional[str] = None
    page_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunk_text(text: str, limit: int = MAX_TEXT_LENGTH) -> List[str]:
    """
    Split text into pieces of at most ``limit`` characters.

    Prefers to break after whitespace so words stay whole; falls back to a
    hard cut for long unbroken runs.
    """
    if limit <= 0:
        raise ValueError(f"Chunk limit must be positive, got {limit}")

    chunks = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind(" ", 0, limit)
        cut = cut + 1 if cut > 0 else limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        chunks.append(remaining)
    return chunks


def _rich_text(content: str) -> List[Dict[str, Any]]:
    return [{"type": "text", "text": {"content": content}}]


def _heading(content: str) -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "heading_2",
        "heading_2": {"rich_text": _rich_text(content)},
    }


def _paragraphs(text: str) -> List[Dict[str, Any]]:
    return [
        {
            "object": "block",
            "type": "paragraph",
            "paragraph": {"rich_text": _rich_text(chunk)},
        }
        for chunk in chunk_text(text)
    ]


def build_properties(metadata: NotionMetadata) -> Dict[str, Any]:
    """
    Build page properties for the target database.

    The database is expected to have a title property plus a ``Summary``
    rich-text and a ``Tags`` multi-select property.
    """
    return {
        "title": {"title": _rich_text(metadata.title[:MAX_TEXT_LENGTH])},
        "Summary": {
            "rich_text": [item for chunk in chunk_text(metadata.summary) for item in _rich_text(chunk)]
        },
        "Tags": {"multi_select": [{"name": tag} for tag in metadata.tags if tag.strip()]},
    }


def build_children(content: str, metadata: NotionMetadata) -> List[Dict[str, Any]]:
    """Build the page body: summary section followed by the transcript."""
    return (
        [_heading("Summary")]
        + _paragraphs(metadata.summary)
        + [_heading("Original Transcript")]
        + _paragraphs(content)
    )


class NotionExporter:
    """
    Saves transcripts as Notion pages.

    Args:
        api_key: Notion integration token (defaults to NOTION_API_KEY)
        database_id: Target database (defaults to NOTION_DATABASE_ID)
        client: Preconfigured notion_client.Client, mainly for tests
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        database_id: Optional[str] = None,
        client: Optional[Client] = None
    ):
        self.api_key = api_key or os.getenv("NOTION_API_KEY")
        self.database_id = database_id or os.getenv("NOTION_DATABASE_ID")
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.database_id) and (self._client is not None or bool(self.api_key))

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(auth=self.api_key)
        return self._client

    async def save(self, content: str, metadata: NotionMetadata) -> ExportResult:
        """
        Create a page for ``content`` with ``metadata``.

        Returns:
            ExportResult with the page URL, or with ``error`` set. Never raises.
        """
        if not self.database_id:
            return ExportResult(error="Notion Database ID not configured")
        if self._client is None and not self.api_key:
            return ExportResult(error="Notion API key not configured")

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._sync_save, content, metadata)
        except Exception as e:
            logger.error(f"Notion save error: {e}")
            return ExportResult(error="Failed to save to Notion. Check Database ID and Schema.")

    def _sync_save(self, content: str, metadata: NotionMetadata) -> ExportResult:
        children = build_children(content, metadata)
        first, rest = children[:MAX_CHILDREN_PER_REQUEST], children[MAX_CHILDREN_PER_REQUEST:]

        page = self.client.pages.create(
            parent={"database_id": self.database_id},
            properties=build_properties(metadata),
            children=first,
        )
        page_id = page.get("id")

        for start in range(0, len(rest), MAX_CHILDREN_PER_REQUEST):
            batch = rest[start:start + MAX_CHILDREN_PER_REQUEST]
            self.client.blocks.children.append(block_id=page_id, children=batch)

        logger.info(f"Saved transcript to Notion page {page_id} ({len(children)} blocks)")
        return ExportResult(url=page.get("url"), page_id=page_id)
