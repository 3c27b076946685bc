"""
Tests for Notion export.
"""

from unittest.mock import MagicMock

import pytest

from dictanote.correction.models import NotionMetadata
from dictanote.export.notion import (
    MAX_CHILDREN_PER_REQUEST,
    MAX_TEXT_LENGTH,
    NotionExporter,
    build_children,
    build_properties,
    chunk_text,
)


@pytest.fixture
def metadata():
    return NotionMetadata(title="Standup", summary="We shipped.\nWe tested.\nWe rested.", tags=["work", "daily"])


@pytest.fixture
def client():
    client = MagicMock()
    client.pages.create.return_value = {"id": "page-123", "url": "https://www.notion.so/page-123"}
    return client


class TestChunkText:

    def test_short_text_is_one_chunk(self):
        assert chunk_text("hello") == ["hello"]

    def test_empty_text_has_no_chunks(self):
        assert chunk_text("") == []

    def test_chunks_respect_limit_and_rejoin(self):
        text = " ".join(f"word{i}" for i in range(1500))
        chunks = chunk_text(text)

        assert len(chunks) > 1
        assert all(len(chunk) <= MAX_TEXT_LENGTH for chunk in chunks)
        assert "".join(chunks) == text

    def test_breaks_after_whitespace(self):
        assert chunk_text("aaa bbb ccc", limit=5) == ["aaa ", "bbb ", "ccc"]

    def test_hard_cut_for_unbroken_runs(self):
        assert chunk_text("abcdefghij", limit=4) == ["abcd", "efgh", "ij"]

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            chunk_text("abc", limit=0)


class TestPageLayout:

    def test_properties_carry_metadata(self, metadata):
        properties = build_properties(metadata)

        assert properties["title"]["title"][0]["text"]["content"] == "Standup"
        assert properties["Summary"]["rich_text"][0]["text"]["content"] == metadata.summary
        assert properties["Tags"]["multi_select"] == [{"name": "work"}, {"name": "daily"}]

    def test_blank_tags_are_skipped(self):
        properties = build_properties(NotionMetadata(title="t", summary="s", tags=["a", " ", ""]))
        assert properties["Tags"]["multi_select"] == [{"name": "a"}]

    def test_children_layout(self, metadata):
        children = build_children("The transcript.", metadata)

        assert [block["type"] for block in children] == ["heading_2", "paragraph", "heading_2", "paragraph"]
        assert children[0]["heading_2"]["rich_text"][0]["text"]["content"] == "Summary"
        assert children[2]["heading_2"]["rich_text"][0]["text"]["content"] == "Original Transcript"
        assert children[3]["paragraph"]["rich_text"][0]["text"]["content"] == "The transcript."

    def test_long_transcript_is_split_into_paragraphs(self, metadata):
        transcript = "x" * (MAX_TEXT_LENGTH * 2 + 10)
        children = build_children(transcript, metadata)

        paragraphs = children[3:]
        assert len(paragraphs) == 3
        assert all(len(p["paragraph"]["rich_text"][0]["text"]["content"]) <= MAX_TEXT_LENGTH for p in paragraphs)


@pytest.mark.asyncio
class TestNotionExporter:

    async def test_save_creates_page(self, client, metadata):
        exporter = NotionExporter(database_id="db-1", client=client)

        result = await exporter.save("The transcript.", metadata)

        assert result.ok
        assert result.url == "https://www.notion.so/page-123"
        kwargs = client.pages.create.call_args.kwargs
        assert kwargs["parent"] == {"database_id": "db-1"}
        assert kwargs["properties"] == build_properties(metadata)
        client.blocks.children.append.assert_not_called()

    async def test_metadata_round_trips_into_page(self, client, metadata):
        original = metadata.to_dict()
        exporter = NotionExporter(database_id="db-1", client=client)

        await exporter.save("text", metadata)

        properties = client.pages.create.call_args.kwargs["properties"]
        assert properties["title"]["title"][0]["text"]["content"] == original["title"]
        assert properties["Summary"]["rich_text"][0]["text"]["content"] == original["summary"]
        assert [tag["name"] for tag in properties["Tags"]["multi_select"]] == original["tags"]

    async def test_overflow_blocks_are_appended_in_batches(self, client, metadata):
        # 250 paragraphs of transcript plus 3 summary blocks
        transcript = "y" * (MAX_TEXT_LENGTH * 250)
        exporter = NotionExporter(database_id="db-1", client=client)

        result = await exporter.save(transcript, metadata)

        assert result.ok
        assert len(client.pages.create.call_args.kwargs["children"]) == MAX_CHILDREN_PER_REQUEST
        appended = client.blocks.children.append.call_args_list
        assert [len(call.kwargs["children"]) for call in appended] == [100, 53]
        assert all(call.kwargs["block_id"] == "page-123" for call in appended)

    async def test_missing_database_id(self, client, metadata, monkeypatch):
        monkeypatch.delenv("NOTION_DATABASE_ID", raising=False)
        exporter = NotionExporter(client=client)

        result = await exporter.save("text", metadata)

        assert result.error == "Notion Database ID not configured"
        client.pages.create.assert_not_called()

    async def test_missing_api_key(self, metadata, monkeypatch):
        monkeypatch.delenv("NOTION_API_KEY", raising=False)
        exporter = NotionExporter(database_id="db-1")

        result = await exporter.save("text", metadata)

        assert result.error == "Notion API key not configured"
        assert not exporter.is_configured()

    async def test_api_failure_becomes_error(self, client, metadata):
        client.pages.create.side_effect = RuntimeError("validation_error")
        exporter = NotionExporter(database_id="db-1", client=client)

        result = await exporter.save("text", metadata)

        assert not result.ok
        assert result.error == "Failed to save to Notion. Check Database ID and Schema."
