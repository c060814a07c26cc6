"""Tests for atomic JSON rescue-file writes."""

import json

import pytest

from wanderer.utils import atomic_json_dump


@pytest.mark.unit
class TestAtomicJsonDump:
    @pytest.mark.asyncio
    async def test_writes_json(self, tmp_path):
        target = tmp_path / "nested" / "out.json"
        assert await atomic_json_dump([{"url": "https://example.com/"}], target)
        assert json.loads(target.read_text(encoding="utf-8")) == [{"url": "https://example.com/"}]

    @pytest.mark.asyncio
    async def test_replaces_existing_file_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "out.json"
        target.write_text("old", encoding="utf-8")
        assert await atomic_json_dump({"a": 1}, target)
        assert json.loads(target.read_text(encoding="utf-8")) == {"a": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]

    @pytest.mark.asyncio
    async def test_unserializable_data_returns_false(self, tmp_path):
        target = tmp_path / "out.json"
        circular: list = []
        circular.append(circular)
        assert not await atomic_json_dump(circular, target)
        assert not target.exists()
