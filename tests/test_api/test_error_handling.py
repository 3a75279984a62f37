"""Tests for the global error handlers and storage failure paths."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from backend.filesystem.json_store import JsonDocumentStore
from tests.conftest import create_test_client, login_admin

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from httpx import AsyncClient

    from backend.config import Settings
    from backend.schemas.app import AppDocument


@pytest.fixture
async def client(
    test_settings: Settings, sample_document: AppDocument
) -> AsyncGenerator[AsyncClient]:
    JsonDocumentStore(test_settings.data_file).save(sample_document)
    async with create_test_client(test_settings) as ac:
        await login_admin(ac)
        yield ac


class TestStorageFailures:
    async def test_failed_write_returns_500_and_keeps_document(
        self, client: AsyncClient
    ) -> None:
        with patch.object(JsonDocumentStore, "save", side_effect=OSError("disk full")):
            resp = await client.put("/api/admin/settings", json={"appTitle": "Lost"})
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Storage operation failed"}

        resp = await client.get("/api/admin/settings")
        assert resp.json()["appTitle"] is None

    async def test_corrupt_data_file_fails_startup(self, test_settings: Settings) -> None:
        test_settings.data_file.write_text("{not json")
        with pytest.raises(json.JSONDecodeError):
            async with create_test_client(test_settings):
                pass
        assert test_settings.data_file.read_text() == "{not json"


class TestHandlers:
    async def test_value_error_maps_to_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/admin/sidebar/items", json={"label": "Nested", "parentId": "sales"}
        )
        assert resp.status_code == 422
        assert resp.json() == {"detail": "Sections can only be added at the top level"}

    async def test_validation_error_lists_fields(self, client: AsyncClient) -> None:
        resp = await client.post("/api/admin/pages", json={"slug": "x"})
        assert resp.status_code == 422
        assert resp.json()["detail"] == [{"field": "name", "message": "Field required"}]
