"""Tests for the database record models."""

from datetime import datetime
from types import SimpleNamespace

import pytest

from nlarchive.models import ArchivedItem, ItemSource, SyncRun


def test_item_reads_from_attributes():
    row = SimpleNamespace(
        id="0123456789abcdef",
        display_name="Issue 12",
        subject="Borges y el tiempo",
        preview_text=None,
        sent_at=datetime(2024, 3, 1, 10, 0),
        source="mailchimp",
        source_id=None,
        content_path="mailchimp/0123456789abcdef.html",
        hidden=False,
        raw_payload=None,
        created_at=None,
        updated_at=None,
    )

    item = ArchivedItem.model_validate(row)

    assert item.source == ItemSource.BATCH_IMPORT
    assert item.has_content is True


def test_record_models_use_config_dict():
    assert ArchivedItem.model_config["from_attributes"] is True
    assert SyncRun.model_config["from_attributes"] is True


def test_item_id_must_be_sixteen_hex_characters():
    with pytest.raises(ValueError):
        ArchivedItem(
            id="NOT-AN-ID",
            subject="x",
            sent_at=datetime(2024, 3, 1),
            source=ItemSource.EXTERNAL_API,
        )
