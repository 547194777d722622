from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from eventhub.utils import clean_images, is_blank, parse_datetime, to_naive_utc, utcnow


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_parse_datetime_accepts_trailing_z():
    assert parse_datetime("2026-03-01T12:00:00Z") == datetime(2026, 3, 1, 12, 0, 0)


def test_parse_datetime_converts_offsets_to_utc():
    assert parse_datetime("2026-03-01T14:30:00+02:00") == datetime(2026, 3, 1, 12, 30)


def test_parse_datetime_passes_datetimes_through():
    aware = datetime(2026, 3, 1, 7, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert parse_datetime(aware) == datetime(2026, 3, 1, 12, 0)
    naive = datetime(2026, 3, 1, 12, 0)
    assert parse_datetime(naive) is naive


def test_parse_datetime_empty_values():
    assert parse_datetime(None) is None
    assert parse_datetime("") is None


def test_parse_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        parse_datetime("next tuesday")


def test_to_naive_utc_none():
    assert to_naive_utc(None) is None


@pytest.mark.parametrize("value", [None, "", "   ", [], {}, ()])
def test_is_blank_true(value):
    assert is_blank(value) is True


@pytest.mark.parametrize("value", ["x", [""], 0, datetime(2026, 1, 1)])
def test_is_blank_false(value):
    assert is_blank(value) is False


def test_clean_images_keeps_urls_and_data_images():
    images = [
        "https://img.example.com/a.png",
        "http://img.example.com/b.png",
        "data:image/png;base64,AAAA",
        "javascript:alert(1)",
        "/relative/path.png",
        42,
    ]
    assert clean_images(images) == images[:3]


def test_clean_images_empty():
    assert clean_images(None) == []
    assert clean_images([]) == []
