from datetime import datetime, timedelta, timezone

from rustytablet.utils import isoformat_utc, parse_iso, slugify, truncate


def test_slugify_folds_accents_and_punctuation():
    assert slugify("Café Owners: Rust & Ruin!") == "cafe-owners-rust-ruin"
    assert slugify("") == "untitled"
    assert slugify("???") == "untitled"


def test_isoformat_utc_uses_milliseconds_and_utc():
    offset = timezone(timedelta(hours=2))
    value = datetime(2025, 3, 1, 10, 0, 0, 123456, tzinfo=offset)
    assert isoformat_utc(value) == "2025-03-01T08:00:00.123+00:00"


def test_naive_datetimes_are_treated_as_utc():
    assert isoformat_utc(datetime(2025, 3, 1, 8, 0)) == "2025-03-01T08:00:00.000+00:00"


def test_parse_iso_accepts_z_suffix():
    parsed = parse_iso("2025-03-01T08:00:00.000Z")
    assert parsed == datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_stored_timestamps_sort_chronologically():
    base = datetime(2025, 3, 1, 23, 59, 59, 999000, tzinfo=timezone.utc)
    stamps = [isoformat_utc(base + timedelta(milliseconds=step)) for step in (0, 1, 1000)]
    assert stamps == sorted(stamps)


def test_truncate():
    assert truncate("abcdef", 3) == "abc"
    assert truncate("abc", 10) == "abc"
