"""tests for the record upsert engine."""

from datetime import date, datetime
from unittest.mock import Mock

from src.data.errors import StoreError
from src.data.normalize import normalize_text_alert
from src.data.records import AlertRecord, ApodRecord, KeyPolicy, UpsertResult
from src.data.upsert import RecordUpserter
from stargazers.ingestion.cleanup import CleanupCoordinator


def _apod(title="Betelgeuse Imagined", **kwargs):
    values = {
        "date": date(2020, 1, 1),
        "title": title,
        "explanation": "Betelgeuse is in the news.",
        "media_url": "https://apod.nasa.gov/apod/image/2001/b_960.jpg",
        "hd_media_url": "https://apod.nasa.gov/apod/image/2001/b_1080.jpg",
        "media_type": "image",
        "copyright": "ESO",
    }
    values.update(kwargs)
    return ApodRecord(**values)


def _cme(note):
    return AlertRecord(
        record_type="cme",
        natural_key="2024-01-01T00:00:00-CME-001",
        title="CME Alert - 2024-01-01 00:00",
        body=note,
        published_at=datetime(2024, 1, 1),
        policy=KeyPolicy.UPDATE,
        fields={"activity_id": "2024-01-01T00:00:00-CME-001"},
    )


def test_apod_resync_is_inserted_without_duplicate(upserter, store):
    """same record twice: classified inserted both times, stored once."""
    assert upserter.upsert_apod(_apod()) == UpsertResult.INSERTED
    assert upserter.upsert_apod(_apod()) == UpsertResult.INSERTED

    assert store.count("apod") == 1


def test_apod_key_ignores_case_and_whitespace(upserter, store):
    upserter.upsert_apod(_apod(title="Betelgeuse Imagined"))
    upserter.upsert_apod(_apod(title="  betelgeuse   IMAGINED "))

    assert store.count("apod") == 1


def test_apod_update_in_place_writes_fields(upserter, store):
    upserter.upsert_apod(_apod())
    upserter.upsert_apod(_apod(explanation="Updated text.", copyright="ESO / L. Calcada"))

    record_id = store.find_by_key("apod", "betelgeuse-imagined")
    assert store.get(record_id)["body"] == "Updated text."
    assert store.get_fields(record_id) == {
        "media_type": "image",
        "original_media": "https://apod.nasa.gov/apod/image/2001/b_1080.jpg",
        "copyright": "ESO / L. Calcada",
        "apod_date": "2020-01-01",
        "local_media": "",
    }


def test_apod_resync_keeps_downloaded_media(upserter, store):
    upserter.upsert_apod(_apod())
    record_id = store.find_by_key("apod", "betelgeuse-imagined")
    store.set_field(record_id, "local_media", "/media/b_1080.jpg")

    upserter.upsert_apod(_apod())

    assert store.get_field(record_id, "local_media") == "/media/b_1080.jpg"


def test_apod_without_title_fails_without_lookup():
    store = Mock()
    upserter = RecordUpserter(store=store)

    assert upserter.upsert_apod(_apod(title="")) == UpsertResult.FAILED
    store.find_by_key.assert_not_called()


def test_apod_other_media_type_is_stored(upserter, store):
    record = _apod(title="Interactive Sky", media_type="other", media_url="", hd_media_url="")

    assert upserter.upsert_apod(record) == UpsertResult.INSERTED

    record_id = store.find_by_key("apod", "interactive-sky")
    assert store.get_field(record_id, "media_type") == "other"
    assert store.records_missing_local_media() == []


def test_store_error_classified_failed():
    store = Mock()
    store.find_by_key.return_value = None
    store.insert.side_effect = StoreError("disk full")
    upserter = RecordUpserter(store=store)

    assert upserter.upsert_apod(_apod()) == UpsertResult.FAILED


def test_cme_updates_in_place(upserter, store):
    assert upserter.upsert_alert(_cme("first note")) == UpsertResult.INSERTED
    assert upserter.upsert_alert(_cme("revised note")) == UpsertResult.UPDATED

    assert store.count("cme") == 1
    record_id = store.find_by_key("cme", "2024-01-01T00:00:00-CME-001")
    assert store.get(record_id)["body"] == "revised note"


def test_skip_existing_policy(upserter, store):
    record = AlertRecord(
        record_type="space_weather",
        natural_key="abc123",
        title="Space Weather Alert",
        body="K-index of 5 expected",
        policy=KeyPolicy.SKIP_EXISTING,
    )

    assert upserter.upsert_alert(record) == UpsertResult.INSERTED
    assert upserter.upsert_alert(record) == UpsertResult.SKIPPED
    assert store.count("space_weather") == 1


def test_latest_text_policy(upserter, store):
    def bulletin(text):
        return AlertRecord(
            record_type="geomag",
            natural_key=str(hash(text)),
            title="Geomagnetic Alert",
            body=text,
            policy=KeyPolicy.LATEST_TEXT,
            content=text,
        )

    assert upserter.upsert_alert(bulletin("Kp 3 expected")) == UpsertResult.INSERTED
    assert upserter.upsert_alert(bulletin("Kp 3 expected")) == UpsertResult.SKIPPED
    assert upserter.upsert_alert(bulletin("Kp 5 expected")) == UpsertResult.INSERTED
    # an older text returning counts as a change against the newest stored one
    assert upserter.upsert_alert(bulletin("Kp 3 expected")) == UpsertResult.INSERTED

    assert store.count("geomag") == 3
    assert store.get_field(store.latest("geomag"), "alert_content") == "Kp 3 expected"


def test_alert_without_identity_fails(upserter):
    record = AlertRecord(record_type="cme", natural_key="", title="CME Alert")

    assert upserter.upsert_alert(record) == UpsertResult.FAILED


def test_reverted_bulletin_survives_cleanup(upserter, store):
    synced = [
        ("Kp 3 expected", datetime(2024, 1, 2, 0, 0)),
        ("Kp 5 expected", datetime(2024, 1, 2, 0, 30)),
        ("Kp 3 expected", datetime(2024, 1, 2, 1, 0)),
    ]
    for text, now in synced:
        assert upserter.upsert_alert(normalize_text_alert("geomag", text, now=now)) == UpsertResult.INSERTED
    store.optimize = Mock()

    keys = [store.get(record_id)["natural_key"] for record_id in range(1, 4)]
    assert len(set(keys)) == 3

    assert CleanupCoordinator(store).run() == 0
    assert store.count("geomag") == 3
    assert store.get(store.latest("geomag"))["body"] == "Kp 3 expected"

    # the next sync of the same text is recognised as unchanged
    repeat = normalize_text_alert("geomag", "Kp 3 expected", now=datetime(2024, 1, 2, 1, 30))
    assert upserter.upsert_alert(repeat) == UpsertResult.SKIPPED
