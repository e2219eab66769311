"""Tests for the per-session metadata record."""

from datetime import datetime

import pytest

from pstracker.errors import PersistenceCorruption
from pstracker.exposure import BrightnessMode, ExposureSettings, WhiteBalanceMode
from pstracker.status import ChunkData, Status
from pstracker.store import Fingerprints, FingerprintStore, SessionRecord, format_datetime, parse_datetime


def sample_record() -> SessionRecord:
    return SessionRecord(
        id=12,
        name="Statue Of Liberty",
        description="North face",
        notes=["reshoot base", "windy"],
        captured_at=datetime(2024, 5, 3, 14, 30, 0),
        status=Status.MODEL_GEN_DONE,
        raw_count=120,
        processed_count=118,
        mask_count=0,
        chunk=ChunkData(
            chunk_count=1,
            chunk_images=118,
            chunk_cameras=120,
            alignment_level="High",
            alignment_feature_limit=40000,
            alignment_tie_limit=4000,
            dense_cloud_level="Medium",
            dense_cloud_images_used=110,
            has_mesh=True,
            mesh_faces=250000,
            mesh_verts=125000,
        ),
        project_file_name="statue.psz",
        fingerprints=Fingerprints(1700000000, 1700000100, 1700000200, 0),
    )


def test_missing_record_loads_as_none(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    assert not store.exists()
    assert store.load() is None


def test_record_survives_save_and_load(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    record = sample_record()

    assert store.save(record)

    assert store.load() == record


def test_layout_of_written_record(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.save(sample_record())
    text = store.path.read_text(encoding="utf-8")

    assert "[General]" in text
    assert "ID = 12" in text
    assert "Notes\\size = 2" in text
    assert "Notes\\1\\note = reshoot base" in text
    assert "DateTime = Fri May 3 14:30:00 2024" in text
    assert "ProjectFileName = statue.psz" in text
    assert "ExplicitlyIgnored = false" in text


def test_empty_fields_are_omitted(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.save(sample_record())

    store.save(SessionRecord(id=3, raw_count=4, processed_count=0))
    text = store.path.read_text(encoding="utf-8")

    assert "Name =" not in text
    assert "Description =" not in text
    assert "DateTime =" not in text
    assert "Notes\\" not in text
    assert "[ChunkData]" not in text
    assert "ProjectFileName" not in text
    assert "RawTimestamp = 0" in text


def test_other_sections_survive_a_save(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    settings = ExposureSettings(
        wb_mode=WhiteBalanceMode.CUSTOM,
        wb_custom=(2.0, 1.0, 1.5, 1.0),
        bright_mode=BrightnessMode.SCALED,
        bright_scale=1.25,
    )
    store.save_exposure(settings)

    store.save(sample_record())

    assert store.load_exposure() == settings
    assert store.load().id == 12


def test_exposure_defaults_without_record(tmp_path) -> None:
    assert FingerprintStore(tmp_path).load_exposure() == ExposureSettings()


def test_blocked_writes_skip_save(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    with store.blocked_writes():
        assert store.save(sample_record()) is False
    assert not store.exists()
    assert store.save(sample_record()) is True


def test_ignored_record_loads_only_the_flag(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.save(sample_record())
    store.save_ignored(True, True)

    record = store.load()

    assert record.explicitly_ignored
    assert record.name == ""


def test_unparseable_record_is_corruption(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.path.write_text("ID = 4\nno section header\n", encoding="utf-8")
    with pytest.raises(PersistenceCorruption):
        store.load()


def test_non_integer_value_is_corruption(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.path.write_text("[General]\nID = twelve\n", encoding="utf-8")
    with pytest.raises(PersistenceCorruption):
        store.load()


def test_out_of_range_status_loads_as_unknown(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.path.write_text("[General]\nID = 4\nStatus = 42\n", encoding="utf-8")
    assert store.load().status == Status.UNKNOWN


def test_datetime_text_uses_english_names() -> None:
    stamp = datetime(2023, 12, 24, 9, 5, 7)
    assert format_datetime(stamp) == "Sun Dec 24 09:05:07 2023"
    assert parse_datetime("Sun Dec 24 09:05:07 2023") == stamp
    assert parse_datetime("So. Dez. 24 09:05:07 2023") is None


def test_unreadable_datetime_is_reported(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.path.write_text("[General]\nID = 4\nDateTime = dim. déc. 24 09:05:07 2023\n", encoding="utf-8")
    messages = []

    record = store.load(messages.append)

    assert record.captured_at is None
    assert record.id == 4
    assert any("unreadable DateTime" in m for m in messages)


def test_flag_only_record_is_not_initialized(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.save_ignored(False, False)
    assert store.load().initialized is False

    store.path.write_text("[General]\nExplicitlyIgnored = false\n", encoding="utf-8")
    assert store.load().initialized is False


def test_failed_write_leaves_no_temp_file(tmp_path) -> None:
    store = FingerprintStore(tmp_path)
    store.path.mkdir()

    with pytest.raises(OSError):
        store.save(sample_record())

    assert not (tmp_path / "psh_meta.ini.tmp").exists()
