"""Tests for session conversion, caching and ordering."""

from datetime import datetime

import pytest

from pstracker.errors import MalformedNameConvention
from pstracker.exposure import BrightnessMode, ExposureSettings
from pstracker.registry import SessionRegistry
from pstracker.session import Session, collection_stats, parse_folder_name, sort_sessions
from pstracker.status import ChunkData, Field, Status
from pstracker.store import FingerprintStore
from tests.conftest import FakeSummarizer, make_summary, set_mtime, touch_files


def converted(root, registry, summarizer=None) -> Session:
    session = Session(root, registry, summarizer=summarizer)
    session.convert_to_session()
    return session


def test_parse_folder_name() -> None:
    assert parse_folder_name("12 Statue Of Liberty") == (12, "Statue Of Liberty")
    for bad in ("Statue", "12", "12 ", "twelve Statue", "-3 Statue"):
        with pytest.raises(MalformedNameConvention):
            parse_folder_name(bad)


def test_unconverted_folder_waits_for_approval(statue_dir, registry) -> None:
    session = Session(statue_dir, registry)

    assert not session.initialized
    assert registry.needs_approval() == [session]
    assert not session.id_assigned
    assert not session.store.exists()


def test_convert_new_session(statue_dir, registry) -> None:
    session = converted(statue_dir, registry)

    assert session.id == 12
    assert session.name == "Statue Of Liberty"
    assert session.raw_image_count() == 4
    assert session.processed_image_count() == 0
    assert session.status == Status.UNPROCESSED
    assert session.synchronized
    assert sorted(p.name for p in (statue_dir / "Raw").iterdir()) == [
        "DSC_0003.nef", "IMG_0001.CR2", "IMG_0002.cr2", "frame4.dng"]
    text = session.store.path.read_text(encoding="utf-8")
    assert "ID = 12" in text
    assert "RawImageCount = 4" in text
    assert "Status = 1" in text


def test_convert_twice_writes_the_same_record(statue_dir, registry) -> None:
    session = converted(statue_dir, registry)
    first = session.store.path.read_text(encoding="utf-8")

    session.convert_to_session()

    assert session.store.path.read_text(encoding="utf-8") == first


def test_reloaded_session_is_synchronized(statue_dir, registry) -> None:
    converted(statue_dir, registry)

    reloaded = Session(statue_dir, SessionRegistry())

    assert reloaded.initialized
    assert reloaded.synchronized
    assert reloaded.id == 12
    assert reloaded.cached_raw_count == 4
    assert reloaded.registry.next_id == 13


def test_stale_count_is_repaired_and_saved(statue_dir, registry) -> None:
    converted(statue_dir, registry)
    touch_files(statue_dir / "Raw", ["IMG_0005.CR2"])
    store = FingerprintStore(statue_dir)
    record = store.load()
    record.raw_count = 3
    store.save(record)

    reloaded = Session(statue_dir, SessionRegistry())
    assert reloaded.cached_raw_count == 3

    assert reloaded.raw_image_count() == 5
    assert store.load().raw_count == 5


def test_set_id_never_moves_counter_back(tmp_path, registry) -> None:
    session = Session(tmp_path / "a", registry, examine=False)
    assert not session.id_assigned

    session.set_id(41)
    session.set_id(7)
    assert registry.next_id == 42

    touch_files(tmp_path / "Bravo", ["b.cr2"])
    fresh = Session(tmp_path / "Bravo", registry)
    fresh.convert_to_session()
    assert fresh.id == 42


def test_malformed_folder_name_keeps_defaults(tmp_path, registry) -> None:
    root = tmp_path / "Statue"
    touch_files(root, ["a.cr2"])
    messages = []
    session = Session(root, registry, log_callback=messages.append)

    session.convert_to_session()

    assert session.id == 1
    assert session.name == ""
    assert any("'<id> <name>'" in m for m in messages)
    assert session.raw_image_count() == 1


def test_descriptor_parse_failure_degrades(tmp_path, registry) -> None:
    root = tmp_path / "5 Bridge"
    touch_files(root, ["bridge.psz", "p1.jpg", "p2.jpg"])
    session = converted(root, registry, FakeSummarizer())

    assert session.project_file.name == "bridge.psz"
    assert not session.has_project
    assert session.describe_align_phase() == "N/A"
    assert session.status == Status.RAW_PROCESSING_DONE
    text = session.store.path.read_text(encoding="utf-8")
    assert "ProjectFileName = bridge.psz" in text
    assert "[ChunkData]" not in text

    assert Session(root, SessionRegistry(), FakeSummarizer()).synchronized


def test_descriptor_summary_drives_status(tmp_path, registry) -> None:
    root = tmp_path / "6 Fountain"
    touch_files(root, ["fountain.psx", "p1.jpg", "p2.jpg", "p2_mask.jpg"])
    summarizer = FakeSummarizer(make_summary())
    session = converted(root, registry, summarizer)

    assert summarizer.calls == [root / "fountain.psx"]
    assert session.status == Status.TEXTURE_GEN_DONE
    assert session.processed_image_count() == 2
    assert session.mask_image_count() == 1
    assert session.describe_model_phase() == "250.0K faces"
    assert session.phase_scores() == {'align': 0, 'dense_cloud': 0, 'model': 1, 'texture': 0}

    reloaded = Session(root, SessionRegistry())
    assert reloaded.chunk == session.chunk
    assert reloaded.status == Status.TEXTURE_GEN_DONE


def test_project_with_no_processed_images_is_unknown(tmp_path, registry) -> None:
    root = tmp_path / "8 Gate"
    touch_files(root, ["gate.psz", "a.cr2"])
    session = converted(root, registry, FakeSummarizer(make_summary()))
    assert session.status == Status.UNKNOWN


def test_custom_status_survives_auto_derivation(statue_dir, registry) -> None:
    session = converted(statue_dir, registry)

    assert session.set_custom_status(2) == Status.TEXTURE_EDITS_DONE
    assert session.auto_set_status() == Status.TEXTURE_EDITS_DONE
    assert session.auto_set_status(overwrite_custom=True) == Status.UNPROCESSED
    assert session.set_custom_status(7) == Status.UNPROCESSED


def test_update_out_of_sync(statue_dir, registry) -> None:
    converted(statue_dir, registry)
    processed = statue_dir / "Processed"
    touch_files(processed, ["p1.tif"])
    set_mtime(processed, 1234567890)

    session = Session(statue_dir, SessionRegistry())
    assert not session.synchronized

    session.update_out_of_sync()

    assert session.synchronized
    assert session.check_synchronization()
    assert session.cached_processed_count == 1
    assert session.status == Status.RAW_PROCESSING_DONE


def test_corrupt_record_needs_resync(statue_dir, registry) -> None:
    converted(statue_dir, registry)
    FingerprintStore(statue_dir).path.write_text("not a record", encoding="utf-8")
    fresh = SessionRegistry()

    session = Session(statue_dir, fresh)

    assert session.record_corrupt
    assert session.initialized
    assert not session.synchronized
    assert fresh.needs_approval() == []

    session.update_out_of_sync()
    assert not session.record_corrupt
    assert FingerprintStore(statue_dir).load().raw_count == 4
    assert FingerprintStore(statue_dir).load().id == 12


def test_ignored_session_is_not_examined_further(statue_dir, registry) -> None:
    session = converted(statue_dir, registry)
    session.set_explicitly_ignored(True)

    reloaded = Session(statue_dir, SessionRegistry())

    assert reloaded.explicitly_ignored
    assert reloaded.name == ""


def test_exposure_is_persisted(statue_dir, registry) -> None:
    session = converted(statue_dir, registry)
    settings = ExposureSettings(bright_mode=BrightnessMode.SCALED, bright_scale=0.8)

    session.set_exposure(settings)

    assert Session(statue_dir, SessionRegistry()).exposure == settings


def make_unexamined(tmp_path, registry, folder, **attrs) -> Session:
    session = Session(tmp_path / folder, registry, examine=False)
    for key, value in attrs.items():
        setattr(session, key, value)
    return session


def test_undated_sessions_sort_after_dated(tmp_path, registry) -> None:
    dated = make_unexamined(tmp_path, registry, "1 A", captured_at=datetime(2023, 1, 1))
    undated = make_unexamined(tmp_path, registry, "2 B")

    assert dated.compare_to(undated, Field.PHOTO_DATE) == -1
    assert undated.compare_to(dated, Field.PHOTO_DATE) == 1
    assert sort_sessions([undated, dated], Field.PHOTO_DATE) == [dated, undated]


def test_compare_align_is_lexical(tmp_path, registry) -> None:
    high = make_unexamined(tmp_path, registry, "1 A", chunk=ChunkData(alignment_level="High"))
    low = make_unexamined(tmp_path, registry, "2 B", chunk=ChunkData(alignment_level="Low"))

    assert high.compare_to(low, Field.IMAGE_ALIGN_LEVEL) == -1
    assert low.compare_to(high, Field.IMAGE_ALIGN_LEVEL) == 1


def test_compare_uses_registry_sort_field(tmp_path, registry) -> None:
    first = make_unexamined(tmp_path, registry, "b", id=1, status=Status.FINAL_APPROVAL)
    second = make_unexamined(tmp_path, registry, "a", id=2, status=Status.UNPROCESSED)

    assert first.compare_to(second) == -1
    registry.sort_by = Field.PROJECT_STATUS
    assert first.compare_to(second) == 1
    assert first.compare_to(second, Field.PROJECT_FOLDER) == 1


def test_collection_stats(tmp_path, registry) -> None:
    with_model = make_unexamined(
        tmp_path, registry, "1 A",
        project_file=tmp_path / "a.psz",
        chunk=ChunkData(has_mesh=True, mesh_faces=1000, dense_cloud_images_used=10),
    )
    bare = make_unexamined(tmp_path, registry, "2 B")

    stats = collection_stats([with_model, bare])

    assert stats == {
        'total': 2,
        'unique_dirs': 2,
        'without_project': 1,
        'without_image_align': 1,
        'without_dense_cloud': 1,
        'without_model': 1,
    }


def test_unignoring_an_unconverted_folder_keeps_it_pending(tmp_path, registry) -> None:
    root = tmp_path / "9 Arch"
    touch_files(root, ["a.cr2"])
    session = Session(root, registry)
    session.set_explicitly_ignored(True)
    session.set_explicitly_ignored(False)
    fresh = SessionRegistry()

    reloaded = Session(root, fresh)

    assert not reloaded.initialized
    assert fresh.needs_approval() == [reloaded]
    reloaded.convert_to_session()
    assert reloaded.id == 9
    assert FingerprintStore(root).load().id == 9
