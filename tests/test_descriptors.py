"""Tests for the descriptor summarizer factory and exposure settings."""

from pstracker import descriptors
from pstracker.descriptors import UnavailableSummarizer, get_summarizer, register_summarizer
from pstracker.errors import DescriptorParseError
from pstracker.exposure import (
    NEUTRAL_MULTIPLIERS,
    BrightnessMode,
    ExposureSettings,
    WhiteBalanceMode,
)
from tests.conftest import FakeSummarizer, make_summary


def test_unknown_provider_falls_back_to_unavailable() -> None:
    assert isinstance(get_summarizer(), UnavailableSummarizer)
    assert isinstance(get_summarizer("metashape-9000"), UnavailableSummarizer)


def test_unavailable_summarizer_returns_error_value(tmp_path) -> None:
    summarizer = UnavailableSummarizer()
    descriptor = tmp_path / "scan.psz"

    missing = summarizer.try_summarize(descriptor)
    descriptor.write_bytes(b"PK")
    present = summarizer.try_summarize(descriptor)

    assert isinstance(missing, DescriptorParseError)
    assert "not found" in str(missing)
    assert isinstance(present, DescriptorParseError)
    assert "No descriptor parser" in str(present)


def test_registered_provider_is_used(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(descriptors, "_REGISTRY", dict(descriptors._REGISTRY))
    summary = make_summary()

    register_summarizer("Fake", lambda: FakeSummarizer(summary))
    summarizer = get_summarizer("fake")

    assert isinstance(summarizer, FakeSummarizer)
    assert summarizer.try_summarize(tmp_path / "scan.psz") is summary


def test_exposure_consistency_resets_ignored_values() -> None:
    settings = ExposureSettings(
        wb_mode=WhiteBalanceMode.CAMERA,
        wb_custom=(2.0, 1.0, 1.5, 1.0),
        bright_mode=BrightnessMode.AUTO_HISTOGRAM,
        bright_scale=3.0,
    )

    consistent = settings.make_independently_consistent()

    assert consistent.wb_custom == NEUTRAL_MULTIPLIERS
    assert consistent.bright_scale == 1.0
    assert consistent.wb_mode == WhiteBalanceMode.CAMERA


def test_exposure_consistency_keeps_used_values() -> None:
    settings = ExposureSettings(
        wb_mode=WhiteBalanceMode.CUSTOM,
        wb_custom=(2.0, 1.0, 1.5, 1.0),
        bright_mode=BrightnessMode.SCALED,
        bright_scale=3.0,
    )
    assert settings.make_independently_consistent() == settings
