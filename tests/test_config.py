"""Settings from the environment and the objects built from them."""

import logging
from datetime import date

from rich.logging import RichHandler

from dropsheet.config import PACKAGE_DATA, Settings, build_engine, configure_logging


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings()
    assert settings.holidays_path == PACKAGE_DATA / "holidays.yaml"
    assert settings.templates_path == PACKAGE_DATA / "job_templates.yaml"
    assert settings.lead_times().business_days_to_drop == 10


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DROPSHEET_DATA_DIR", str(tmp_path / "jobs-store"))
    monkeypatch.setenv("DROPSHEET_CORE_ART_SUBMISSION_DAYS", "42")
    settings = Settings()
    assert settings.lead_times().core_art_submission_days == 42
    assert settings.data_path.is_dir()


def test_build_engine_with_federal_fill(monkeypatch, tmp_path):
    monkeypatch.setenv("DROPSHEET_INCLUDE_FEDERAL_HOLIDAYS", "true")
    engine = build_engine(Settings())
    assert engine.is_holiday(date(2026, 12, 25))
    assert engine.is_holiday(date(2027, 7, 5))


def test_build_engine_packaged_only(monkeypatch):
    monkeypatch.delenv("DROPSHEET_INCLUDE_FEDERAL_HOLIDAYS", raising=False)
    engine = build_engine(Settings())
    assert engine.is_holiday(date(2026, 12, 25))
    assert not engine.is_holiday(date(2027, 7, 5))


def test_configure_logging_is_idempotent():
    root = logging.getLogger()
    before = [h for h in root.handlers if not isinstance(h, RichHandler)]
    configure_logging("info")
    configure_logging("debug")
    rich_handlers = [h for h in root.handlers if isinstance(h, RichHandler)]
    assert len(rich_handlers) == 1
    assert root.level == logging.DEBUG
    assert [h for h in root.handlers if not isinstance(h, RichHandler)] == before
