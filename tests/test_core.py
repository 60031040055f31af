import io

import pytest

from memorix.core import MediaIngestService
from memorix.exceptions import StorageConfigError
from memorix.models import StorageConfig

from conftest import make_jpeg


class InMemorySourceConfigs:
    def __init__(self, configs):
        self.configs = configs

    def get_source_config(self, config_id):
        return self.configs[config_id]


class InMemoryFiles:
    def __init__(self, fail_on=()):
        self.saved = []
        self.fail_on = set(fail_on)

    def save_file(self, record):
        if record.title in self.fail_on:
            raise RuntimeError("database is locked")
        self.saved.append(record)


def test_scan_and_save(tmp_path):
    make_jpeg(tmp_path / "a.jpg")
    make_jpeg(tmp_path / "b.jpg")
    (tmp_path / "c.jpg").write_bytes(b"corrupt")
    configs = InMemorySourceConfigs({1: StorageConfig(type="local", default_path=str(tmp_path))})
    files = InMemoryFiles()

    summary = MediaIngestService(configs, files).scan_and_save(1)

    assert [r.title for r in files.saved] == ["a.jpg", "b.jpg"]
    assert summary.scanned == 2
    assert summary.saved == 2
    assert summary.failed == 0
    assert [w.path.name for w in summary.warnings] == ["c.jpg"]


def test_failed_save_does_not_stop_the_batch(tmp_path):
    for name in ("a.jpg", "b.jpg", "c.jpg"):
        make_jpeg(tmp_path / name)
    configs = InMemorySourceConfigs({"src": StorageConfig(type="local", default_path=str(tmp_path))})
    files = InMemoryFiles(fail_on={"b.jpg"})

    summary = MediaIngestService(configs, files).scan_and_save("src")

    assert [r.title for r in files.saved] == ["a.jpg", "c.jpg"]
    assert (summary.scanned, summary.saved, summary.failed) == (3, 2, 1)


def test_scan_requires_default_path():
    configs = InMemorySourceConfigs({1: StorageConfig(type="nas", host="nas.local")})

    with pytest.raises(StorageConfigError, match="default path"):
        MediaIngestService(configs, InMemoryFiles()).scan_and_save(1)


def test_upload_goes_through_dispatcher(tmp_path):
    service = MediaIngestService(InMemorySourceConfigs({}), InMemoryFiles())
    cfg = StorageConfig(type="local", base_path=str(tmp_path / "out"))

    location = service.upload(io.BytesIO(b"bytes"), "a.jpg", cfg)

    assert location == str(tmp_path / "out" / "a.jpg")
    assert (tmp_path / "out" / "a.jpg").read_bytes() == b"bytes"
