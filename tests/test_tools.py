from __future__ import annotations

from dataclasses import replace
import os

import pytest

from static2jxl import tools
from static2jxl.metadata import migrate_metadata, preserved_percent, restore_timestamps


@pytest.fixture(autouse=True)
def fresh_tool_cache():
    tools.clear_tool_cache()
    yield
    tools.clear_tool_cache()


def test_missing_executable_reports_127() -> None:
    result = tools.run_command(["static2jxl-no-such-tool", "--help"])

    assert result.returncode == 127


def test_unexecutable_tool_reports_failure(tmp_path) -> None:
    tool = tmp_path / "cjxl"
    tool.write_text("#!/bin/sh\n")
    tool.chmod(0o644)

    result = tools.run_command([str(tool), "--help"])

    assert result.returncode == 126


def test_tool_lookup_is_cached(monkeypatch) -> None:
    lookups = []

    def fake_which(name):
        lookups.append(name)
        return f"/opt/bin/{name}" if name == "cjxl" else None

    monkeypatch.setattr(tools.shutil, "which", fake_which)

    assert tools.get_tool_executable(["cjxl"]) == "/opt/bin/cjxl"
    assert tools.get_tool_executable(["cjxl"]) == "/opt/bin/cjxl"
    assert tools.get_tool_executable(["djxl"]) is None
    assert tools.get_tool_executable(["djxl"]) is None
    assert lookups == ["cjxl", "djxl"]
    assert tools.get_tool_status() == {"cjxl": "/opt/bin/cjxl", "exiftool": "missing", "djxl": "missing"}


def test_missing_tools_degrade(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(tools.shutil, "which", lambda name: None)
    image = tmp_path / "a.jxl"
    image.write_bytes(b"\xff\x0a")

    assert tools.validate_jxl(image) is None
    assert tools.copy_metadata_exiftool(tmp_path / "a.jpg", image) is False
    assert tools.count_tags_exiftool(image) is None


def test_restore_timestamps(tmp_path) -> None:
    source, dest = tmp_path / "a.jpg", tmp_path / "a.jxl"
    source.write_bytes(b"a")
    dest.write_bytes(b"b")
    os.utime(source, ns=(1_000_000_000_000_000_000, 1_200_000_000_000_000_000))

    assert restore_timestamps(source, dest)
    assert dest.stat().st_mtime_ns == 1_200_000_000_000_000_000
    assert not restore_timestamps(tmp_path / "gone.jpg", dest)


def test_preserved_percent(tmp_path, fake_tools) -> None:
    toolchain = fake_tools.toolchain()
    assert preserved_percent(toolchain, tmp_path / "a", tmp_path / "b") == 100

    counts = {tmp_path / "a": 40, tmp_path / "b": 20}
    toolchain = replace(toolchain, count_tags=counts.get)
    assert preserved_percent(toolchain, tmp_path / "a", tmp_path / "b") == 50


def test_verbose_migration_reports_low_preservation(tmp_path, fake_tools, caplog) -> None:
    source, dest = tmp_path / "a.jpg", tmp_path / "a.jxl"
    source.write_bytes(b"a")
    dest.write_bytes(b"b")
    counts = {source: 40, dest: 10}
    toolchain = replace(fake_tools.toolchain(), count_tags=counts.get)

    assert migrate_metadata(source, dest, toolchain, verify=True)
    assert "only 25% preserved" in caplog.text
