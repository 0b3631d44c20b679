from __future__ import annotations

from pathlib import Path

import pytest

from static2jxl import app
from static2jxl.models import ConvertOptions

JPEG_HEADER = b"\xff\xd8\xff\xe0"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"
MIB = 1024 * 1024


def test_parser_maps_every_option(tmp_path) -> None:
    args = app.build_parser().parse_args(
        [
            str(tmp_path),
            "--in-place",
            "--skip-health-check",
            "--no-recursive",
            "--force-lossless",
            "-v",
            "--dry-run",
            "-j",
            "64",
            "-d",
            "0.5",
            "-e",
            "3",
            "--verify",
            "--no-progress",
        ]
    )
    options = app.options_from_args(args)

    assert options == ConvertOptions(
        target_dir=tmp_path,
        in_place=True,
        skip_health_check=True,
        recursive=False,
        force_lossless=True,
        verbose=True,
        dry_run=True,
        num_threads=32,
        distance=0.5,
        effort=3,
        verify_lossless=True,
        show_progress=False,
    )


def test_defaults(tmp_path) -> None:
    options = app.options_from_args(app.build_parser().parse_args([str(tmp_path)]))

    assert options.recursive and not options.in_place
    assert (options.num_threads, options.effort, options.distance) == (4, 7, None)


@pytest.mark.parametrize("effort", ["0", "10"])
def test_effort_out_of_range_is_rejected(tmp_path, effort) -> None:
    with pytest.raises(SystemExit):
        app.build_parser().parse_args([str(tmp_path), "-e", effort])


def test_run_converts_and_reports(tmp_path, make_file, fake_tools, capsys) -> None:
    make_file("a.jpg", JPEG_HEADER, 4096)
    make_file("b/big.png", PNG_HEADER, 3 * MIB)
    make_file("b/small.png", PNG_HEADER, 1024)
    options = ConvertOptions(target_dir=tmp_path, show_progress=False)

    assert app.run(options, fake_tools.toolchain()) == 0

    assert (tmp_path / "a.jxl").exists()
    assert (tmp_path / "b" / "big.jxl").exists()
    assert not (tmp_path / "b" / "small.jxl").exists()
    summary = capsys.readouterr().out
    assert "Success:        2" in summary
    assert "Small files: 1 (< 2MB threshold)" in summary


def test_run_exit_code_reflects_failures(tmp_path, make_file, make_tools) -> None:
    make_file("a.jpg", JPEG_HEADER, 4096)
    make_file("b.jpg", JPEG_HEADER, 4096)
    options = ConvertOptions(target_dir=tmp_path, show_progress=False)

    assert app.run(options, make_tools(valid=False).toolchain()) == 1
    assert sorted(path.name for path in tmp_path.iterdir()) == ["a.jpg", "b.jpg"]


def test_rollback_is_not_a_failure(tmp_path, make_file, make_tools) -> None:
    make_file("a.jpg", JPEG_HEADER, 4096)
    options = ConvertOptions(target_dir=tmp_path, show_progress=False)

    assert app.run(options, make_tools(ratio=1.2).toolchain()) == 0


def test_dry_run_touches_nothing(tmp_path, make_file, fake_tools, capsys) -> None:
    make_file("a.jpg", JPEG_HEADER, 4096)
    options = ConvertOptions(target_dir=tmp_path, dry_run=True, show_progress=False)

    assert app.run(options, fake_tools.toolchain()) == 0

    assert fake_tools.calls == []
    assert "[JPEG]" in capsys.readouterr().out
    assert sorted(path.name for path in tmp_path.iterdir()) == ["a.jpg"]


def test_main_dry_run(tmp_path, make_file, capsys) -> None:
    make_file("a.jpg", JPEG_HEADER, 4096)

    assert app.main([str(tmp_path), "--dry-run", "--no-progress"]) == 0
    assert "a.jpg" in capsys.readouterr().out


def test_main_rejects_missing_directory(tmp_path) -> None:
    assert app.main([str(tmp_path / "nope")]) == 1


def test_main_refuses_in_place_on_home(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    assert app.is_protected_directory(tmp_path)
    assert app.main([str(tmp_path), "--in-place"]) == 1


def test_protected_directories() -> None:
    assert app.is_protected_directory(Path("/"))
    assert app.is_protected_directory(Path("/definitely/not/here"))


def test_main_requires_encoder(tmp_path, make_file, monkeypatch) -> None:
    make_file("a.jpg", JPEG_HEADER, 4096)
    monkeypatch.setattr(app, "get_tool_status", lambda skip: {"cjxl": "missing", "exiftool": "missing"})

    assert app.main([str(tmp_path), "--no-progress"]) == 1
