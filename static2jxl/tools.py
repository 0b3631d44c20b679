from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import logging
import os
import platform
import shutil
import subprocess
import sys
from typing import Callable, Sequence

from .models import ConvertOptions

logger = logging.getLogger(__name__)

WINDOWS_CREATIONFLAGS = (
    getattr(subprocess, "CREATE_NO_WINDOW", 0) if sys.platform.startswith("win") else 0
)
ENCODER = ["cjxl"]
DECODER = ["djxl"]
METADATA_TOOL = ["exiftool"]

VENDOR_ROOT = Path(__file__).resolve().parent.parent / "vendor"
_SYSTEM_NAMES = {"Darwin": "macos", "Windows": "windows"}
_ARCH_NAMES = {"arm64": "arm64", "aarch64": "arm64", "x86_64": "x64", "amd64": "x64"}


@dataclass(frozen=True)
class Toolchain:
    """External capabilities used by the conversion pipeline.

    ``validate`` returns ``None`` when no validator is installed, so callers can
    fall back to signature-only checks.
    """

    encode: Callable[[Path, Path, bool, ConvertOptions], bool]
    validate: Callable[[Path], bool | None]
    decode: Callable[[Path, Path], bool]
    copy_xattrs: Callable[[Path, Path], bool]
    copy_metadata: Callable[[Path, Path], bool]
    copy_creation_time: Callable[[Path, Path], bool]
    count_tags: Callable[[Path], int | None]


def run_command(command: list[str]) -> subprocess.CompletedProcess[bytes]:
    # A new session keeps a terminal Ctrl-C away from in-flight encoders.
    try:
        return subprocess.run(
            command,
            capture_output=True,
            creationflags=WINDOWS_CREATIONFLAGS,
            start_new_session=not sys.platform.startswith("win"),
        )
    except FileNotFoundError as exc:
        return subprocess.CompletedProcess(command, 127, b"", str(exc).encode())
    except OSError as exc:
        return subprocess.CompletedProcess(command, 126, b"", str(exc).encode())


def build_encode_command(
    encoder: str, source: Path, output: Path, reversible: bool, options: ConvertOptions
) -> list[str]:
    command = [encoder, str(source), str(output)]
    if reversible:
        command.append("--lossless_jpeg=1")
    else:
        distance = 0.0 if options.distance is None else options.distance
        command += ["-d", f"{distance:g}"]
    command += ["-e", str(options.effort)]
    if options.encoder_threads > 0:
        command += ["--num_threads", str(options.encoder_threads)]
    if not options.verbose:
        command.append("--quiet")
    return command


def encode_jxl(source: Path, output: Path, reversible: bool, options: ConvertOptions) -> bool:
    encoder = get_tool_executable(ENCODER)
    if not encoder:
        return False
    result = run_command(build_encode_command(encoder, source, output, reversible, options))
    if result.returncode != 0:
        logger.debug("cjxl failed for %s: %s", source, result.stderr.decode(errors="ignore").strip())
    return result.returncode == 0 and output.exists()


def validate_jxl(path: Path) -> bool | None:
    decoder = get_tool_executable(DECODER)
    if not decoder:
        return None
    result = run_command([decoder, str(path), "--disable_output", "--quiet"])
    return result.returncode == 0


def decode_jxl(path: Path, output: Path) -> bool:
    decoder = get_tool_executable(DECODER)
    if not decoder:
        return False
    result = run_command([decoder, str(path), str(output), "--quiet"])
    return result.returncode == 0 and output.exists()


def copy_metadata_exiftool(source: Path, dest: Path) -> bool:
    exiftool = get_tool_executable(METADATA_TOOL)
    if not exiftool:
        return False
    command = [
        exiftool,
        "-tagsfromfile",
        str(source),
        "-all:all",
        "-icc_profile",
        "-overwrite_original",
        str(dest),
    ]
    return run_command(command).returncode == 0


def count_tags_exiftool(path: Path) -> int | None:
    exiftool = get_tool_executable(METADATA_TOOL)
    if not exiftool:
        return None
    result = run_command([exiftool, "-s", "-s", "-s", str(path)])
    if result.returncode != 0:
        return None
    return sum(1 for line in result.stdout.splitlines() if line.strip())


def copy_xattrs(source: Path, dest: Path) -> bool:
    if hasattr(os, "listxattr"):
        try:
            for name in os.listxattr(source):
                os.setxattr(dest, name, os.getxattr(source, name))
        except OSError as exc:
            logger.debug("xattr copy failed for %s: %s", dest, exc)
            return False
        return True
    xattr = get_tool_executable(["xattr"])
    if not xattr:
        return detect_platform() != "macos"
    listing = run_command([xattr, str(source)])
    if listing.returncode != 0:
        return False
    ok = True
    for name in listing.stdout.decode(errors="ignore").splitlines():
        name = name.strip()
        if not name:
            continue
        value = run_command([xattr, "-px", name, str(source)])
        if value.returncode != 0:
            ok = False
            continue
        hex_value = "".join(value.stdout.decode(errors="ignore").split())
        if run_command([xattr, "-wx", name, hex_value, str(dest)]).returncode != 0:
            ok = False
    return ok


def copy_creation_time(source: Path, dest: Path) -> bool:
    if detect_platform() != "macos":
        return True
    get_info = get_tool_executable(["GetFileInfo"])
    set_file = get_tool_executable(["SetFile"])
    if not get_info or not set_file:
        return False
    created = run_command([get_info, "-d", str(source)])
    if created.returncode != 0:
        return False
    stamp = created.stdout.decode(errors="ignore").strip()
    return run_command([set_file, "-d", stamp, str(dest)]).returncode == 0


def default_toolchain() -> Toolchain:
    return Toolchain(
        encode=encode_jxl,
        validate=validate_jxl,
        decode=decode_jxl,
        copy_xattrs=copy_xattrs,
        copy_metadata=copy_metadata_exiftool,
        copy_creation_time=copy_creation_time,
        count_tags=count_tags_exiftool,
    )


def get_tool_executable(names: Sequence[str]) -> str | None:
    """Return the first of ``names`` found in the vendor tree or on PATH."""
    return _locate(tuple(names))


@lru_cache(maxsize=None)
def _locate(names: tuple[str, ...]) -> str | None:
    for directory in vendor_dirs():
        for name in names:
            for candidate in (directory / name, directory / f"{name}.exe"):
                if candidate.is_file():
                    return str(candidate)
    return next(filter(None, map(shutil.which, names)), None)


def vendor_dirs() -> list[Path]:
    system = detect_platform()
    return [VENDOR_ROOT / system / detect_arch(), VENDOR_ROOT / system, VENDOR_ROOT]


def clear_tool_cache() -> None:
    _locate.cache_clear()


def detect_platform() -> str:
    return _SYSTEM_NAMES.get(platform.system(), "linux")


def detect_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine)


def get_tool_status(skip_health_check: bool = False) -> dict[str, str]:
    status = {
        "cjxl": get_tool_executable(ENCODER) or "missing",
        "exiftool": get_tool_executable(METADATA_TOOL) or "missing",
    }
    if not skip_health_check:
        status["djxl"] = get_tool_executable(DECODER) or "missing"
    return status
