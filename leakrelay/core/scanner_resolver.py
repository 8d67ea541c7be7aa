from __future__ import annotations

import hashlib
import io
import logging
import os
import platform
import shutil
import stat
import subprocess
import sys
import tarfile

from dataclasses import dataclass
from pathlib import Path
from urllib import error as url_error
from urllib import request as url_request


logger = logging.getLogger(__name__)

SCANNER_NAME = "gitleaks"
RELEASE_BASE_URL = "https://github.com/gitleaks/gitleaks/releases/download"


class ScannerResolutionError(RuntimeError):
    """Raised when no gitleaks binary can be located for the run."""


@dataclass(frozen=True)
class ResolvedScanner:
    path: str
    version: str | None
    source: str


def resolve_scanner(version: str, explicit_path: str | None = None) -> ResolvedScanner:
    """Resolve a runnable gitleaks binary for the pinned version.

    Resolution order:
    1. Explicit path override
    2. Cached download of the pinned version
    3. A binary on PATH reporting the pinned version
    4. Download of the pinned release, verified against its checksums file
    5. A binary on PATH with a different version (logged as a warning)
    """
    pinned = _normalize_version(version)
    cache_path = _cache_path(pinned)
    searched: list[str] = []

    if explicit_path:
        path = Path(explicit_path)
        if _is_runnable(path):
            return ResolvedScanner(path=str(path.resolve()), version=installed_version(str(path)), source="explicit")
        raise ScannerResolutionError(f"Scanner path not runnable: {path}")

    searched.append(str(cache_path))
    if _is_runnable(cache_path):
        return ResolvedScanner(path=str(cache_path), version=pinned, source="cache")

    on_path = shutil.which(_binary_name())
    on_path_version = None
    if on_path:
        searched.append(on_path)
        on_path_version = installed_version(on_path)
        if on_path_version == pinned:
            return ResolvedScanner(path=on_path, version=on_path_version, source="path")

    downloaded = _download_release(pinned, cache_path)
    if downloaded is not None and _is_runnable(downloaded):
        return ResolvedScanner(path=str(downloaded), version=pinned, source="download")

    if on_path:
        logger.warning(
            "Using %s from PATH with version %s; pinned version is %s",
            on_path,
            on_path_version or "unknown",
            pinned,
        )
        return ResolvedScanner(path=on_path, version=on_path_version, source="path-unpinned")

    raise ScannerResolutionError(
        "Unable to locate gitleaks. "
        f"version={pinned} platform={_platform_tag()} searched=[{', '.join(searched)}]. "
        "Install gitleaks, pass --scanner-path, or allow the pinned release download."
    )


def installed_version(path: str) -> str | None:
    try:
        output = subprocess.run(
            [path, "version"],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        ).stdout
    except (OSError, subprocess.SubprocessError):
        return None
    value = output.strip().splitlines()[0] if output.strip() else ""
    return _normalize_version(value) or None


def release_asset_name(version: str) -> str | None:
    tag = _platform_tag()
    if tag is None:
        return None
    return f"gitleaks_{version}_{tag}.tar.gz"


def _normalize_version(value: str) -> str:
    value = value.strip()
    if value.startswith("v"):
        return value[1:]
    return value


def _binary_name() -> str:
    if sys.platform.startswith("win"):
        return f"{SCANNER_NAME}.exe"
    return SCANNER_NAME


def _platform_tag() -> str | None:
    if sys.platform.startswith("linux"):
        system = "linux"
    elif sys.platform == "darwin":
        system = "darwin"
    else:
        # Windows releases ship as zip archives and are not auto-installed.
        return None
    machine = platform.machine().strip().lower()
    mapping = {
        "x86_64": "x64",
        "amd64": "x64",
        "arm64": "arm64",
        "aarch64": "arm64",
    }
    arch = mapping.get(machine)
    if arch is None:
        return None
    return f"{system}_{arch}"


def _cache_path(version: str) -> Path:
    return Path.home() / ".cache" / "leakrelay" / SCANNER_NAME / version / _binary_name()


def _download_release(version: str, cache_path: Path) -> Path | None:
    if os.environ.get("LEAKRELAY_DISABLE_AUTO_DOWNLOAD", "false").lower() == "true":
        return None

    asset = release_asset_name(version)
    if asset is None:
        return None
    base = f"{RELEASE_BASE_URL}/v{version}"

    try:
        checksums = _download_bytes(f"{base}/gitleaks_{version}_checksums.txt").decode("utf-8")
        archive = _download_bytes(f"{base}/{asset}")
    except (UnicodeDecodeError, OSError, url_error.URLError) as exc:
        logger.warning("gitleaks %s download failed: %s", version, exc)
        return None

    expected = _checksum_for(checksums, asset)
    digest = hashlib.sha256(archive).hexdigest()
    if not expected or digest.lower() != expected.lower():
        logger.warning("gitleaks %s archive failed checksum verification", version)
        return None

    payload = _extract_binary(archive)
    if payload is None:
        return None

    cache_path.parent.mkdir(parents=True, exist_ok=True)
    cache_path.write_bytes(payload)
    _ensure_executable(cache_path)
    logger.info("Installed gitleaks %s to %s", version, cache_path)
    return cache_path


def _download_bytes(url: str, timeout: int = 60) -> bytes:
    with url_request.urlopen(url, timeout=timeout) as response:
        return response.read()


def _checksum_for(checksums: str, asset: str) -> str | None:
    for line in checksums.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1].lstrip("*") == asset:
            return parts[0]
    return None


def _extract_binary(archive: bytes) -> bytes | None:
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as bundle:
            for member in bundle.getmembers():
                if member.isfile() and Path(member.name).name == SCANNER_NAME:
                    handle = bundle.extractfile(member)
                    if handle is not None:
                        return handle.read()
    except (tarfile.TarError, OSError):
        return None
    return None


def _is_runnable(path: Path) -> bool:
    if not path.exists() or not path.is_file():
        return False
    if sys.platform.startswith("win"):
        return True
    return os.access(path, os.X_OK)


def _ensure_executable(path: Path) -> None:
    if sys.platform.startswith("win"):
        return
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR)
