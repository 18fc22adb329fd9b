"""Plugin archive validation and extraction (zip, tar, tar.gz)."""

from __future__ import annotations

import io
import json
import logging
import os
import re
import shutil
import stat
import tarfile
import uuid
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from cfp.config import settings
from cfp.core.exceptions import FileSystemError
from cfp.plugins.types import PluginManifest, manifest_errors, validation_messages

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")
_COPY_CHUNK = 64 * 1024


@dataclass
class ArchiveMember:
    name: str
    is_dir: bool
    size: int
    # zip: ZipInfo, tar: TarInfo
    raw: object


@dataclass
class ArchiveValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    manifest: Optional[PluginManifest] = None
    archive_type: Optional[str] = None
    root_dir: str = ""


@dataclass
class ExtractionResult:
    success: bool
    plugin_name: Optional[str] = None
    plugin_path: Optional[str] = None
    conflict: bool = False
    error: Optional[str] = None
    manifest: Optional[PluginManifest] = None


def detect_archive_type(data: bytes) -> Optional[str]:
    """Identify the container from magic bytes."""
    if data[:4] in (b"PK\x03\x04", b"PK\x05\x06"):
        return "zip"
    if data[:2] == b"\x1f\x8b":
        return "tar.gz"
    if len(data) > 262 and data[257:262] == b"ustar":
        return "tar"
    return None


def is_safe_path(name: str) -> bool:
    """Reject absolute paths, drive letters and parent traversal."""
    if not name or "\x00" in name:
        return False
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or _DRIVE_LETTER.match(normalized):
        return False
    return ".." not in normalized.split("/")


def _iter_zip(archive: zipfile.ZipFile) -> Iterator[ArchiveMember]:
    for info in archive.infolist():
        mode = info.external_attr >> 16
        if mode and stat.S_ISLNK(mode):
            raise ValueError(f"Archive contains a symbolic link: {info.filename}")
        yield ArchiveMember(info.filename, info.is_dir(), info.file_size, info)


def _iter_tar(archive: tarfile.TarFile) -> Iterator[ArchiveMember]:
    for info in archive.getmembers():
        if info.issym() or info.islnk():
            raise ValueError(f"Archive contains a link: {info.name}")
        if not (info.isfile() or info.isdir()):
            raise ValueError(f"Archive contains an unsupported entry: {info.name}")
        yield ArchiveMember(info.name, info.isdir(), info.size, info)


class _ArchiveReader:
    """Common read interface over zip and tar archives held in memory."""

    def __init__(self, data: bytes, archive_type: str):
        self.archive_type = archive_type
        if archive_type == "zip":
            self._archive = zipfile.ZipFile(io.BytesIO(data))
        else:
            self._archive = tarfile.open(fileobj=io.BytesIO(data), mode="r:*")

    def __enter__(self) -> "_ArchiveReader":
        return self

    def __exit__(self, *exc) -> None:
        self._archive.close()

    def members(self) -> List[ArchiveMember]:
        if self.archive_type == "zip":
            return list(_iter_zip(self._archive))
        return list(_iter_tar(self._archive))

    def open(self, member: ArchiveMember) -> IO[bytes]:
        if self.archive_type == "zip":
            return self._archive.open(member.raw)
        handle = self._archive.extractfile(member.raw)
        if handle is None:
            raise ValueError(f"Cannot read archive entry: {member.name}")
        return handle


def _find_manifest(members: List[ArchiveMember]) -> Tuple[Optional[ArchiveMember], str]:
    """Manifest may sit at the root or one directory deep; returns (member, root_dir)."""
    nested = None
    for member in members:
        if member.is_dir:
            continue
        parts = member.name.replace("\\", "/").strip("/").split("/")
        if parts == [MANIFEST_FILENAME]:
            return member, ""
        if len(parts) == 2 and parts[1] == MANIFEST_FILENAME and nested is None:
            nested = (member, parts[0] + "/")
    if nested:
        return nested
    return None, ""


def validate_archive(data: bytes) -> ArchiveValidation:
    """Inspect an archive without touching the filesystem. Errors are collected."""
    if len(data) > settings.PLUGIN_MAX_ARCHIVE_SIZE:
        limit_mb = settings.PLUGIN_MAX_ARCHIVE_SIZE // (1024 * 1024)
        return ArchiveValidation(False, [f"Archive exceeds maximum size of {limit_mb}MB"])

    archive_type = detect_archive_type(data)
    if archive_type is None:
        return ArchiveValidation(False, ["Unsupported archive format. Use .zip or .tar.gz"])

    result = ArchiveValidation(False, archive_type=archive_type)
    try:
        with _ArchiveReader(data, archive_type) as reader:
            members = reader.members()

            unsafe = [m.name for m in members if not is_safe_path(m.name)]
            if unsafe:
                result.errors.append(f"Archive contains unsafe paths: {', '.join(unsafe[:5])}")

            total = sum(m.size for m in members if not m.is_dir)
            if total > settings.PLUGIN_MAX_EXTRACTED_SIZE:
                limit_mb = settings.PLUGIN_MAX_EXTRACTED_SIZE // (1024 * 1024)
                result.errors.append(f"Extracted size exceeds maximum of {limit_mb}MB")

            manifest_member, root_dir = _find_manifest(members)
            if manifest_member is None:
                result.errors.append("Archive does not contain a manifest.json")
                return result
            result.root_dir = root_dir

            with reader.open(manifest_member) as handle:
                raw = handle.read()
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError, ValueError) as exc:
        result.errors.append(f"Corrupt archive: {exc}")
        return result

    try:
        manifest_data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        result.errors.append("manifest.json contains invalid JSON")
        return result

    problems = manifest_errors(manifest_data)
    if problems:
        result.errors.extend(problems)
        return result

    try:
        result.manifest = PluginManifest.model_validate(manifest_data)
    except ValidationError as exc:
        result.errors.extend(validation_messages(exc))
        return result
    result.valid = not result.errors
    return result


def get_plugins_dir() -> Path:
    return Path(settings.get_plugins_dir())


def _is_within(base: Path, candidate: Path) -> bool:
    return candidate == base or base in candidate.parents


def _write_members(reader: _ArchiveReader, members: List[ArchiveMember], root_dir: str, staging: Path) -> None:
    staging_root = staging.resolve()
    written = 0
    for member in members:
        name = member.name.replace("\\", "/")
        if root_dir:
            if not name.startswith(root_dir):
                # stray top-level entries such as __MACOSX/
                continue
            name = name[len(root_dir):]
        name = name.strip("/")
        if not name:
            continue

        destination = (staging / name).resolve()
        if not _is_within(staging_root, destination):
            raise ValueError(f"Path escapes plugin directory: {member.name}")

        if member.is_dir:
            destination.mkdir(parents=True, exist_ok=True)
            continue

        destination.parent.mkdir(parents=True, exist_ok=True)
        with reader.open(member) as source, open(destination, "wb") as target:
            while True:
                chunk = source.read(_COPY_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > settings.PLUGIN_MAX_EXTRACTED_SIZE:
                    raise ValueError("Extracted size exceeds maximum allowed")
                target.write(chunk)


def extract_plugin(data: bytes, force: bool = False) -> ExtractionResult:
    """
    Validate and unpack an archive into <plugins_dir>/<manifest name>.

    Files are written to a hidden staging directory first and moved into
    place only when extraction succeeded, so a failed extraction never
    destroys an existing install.
    """
    validation = validate_archive(data)
    if not validation.valid or validation.manifest is None:
        return ExtractionResult(False, error="; ".join(validation.errors) or "Invalid archive")

    manifest = validation.manifest
    plugins_dir = get_plugins_dir()
    plugins_dir.mkdir(parents=True, exist_ok=True)
    target = plugins_dir / manifest.name

    if target.exists() and not force:
        return ExtractionResult(
            False,
            plugin_name=manifest.name,
            plugin_path=str(target),
            conflict=True,
            error=f"Plugin directory '{manifest.name}' already exists",
            manifest=manifest,
        )

    staging = plugins_dir / f".staging-{manifest.name}-{uuid.uuid4().hex[:8]}"
    try:
        staging.mkdir(parents=True)
        with _ArchiveReader(data, validation.archive_type) as reader:
            _write_members(reader, reader.members(), validation.root_dir, staging)

        if target.exists():
            shutil.rmtree(target)
        os.replace(staging, target)
    except (OSError, ValueError, zipfile.BadZipFile, tarfile.TarError) as exc:
        logger.error("Failed to extract plugin %s: %s", manifest.name, exc)
        shutil.rmtree(staging, ignore_errors=True)
        return ExtractionResult(False, plugin_name=manifest.name, error=f"Extraction failed: {exc}")

    logger.info("Extracted plugin %s v%s to %s", manifest.name, manifest.version, target)
    return ExtractionResult(True, plugin_name=manifest.name, plugin_path=str(target), manifest=manifest)


def remove_plugin_files(name: str) -> bool:
    """Delete a plugin directory. Returns False when there was nothing to delete."""
    base = get_plugins_dir().resolve()
    target = (base / name).resolve()
    if target == base or base not in target.parents or target.parent != base:
        raise FileSystemError(f"Refusing to remove path outside plugins directory: {name}")
    if not target.exists():
        return False
    shutil.rmtree(target)
    logger.info("Removed plugin files for %s", name)
    return True
