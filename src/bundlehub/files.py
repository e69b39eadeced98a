"""
File Operations for bundlehub

This module provides file operation utilities including atomic writes,
archive validation, safe extraction and in-memory archive assembly.
"""

import io
import json
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from bundlehub.exceptions import CorruptedArchiveError, ExtractionError
from bundlehub.log_utils import logger

Pathish = Union[str, Path]


def _is_within_base(real_base_dir: str, candidate: str) -> bool:
    """
    Determine whether the candidate path resides within the given base directory.

    Returns:
        True if the candidate path is inside `real_base_dir`, False otherwise.
    """
    try:
        return os.path.commonpath([real_base_dir, candidate]) == real_base_dir
    except ValueError:
        return False


def atomic_write(
    file_path: Pathish, writer_func: Callable[[Any], None], suffix: str = ".tmp"
) -> bool:
    """
    Write data to a file atomically by writing to a temporary file and atomically replacing the target on success.

    Parameters:
        file_path (Pathish): Destination file path to be written. Parent directories are created.
        writer_func (Callable[[Any], None]): Callable that receives an open text file-like object and writes the desired content to it.
        suffix (str): Suffix to use for the temporary file name (default ".tmp").

    Returns:
        bool: `True` if the temporary write and atomic replace succeeded, `False` on any error.
    """
    file_path = str(file_path)
    parent = os.path.dirname(file_path) or "."
    try:
        os.makedirs(parent, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=parent, prefix="tmp-", suffix=suffix)
    except OSError as e:
        logger.error(f"Could not create temporary file for {file_path}: {e}")
        return False

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as temp_f:
            writer_func(temp_f)
        os.replace(temp_path, file_path)
    except (UnicodeEncodeError, OSError, TypeError, ValueError) as e:
        logger.error(f"Could not write to {file_path}: {e}")
        return False
    finally:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass
    return True


def atomic_write_json(file_path: Pathish, data: Any) -> bool:
    """
    Atomically write the given data to the target file as pretty-printed JSON.

    Returns:
        bool: `True` if the file was written and moved into place successfully, `False` on error.
    """
    return atomic_write(
        file_path, lambda f: json.dump(data, f, indent=2), suffix=".json"
    )


def read_json(file_path: Pathish) -> Optional[Any]:
    """
    Read a JSON document, returning None when the file is missing or unreadable.

    Decoding problems are logged at warning level so a corrupt file never aborts
    a bulk scan.
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read JSON from {file_path}: {e}")
        return None


def safe_rmtree(path_to_remove: Pathish, base_dir: Pathish) -> bool:
    """
    Remove a file or directory tree, refusing to touch anything outside `base_dir`.

    Returns:
        bool: `True` if the item was removed or did not exist, `False` if removal was skipped or failed.
    """
    path_to_remove = str(path_to_remove)
    if not os.path.lexists(path_to_remove):
        return True
    try:
        real_base_dir = os.path.realpath(base_dir)
        if os.path.islink(path_to_remove):
            os.unlink(path_to_remove)
            return True
        real_target = os.path.realpath(path_to_remove)
        if not _is_within_base(real_base_dir, real_target):
            logger.warning(
                "Skipping removal of %s because it resolves outside the base directory",
                path_to_remove,
            )
            return False
        if os.path.isdir(path_to_remove):
            shutil.rmtree(path_to_remove)
        else:
            os.remove(path_to_remove)
    except OSError as e:
        logger.error("Error removing %s: %s", path_to_remove, e)
        return False
    return True


def is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory references, or null bytes, `False` otherwise.
    """
    if not member_name or member_name.startswith("/") or member_name.startswith("\\"):
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized):
        return False
    if normalized == "..":
        return False
    if normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    if "\x00" in normalized:
        return False
    return True


def safe_extract_path(extract_dir: str, file_path: str) -> str:
    """
    Resolve a safe absolute extraction path and prevent directory traversal.

    Raises:
        ValueError: If the resolved path is outside extract_dir.
    """
    real_extract_dir = os.path.realpath(extract_dir)
    prospective_path = os.path.join(real_extract_dir, file_path)
    normalized_path = os.path.realpath(prospective_path)

    if not _is_within_base(real_extract_dir, normalized_path):
        raise ValueError(
            f"Unsafe extraction path '{file_path}' is outside base '{extract_dir}'"
        )

    return normalized_path


def open_zip_buffer(buffer: bytes) -> zipfile.ZipFile:
    """
    Open an in-memory bundle archive.

    Raises:
        CorruptedArchiveError: If the buffer is empty or not a valid ZIP archive.
    """
    if not buffer:
        raise CorruptedArchiveError("Bundle archive is empty")
    try:
        archive = zipfile.ZipFile(io.BytesIO(buffer), "r")
    except zipfile.BadZipFile as e:
        raise CorruptedArchiveError(
            "Bundle archive is not a valid ZIP file", details=str(e)
        ) from e
    bad_member = archive.testzip()
    if bad_member is not None:
        archive.close()
        raise CorruptedArchiveError(
            "Bundle archive failed integrity check", path=bad_member
        )
    return archive


def extract_zip_buffer(buffer: bytes, extract_dir: str) -> List[Path]:
    """
    Extract every member of an in-memory ZIP archive into `extract_dir`.

    Members whose names are absolute or escape the target directory abort the
    whole extraction, so a hostile archive never leaves a partial tree behind
    for the caller to promote.

    Returns:
        List[Path]: Paths of the extracted files.

    Raises:
        CorruptedArchiveError: If the buffer is not a readable ZIP archive.
        ExtractionError: On unsafe member names or filesystem errors.
    """
    extracted: List[Path] = []
    with open_zip_buffer(buffer) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            if not is_safe_archive_member(info.filename):
                raise ExtractionError(
                    "Unsafe archive member (possible traversal)", path=info.filename
                )
            try:
                target = safe_extract_path(extract_dir, info.filename)
            except ValueError as e:
                raise ExtractionError(str(e), path=info.filename) from e
            try:
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with archive.open(info) as source, open(target, "wb") as dest:
                    shutil.copyfileobj(source, dest)
            except OSError as e:
                raise ExtractionError(
                    f"Could not extract {info.filename}", path=target, details=str(e)
                ) from e
            extracted.append(Path(target))
            logger.debug(f"Extracted {info.filename} to {target}")
    return extracted


def build_zip(entries: Iterable[Tuple[str, Union[bytes, str]]]) -> bytes:
    """
    Assemble an in-memory ZIP archive.

    Parameters:
        entries: ``(archive_name, content)`` pairs; text content is UTF-8 encoded.

    Returns:
        bytes: The archive bytes.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries:
            if isinstance(content, str):
                content = content.encode("utf-8")
            archive.writestr(name, content)
    return buffer.getvalue()


def zip_directory(directory: Pathish) -> bytes:
    """Pack every regular file under `directory` into an in-memory ZIP archive."""
    root = Path(directory)
    entries: List[Tuple[str, bytes]] = []
    for path in sorted(root.rglob("*")):
        if path.is_file() and not path.is_symlink():
            entries.append((path.relative_to(root).as_posix(), path.read_bytes()))
    return build_zip(entries)


def list_json_files(directory: Pathish) -> Dict[str, Path]:
    """Map file stems to paths for every ``*.json`` file directly under `directory`."""
    root = Path(directory)
    if not root.is_dir():
        return {}
    return {p.stem: p for p in sorted(root.glob("*.json")) if p.is_file()}
