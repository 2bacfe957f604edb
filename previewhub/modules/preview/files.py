"""
Virtual file handling for preview servers.

Callers hand over ``{path: value}`` where value is raw text (or bytes) or a
``{content, type}`` record. Values are resolved once into ``ResolvedFile``
(path + bytes) before anything touches the disk, so invalid input never
leaves a half-written directory behind.
"""

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import Any, Dict, List, Mapping, Optional, Union

import aiofiles
import aiofiles.os

from previewhub.core.exceptions import FileSystemError, InvalidFilePathError, ValidationError
from previewhub.core.logging_config import logger


# Extensions the listing page links inline; everything else gets a download link
TEXT_EXTENSIONS = (
    '.html', '.css', '.js', '.ts', '.jsx', '.tsx',
    '.json', '.md', '.txt', '.py', '.php',
)


@dataclass(frozen=True)
class FileRecord:
    """File value carrying its content plus an optional language/type tag"""
    content: Union[str, bytes]
    type: Optional[str] = None


# A caller-supplied file value: plain content or a record
FileValue = Union[str, bytes, FileRecord, Mapping[str, Any]]


@dataclass(frozen=True)
class ResolvedFile:
    """A file ready to be written: normalized relative path and raw bytes"""
    path: str
    data: bytes


def normalize_file_path(file_path: str) -> str:
    """
    Normalize a caller path to a forward-slash path relative to the project root.

    Raises:
        InvalidFilePathError: for empty, absolute or traversing paths
    """
    if not isinstance(file_path, str) or not file_path.strip():
        raise InvalidFilePathError(str(file_path), "path is empty")

    raw = file_path.replace("\\", "/")
    if raw.startswith("/") or PureWindowsPath(file_path).drive:
        raise InvalidFilePathError(file_path, "absolute paths are not allowed")

    parts = [part for part in raw.split("/") if part not in ("", ".")]
    if not parts:
        raise InvalidFilePathError(file_path, "path is empty")
    if ".." in parts:
        raise InvalidFilePathError(file_path)

    return "/".join(parts)


def _content_of(file_path: str, value: FileValue) -> Union[str, bytes]:
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, FileRecord):
        return value.content
    if isinstance(value, Mapping):
        if "content" not in value:
            raise ValidationError(f"File record for '{file_path}' has no content", field="files")
        return value["content"]
    raise ValidationError(
        f"Unsupported value for '{file_path}': {type(value).__name__}",
        field="files"
    )


def resolve_file(file_path: str, value: FileValue) -> ResolvedFile:
    """Resolve one caller entry into a ResolvedFile"""
    path = normalize_file_path(file_path)
    content = _content_of(file_path, value)

    if isinstance(content, str):
        data = content.encode("utf-8")
    elif isinstance(content, bytes):
        data = content
    else:
        raise ValidationError(
            f"Content for '{file_path}' must be text, got {type(content).__name__}",
            field="files"
        )

    return ResolvedFile(path=path, data=data)


def resolve_files(files: Optional[Mapping[str, FileValue]]) -> List[ResolvedFile]:
    """
    Resolve a caller file mapping.

    Every entry is validated before returning; the first invalid entry raises.
    Later entries win when two paths normalize to the same file.
    """
    resolved: Dict[str, ResolvedFile] = {}
    for file_path, value in (files or {}).items():
        entry = resolve_file(file_path, value)
        resolved[entry.path] = entry
    return list(resolved.values())


async def create_directory(path: Path) -> None:
    """Create a preview's private root directory (parents included)"""
    try:
        await aiofiles.os.makedirs(path, exist_ok=False)
    except OSError as e:
        raise FileSystemError(f"Failed to create directory {path}: {e}", path=str(path)) from e


async def materialize_files(root: Path, files: List[ResolvedFile]) -> int:
    """
    Write resolved files under ``root``, creating subdirectories as needed.
    Existing files are overwritten; files not listed are left alone. ``root``
    itself must already exist; it is never re-created here.

    Returns:
        Number of bytes written
    """
    if not await aiofiles.os.path.isdir(root):
        raise FileSystemError(f"Preview directory {root} does not exist", path=str(root))

    written = 0
    for entry in files:
        target = root.joinpath(*entry.path.split("/"))
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(entry.data)
        except OSError as e:
            raise FileSystemError(f"Failed to write {entry.path}: {e}", path=entry.path) from e
        written += len(entry.data)

    logger.debug(f"Materialized {len(files)} files ({written} bytes) under {root}")
    return written


async def remove_directory(path: Path) -> None:
    """Recursively remove a directory; a missing directory is not an error"""
    if not path.exists():
        return
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, shutil.rmtree, path)


def list_materialized_files(root: Path) -> List[str]:
    """All files under ``root`` as sorted forward-slash relative paths"""
    if not root.is_dir():
        return []
    return sorted(
        p.relative_to(root).as_posix()
        for p in root.rglob("*")
        if p.is_file()
    )


def is_text_file(file_name: str) -> bool:
    """True for extensions a browser can show inline"""
    return file_name.lower().endswith(TEXT_EXTENSIONS)


def load_directory(directory: Path) -> Dict[str, bytes]:
    """
    Read every non-hidden file under a local directory into a file mapping.
    Used to preview a project that already exists on disk.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileSystemError(f"Not a directory: {directory}", path=str(directory))

    files: Dict[str, bytes] = {}
    for path in sorted(directory.rglob("*")):
        relative = path.relative_to(directory)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_file():
            files[relative.as_posix()] = path.read_bytes()
    return files
