"""File system helpers: name filters, directory creation, lookup in PATH
and recursive updating of files, directories and symbolic links."""

from __future__ import annotations

import fnmatch
import os
import shutil
import sys
from pathlib import Path
from typing import Callable, Iterable

from .common import DeployError, verbose_level

__all__ = [
    "NameFilter",
    "create_symbolic_link",
    "create_directory",
    "find_in_path",
    "find_sdk_tool",
    "normalize_file_name",
    "update_file",
]

EntryFilter = Callable[[str], list]


def _native(path: str | os.PathLike) -> str:
    return str(path).replace("/", os.sep)


def _sort_names(names: Iterable[str]) -> list[str]:
    return sorted(names, key=lambda name: (name.lower(), name))


def _visible_entries(directory: str) -> list[str]:
    try:
        return [name for name in os.listdir(directory) if not name.startswith(".")]
    except OSError:
        return []


def _subdirectories(directory: str) -> list[str]:
    return _sort_names(
        name
        for name in _visible_entries(directory)
        if os.path.isdir(os.path.join(directory, name))
    )


class NameFilter:
    """Lists the files of a directory whose names match any of a set of
    wildcard patterns, case-insensitively; no patterns match every file."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self.patterns = tuple(patterns)

    def _matches(self, name: str) -> bool:
        if not self.patterns:
            return True
        lowered = name.lower()
        return any(fnmatch.fnmatchcase(lowered, p.lower()) for p in self.patterns)

    def __call__(self, directory: str | os.PathLike) -> list[str]:
        directory = str(directory)
        return _sort_names(
            name
            for name in _visible_entries(directory)
            if os.path.isfile(os.path.join(directory, name)) and self._matches(name)
        )

    def __repr__(self) -> str:
        return f"NameFilter({list(self.patterns)!r})"


def create_symbolic_link(source: str | os.PathLike, target: str) -> None:
    """Create a link named ``target`` in the directory of ``source`` that
    points to the file name of ``source`` by a relative path."""
    source_path = os.path.abspath(str(source))
    directory = os.path.dirname(source_path)
    if not os.path.isdir(directory):
        raise DeployError(f"Unable to change to directory {_native(directory)}.")
    link = os.path.join(directory, target)
    try:
        os.symlink(os.path.basename(source_path), link)
    except OSError as exc:
        raise DeployError(
            f"Failed to create symbolic link {_native(source_path)} -> "
            f"{_native(target)}: {exc.strerror or exc}"
        ) from exc


def create_directory(directory: str | os.PathLike) -> None:
    """Create ``directory`` with its parents unless it already exists."""
    directory = str(directory)
    if os.path.isdir(directory):
        return
    if os.path.exists(directory):
        raise DeployError(
            f"{_native(directory)} already exists and is not a directory."
        )
    if verbose_level():
        print(f"Creating {_native(directory)}...", file=sys.stderr)
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise DeployError(
            f"Could not create directory {_native(directory)}."
        ) from exc


def find_in_path(file_name: str) -> str | None:
    """Locate ``file_name`` in the search path; return None if absent.

    On Windows any file is found (so DLLs can be located); elsewhere the file
    must be executable.
    """
    if sys.platform == "win32":
        directories = [os.getcwd(), *os.environ.get("PATH", "").split(os.pathsep)]
        for directory in directories:
            if not directory:
                continue
            candidate = os.path.join(directory, file_name)
            if os.path.isfile(candidate):
                return candidate
        return None
    return shutil.which(file_name)


def find_sdk_tool(tool: str) -> str | None:
    """Find a tool in PATH, looking first in the Windows SDK's x64 tools
    directory when ``WindowsSdkDir`` is set."""
    paths = [p for p in os.environ.get("PATH", "").split(os.pathsep) if p]
    sdk_dir = os.environ.get("WindowsSdkDir", "")
    if sdk_dir:
        paths.insert(0, os.path.normpath(sdk_dir) + "/Tools/x64")
    if not paths:
        return None
    return shutil.which(tool, path=os.pathsep.join(paths))


def normalize_file_name(name: str) -> str:
    """Return ``name`` with the letter case the file system uses.

    Only Windows needs this; elsewhere the name is returned unchanged.
    """
    if sys.platform != "win32":
        return name
    try:
        return str(Path(name).resolve(strict=True)).replace("\\", "/")
    except OSError:
        return name


def _symlink_target(path: str) -> str:
    link = os.readlink(path)
    base = os.path.dirname(os.path.abspath(path))
    return os.path.normpath(os.path.join(base, link))


def _remove(path: str, what: str) -> None:
    try:
        os.remove(path)
    except OSError as exc:
        raise DeployError(
            f"Cannot remove existing {what} {_native(path)}: {exc.strerror or exc}"
        ) from exc


def _update_link(
    source: str, name: str, target: str, target_directory: str,
    entry_filter: EntryFilter,
) -> None:
    source_path = _symlink_target(source)
    relative_source = os.path.relpath(
        source_path, os.path.dirname(os.path.abspath(source))
    )
    if "/" in relative_source or os.sep in relative_source:
        raise DeployError(
            "Symbolic links across directories are not supported "
            f"({_native(source)})."
        )
    update_file(source_path, target_directory, entry_filter)
    if os.path.lexists(target):
        if not os.path.islink(target):
            raise DeployError(
                f"{_native(target)} already exists and is not a symbolic link."
            )
        relative_target = os.path.relpath(
            _symlink_target(target), os.path.dirname(os.path.abspath(target))
        )
        if relative_target == relative_source:
            return
        _remove(target, "symbolic link")
    create_symbolic_link(os.path.join(target_directory, relative_source), name)


def _update_directory(
    source: str, name: str, target: str, target_directory: str,
    entry_filter: EntryFilter,
) -> None:
    if os.path.exists(target):
        if not os.path.isdir(target):
            raise DeployError(
                f"{_native(target)} already exists and is not a directory."
            )
    else:
        print(f"Creating {target}.")
        try:
            os.mkdir(target)
        except OSError as exc:
            raise DeployError(
                f"Cannot create directory {name} under {_native(target_directory)}."
            ) from exc
    entries = list(entry_filter(source)) + _subdirectories(source)
    for entry in entries:
        update_file(os.path.join(source, entry), target, entry_filter)


def _update_plain_file(source: str, name: str, target: str) -> None:
    if os.path.exists(target):
        if os.stat(target).st_mtime >= os.stat(source).st_mtime:
            if verbose_level():
                print(f"{name} is up to date.")
            return
        _remove(target, "file")
    if verbose_level():
        print(f"Updating {name}.")
    try:
        shutil.copy(source, target)
    except OSError as exc:
        raise DeployError(
            f"Cannot copy {_native(source)} to {_native(target)}: "
            f"{exc.strerror or exc}"
        ) from exc


def update_file(
    source: str | os.PathLike,
    target_directory: str | os.PathLike,
    entry_filter: EntryFilter | None = None,
) -> None:
    """Copy ``source`` into ``target_directory`` if it is missing or older.

    Directories are copied recursively: ``entry_filter`` is called with each
    source directory and returns the file names to take; subdirectories are
    always followed. Symbolic links within one directory are recreated as
    links after the file they point to has been updated.
    """
    source = str(source)
    target_directory = str(target_directory)
    if entry_filter is None:
        entry_filter = NameFilter()
    name = os.path.basename(os.path.normpath(source))
    target = os.path.join(target_directory, name)
    if verbose_level() > 1:
        print(f"Checking {source}, {target}", file=sys.stderr)

    if not os.path.exists(source):
        raise DeployError(f"{_native(source)} does not exist.")
    if os.path.islink(source):
        _update_link(source, name, target, target_directory, entry_filter)
    elif os.path.isdir(source):
        _update_directory(source, name, target, target_directory, entry_filter)
    else:
        _update_plain_file(source, name, target)