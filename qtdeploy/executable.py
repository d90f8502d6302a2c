"""Reading dependent libraries, word size and debug flag of executables."""

from __future__ import annotations

import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from .common import DeployError, Platform, verbose_level
from .process import run_process

__all__ = [
    "ExecutableInfo",
    "read_pe_executable",
    "parse_ldd_output",
    "read_elf_executable",
    "read_executable",
    "find_dependent_libraries",
]

_DOS_HEADER_SIZE = 64
_DOS_SIGNATURE = b"MZ"
_NT_SIGNATURE = b"PE\0\0"
_FILE_HEADER_SIZE = 20
_SECTION_HEADER_SIZE = 40
_IMPORT_DESCRIPTOR_SIZE = 20
_PE32_MAGIC = 0x10B
_PE32_PLUS_MAGIC = 0x20B
_DIRECTORY_ENTRY_IMPORT = 1
_DIRECTORY_ENTRY_DEBUG = 6


@dataclass(frozen=True)
class ExecutableInfo:
    """Dependent libraries, word size and debug flag of an executable."""

    dependent_libraries: tuple[str, ...] = ()
    word_size: int = 0
    is_debug: bool = False


class _Section(NamedTuple):
    virtual_address: int
    virtual_size: int
    raw_pointer: int


class _NtHeader(NamedTuple):
    offset: int
    word_size: int
    sections: tuple[_Section, ...]


def _word_size_for_magic(magic: int) -> int:
    if magic == _PE32_MAGIC:
        return 32
    if magic == _PE32_PLUS_MAGIC:
        return 64
    return 0


def _read_nt_header(data: bytes) -> _NtHeader:
    if len(data) < _DOS_HEADER_SIZE or data[:2] != _DOS_SIGNATURE:
        raise DeployError("DOS header check failed.")
    (nt,) = struct.unpack_from("<i", data, 0x3C)
    optional = nt + 4 + _FILE_HEADER_SIZE
    if (
        nt < 0
        or optional + 2 > len(data)
        or data[nt:nt + 4] != _NT_SIGNATURE
    ):
        raise DeployError("NT header check failed.")
    _, section_count, _, _, _, optional_size, _ = struct.unpack_from(
        "<HHIIIHH", data, nt + 4
    )
    (magic,) = struct.unpack_from("<H", data, optional)
    word_size = _word_size_for_magic(magic)
    if not word_size:
        raise DeployError(f"NT header check failed; magic {magic} is invalid.")
    first_section = optional + optional_size
    if first_section + section_count * _SECTION_HEADER_SIZE > len(data):
        raise DeployError("NT header section header check failed.")
    sections = tuple(
        _Section(virtual_address, virtual_size, raw_pointer)
        for virtual_size, virtual_address, _, raw_pointer in (
            struct.unpack_from("<IIII", data, offset + 8)
            for offset in range(
                first_section,
                first_section + section_count * _SECTION_HEADER_SIZE,
                _SECTION_HEADER_SIZE,
            )
        )
    )
    return _NtHeader(nt, word_size, sections)


def _data_directory(data: bytes, header: _NtHeader, index: int) -> tuple[int, int]:
    directories = header.offset + 4 + _FILE_HEADER_SIZE
    directories += 96 if header.word_size == 32 else 112
    offset = directories + 8 * index
    if offset + 8 > len(data):
        return 0, 0
    return struct.unpack_from("<II", data, offset)


def _rva_to_offset(rva: int, sections: tuple[_Section, ...]) -> int | None:
    for section in sections:
        start = section.virtual_address
        if start <= rva < start + section.virtual_size:
            return rva - start + section.raw_pointer
    return None


def _c_string(data: bytes, offset: int | None) -> str:
    if offset is None or offset >= len(data):
        return ""
    end = data.find(b"\0", offset)
    if end < 0:
        end = len(data)
    return data[offset:end].decode(errors="replace")


def _read_import_names(data: bytes, header: _NtHeader) -> list[str]:
    imports_rva, _ = _data_directory(data, header, _DIRECTORY_ENTRY_IMPORT)
    if not imports_rva:
        return []
    offset = _rva_to_offset(imports_rva, header.sections)
    if offset is None:
        return []
    names = []
    while offset + _IMPORT_DESCRIPTOR_SIZE <= len(data):
        name_rva = struct.unpack_from("<IIIII", data, offset)[3]
        if not name_rva:
            break
        names.append(_c_string(data, _rva_to_offset(name_rva, header.sections)))
        offset += _IMPORT_DESCRIPTOR_SIZE
    return names


def read_pe_executable(path: str | Path) -> ExecutableInfo:
    """Read a PE executable's imported libraries, word size and debug flag.

    The debug flag is derived from the presence of a debug directory and
    cannot be relied on for MinGW builds. Raises DeployError when the file
    cannot be read or is not a valid PE image.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise DeployError(f"Cannot open '{path}': {exc.strerror or exc}") from exc
    header = _read_nt_header(data)
    _, debug_size = _data_directory(data, header, _DIRECTORY_ENTRY_DEBUG)
    is_debug = bool(debug_size)
    libraries = _read_import_names(data, header)
    if verbose_level() > 1:
        print(
            f"read_pe_executable: {path} {header.word_size} bit, debug: {int(is_debug)}",
            file=sys.stderr,
        )
    return ExecutableInfo(tuple(libraries), header.word_size, is_debug)


def parse_ldd_output(output: str) -> list[str]:
    """Return the library names from ``ldd`` output lines of the form
    ``<tab>libc.so.6 => /lib/libc.so.6``."""
    return [
        line.split("=>", 1)[0].strip()
        for line in output.split("\n")
        if "=>" in line
    ]


def _run_checked(binary: str, path: str | Path) -> bytes:
    result = run_process(binary, [str(path)], capture_output=True)
    if result.exit_code:
        raise DeployError(f"{binary} returns {result.exit_code}")
    return result.stdout


def _read_elf(path: str | Path, libraries: bool, details: bool) -> ExecutableInfo:
    dependent: tuple[str, ...] = ()
    word_size = 0
    is_debug = False
    if libraries:
        output = _run_checked("ldd", path).decode(errors="replace")
        dependent = tuple(parse_ldd_output(output))
    if details:
        description = _run_checked("file", path)
        word_size = 64 if b"64-bit" in description else 32
        is_debug = b"not stripped" in description
    return ExecutableInfo(dependent, word_size, is_debug)


def read_elf_executable(path: str | Path) -> ExecutableInfo:
    """Read an ELF executable's libraries via ``ldd`` and its word size and
    debug flag via ``file``."""
    return _read_elf(path, libraries=True, details=True)


def read_executable(path: str | Path, platform: Platform) -> ExecutableInfo:
    """Read an executable in the format used on ``platform``."""
    if platform == Platform.UNIX:
        return read_elf_executable(path)
    return read_pe_executable(path)


def find_dependent_libraries(path: str | Path, platform: Platform) -> list[str]:
    """Return the libraries an executable depends on, or an empty list when
    they cannot be determined."""
    try:
        if platform == Platform.UNIX:
            info = _read_elf(path, libraries=True, details=False)
        else:
            info = read_pe_executable(path)
    except DeployError:
        return []
    return list(info.dependent_libraries)