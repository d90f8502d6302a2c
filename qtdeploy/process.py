"""Running helper programs and querying qmake."""

from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass
from typing import Iterable

from .common import DeployError, verbose_level

__all__ = [
    "ProcessResult",
    "run_process",
    "parse_qmake_query",
    "query_qmake_all",
    "query_qmake",
]

_QMAKE = "qmake"


@dataclass(frozen=True)
class ProcessResult:
    """Exit code and captured output of a finished process."""

    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""


def _decode(data: bytes) -> str:
    return data.decode(errors="replace")


def run_process(
    binary: str,
    args: Iterable[str] = (),
    working_directory: str | None = None,
    capture_output: bool = False,
) -> ProcessResult:
    """Run ``binary`` with ``args`` and wait for it to finish.

    Output is captured only when ``capture_output`` is true; otherwise the
    process shares this process's standard streams. Raises DeployError when
    the process cannot be started or does not exit normally.
    """
    command = [binary, *args]
    if verbose_level() > 1:
        print("Running: " + subprocess.list2cmdline(command), file=sys.stderr)
    try:
        completed = subprocess.run(
            command,
            cwd=working_directory or None,
            capture_output=capture_output,
            check=False,
        )
    except OSError as exc:
        raise DeployError(f"Unable to start {binary}: {exc}") from exc
    if completed.returncode < 0:
        raise DeployError(f"{binary} did not exit cleanly.")
    return ProcessResult(
        exit_code=completed.returncode,
        stdout=completed.stdout or b"",
        stderr=completed.stderr or b"",
    )


def parse_qmake_query(output: str) -> dict[str, str]:
    """Parse the ``key:value`` lines printed by ``qmake -query``.

    The text is stripped and carriage returns removed; an entry is taken only
    when a newline follows its value, so a final line without one is ignored.
    """
    text = output.strip().replace("\r", "")
    result: dict[str, str] = {}
    pos = 0
    while True:
        colon = text.find(":", pos)
        if colon < 0:
            break
        end = text.find("\n", colon + 1)
        if end < 0:
            break
        result[text[pos:colon]] = text[colon + 1:end]
        pos = end + 1
    return result


def _run_qmake(args: list[str]) -> ProcessResult:
    result = run_process(_QMAKE, args, capture_output=True)
    if result.exit_code:
        raise DeployError(
            f"{_QMAKE} returns {result.exit_code}: {_decode(result.stderr)}"
        )
    return result


def query_qmake_all() -> dict[str, str]:
    """Return all variables reported by ``qmake -query``."""
    return parse_qmake_query(_decode(_run_qmake(["-query"]).stdout))


def query_qmake(variable: str) -> str:
    """Return the value of a single qmake variable."""
    return _decode(_run_qmake(["-query", variable]).stdout).strip()