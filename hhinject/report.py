"""
Result rendering for hhinject.

This module holds everything that turns a finished ``ScanResult`` into
output: status classification and colouring, the unified diff between the
baseline and injected artifacts, and the ``ResultSink`` that appends summary
CSV rows and prints per-target reports.
"""

from __future__ import annotations

import csv
import difflib
import io
import logging
import os
import re
import shutil
import subprocess
import sys
import threading
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, TextIO

from colorama import Fore, Style

from hhinject.errors import ConfigurationError, DiffUnavailable

if TYPE_CHECKING:  # pragma: no cover
    from hhinject.core import ScanResult

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "target",
    "host_header",
    "baseline_header",
    "http_status",
    "server_header",
    "response_file",
    "baseline_file",
    "scan_time",
    "response_bytes",
]

RULE = "-" * 60
BOX_WIDTH = 78


# ----------------------------------------------------------------------------
# Status classification
# ----------------------------------------------------------------------------

class StatusClass(Enum):
    SUCCESS = "success"
    REDIRECT = "redirect"
    ERROR = "error"
    UNKNOWN = "unknown"


_STATUS_CLASSES = [
    (re.compile(r"^2\d\d$"), StatusClass.SUCCESS),
    (re.compile(r"^3\d\d$"), StatusClass.REDIRECT),
    (re.compile(r"^[45]\d\d$"), StatusClass.ERROR),
]

STATUS_COLORS = {
    StatusClass.SUCCESS: Fore.GREEN,
    StatusClass.REDIRECT: Fore.YELLOW,
    StatusClass.ERROR: Fore.RED,
    StatusClass.UNKNOWN: Fore.CYAN,
}


def status_class(status: str) -> StatusClass:
    """Classify an HTTP status string (``"200"``, ``"N/A"`` ...)."""
    for pattern, klass in _STATUS_CLASSES:
        if pattern.match(status or ""):
            return klass
    return StatusClass.UNKNOWN


# ----------------------------------------------------------------------------
# Comparator and diff rendering
# ----------------------------------------------------------------------------

def _read_lines(path: Optional[str]) -> List[str]:
    if not path or not os.path.isfile(path):
        raise DiffUnavailable(f"artifact missing: {path or '<none>'}")
    with open(path, "rb") as f:
        return f.read().decode("utf-8", errors="replace").splitlines()


def diff_artifacts(baseline_path: Optional[str], injected_path: Optional[str]) -> str:
    """Unified diff from the baseline artifact to the injected artifact.

    Raises:
        DiffUnavailable: if either artifact does not exist.
    """
    before = _read_lines(baseline_path)
    after = _read_lines(injected_path)
    return "\n".join(difflib.unified_diff(before, after, fromfile="baseline", tofile="injected", lineterm=""))


class DiffRenderer:
    """Turn unified diff text into terminal output.

    ``auto`` prefers ``diff-so-fancy``, then ``colordiff`` when found on
    ``PATH``, otherwise the built-in colouriser. ``plain`` leaves the text
    untouched.
    """

    EXTERNAL = ("diff-so-fancy", "colordiff")
    TOOLS = ("auto", "builtin", "plain") + EXTERNAL

    def __init__(self, tool: str = "auto", color: bool = True) -> None:
        if tool not in self.TOOLS:
            raise ConfigurationError(f"Unknown diff tool: {tool}", exit_code=2)
        self.requested = tool
        self.color = color
        self.tool = self._resolve(tool)

    def _resolve(self, tool: str) -> str:
        if tool == "auto":
            if not self.color:
                return "plain"
            for candidate in self.EXTERNAL:
                if shutil.which(candidate):
                    return candidate
            return "builtin"
        return tool

    def check_available(self) -> None:
        """Raise ConfigurationError if an explicitly requested tool is missing."""
        if self.tool in self.EXTERNAL and shutil.which(self.tool) is None:
            raise ConfigurationError(f"Command '{self.tool}' not found. Please install it.", exit_code=2)

    def _colorize(self, text: str) -> str:
        out = []
        for ln in text.splitlines():
            if ln.startswith("+++") or ln.startswith("---"):
                out.append(f"{Style.BRIGHT}{ln}{Style.RESET_ALL}")
            elif ln.startswith("@@"):
                out.append(f"{Fore.CYAN}{ln}{Style.RESET_ALL}")
            elif ln.startswith("+"):
                out.append(f"{Fore.GREEN}{ln}{Style.RESET_ALL}")
            elif ln.startswith("-"):
                out.append(f"{Fore.RED}{ln}{Style.RESET_ALL}")
            else:
                out.append(ln)
        return "\n".join(out)

    def render(self, diff_text: str) -> str:
        if not diff_text:
            return "<no differences>"
        if self.tool == "plain":
            return diff_text
        if self.tool in self.EXTERNAL:
            try:
                proc = subprocess.run(
                    [self.tool], input=diff_text + "\n", capture_output=True, text=True, timeout=30)
            except (OSError, subprocess.SubprocessError) as exc:
                logger.warning("%s failed (%s), using built-in diff colours", self.tool, exc)
            else:
                if proc.returncode == 0 and proc.stdout:
                    return proc.stdout.rstrip("\n")
                logger.warning("%s returned %d, using built-in diff colours", self.tool, proc.returncode)
        return self._colorize(diff_text)


# ----------------------------------------------------------------------------
# Report building
# ----------------------------------------------------------------------------

class _Palette:
    def __init__(self, color: bool) -> None:
        self.color = color

    def __call__(self, code: str) -> str:
        return code if self.color else ""


def summary_row(result: "ScanResult") -> List[str]:
    inj = result.injected
    return [
        result.target,
        result.injected_host.label,
        result.baseline_host.label,
        inj.status,
        inj.server,
        inj.artifact,
        result.baseline.artifact if result.baseline else "",
        result.started_at,
        str(inj.size),
    ]


def _boxed_header(title: str, c: _Palette) -> List[str]:
    pad = max((BOX_WIDTH - len(title)) // 2, 0)
    bar = f"{c(Fore.MAGENTA)}{'=' * BOX_WIDTH}{c(Style.RESET_ALL)}"
    return [bar, f" {' ' * pad}{c(Style.BRIGHT)}{title}{c(Style.RESET_ALL)}{' ' * pad} ", bar]


def _field(name: str, value: str, c: _Palette) -> str:
    return f"{c(Style.BRIGHT)}{name:<14}{c(Style.RESET_ALL)} : {value}"


def _response_section(label: str, path: str, raw: bytes, missing: str) -> List[str]:
    body = raw.decode("utf-8", errors="replace").rstrip("\n") if raw else missing
    return [f">>> FULL {label} RESPONSE ({path}) >>>", RULE, body, RULE, ""]


def build_report(result: "ScanResult", show_diff: bool = False,
                 renderer: Optional[DiffRenderer] = None, color: bool = True) -> str:
    """Render the verbose, multi-section report for one scan result."""
    c = _Palette(color)
    inj = result.injected
    klass = status_class(inj.status)
    lines = _boxed_header(f"SCAN RESULT: {result.target}", c)
    lines.append("")
    lines.append(_field("Target", result.target, c))
    lines.append(_field("Injected Host", result.injected_host.label, c))
    if result.baseline_host.is_set:
        lines.append(_field("Baseline Host", result.baseline_host.label, c))
    lines.append(_field("Status", f"{c(STATUS_COLORS[klass])}{inj.status}{c(Style.RESET_ALL)}", c))
    lines.append(_field("Server", inj.server, c))
    lines.append(_field("Bytes", f"{inj.size} bytes", c))
    lines.append(_field("Time", result.started_at, c))
    if inj.error:
        lines.append(_field("Error", inj.error, c))
    lines.append("")

    lines.extend(_response_section("INJECTED", inj.artifact, inj.raw, "<no injected response>"))

    if result.baseline is not None:
        base = result.baseline
        lines.extend(_response_section("BASELINE", base.artifact, base.raw, "<no baseline response>"))
        if show_diff:
            renderer = renderer or DiffRenderer("builtin" if color else "plain", color=color)
            lines.append(f">>> DIFF (baseline -> injected) using: {renderer.tool} >>>")
            lines.append(RULE)
            try:
                lines.append(renderer.render(diff_artifacts(base.artifact, inj.artifact)))
            except DiffUnavailable as exc:
                lines.append(f"<no diff available: {exc}>")
            lines.append(RULE)
            lines.append("")

    lines.append("")
    lines.append(" " + "-" * BOX_WIDTH)
    lines.append("")
    return "\n".join(lines) + "\n"


def build_line(result: "ScanResult") -> str:
    return f"Target: {result.target} | Status: {result.injected.status} | File: {result.injected.artifact}\n"


# ----------------------------------------------------------------------------
# Result sink
# ----------------------------------------------------------------------------

class ResultSink:
    """Append summary rows and print reports, one whole record at a time.

    The summary CSV header (unquoted) is written when the sink is created;
    data rows quote every field. ``emit`` and
    ``note`` hold a single lock for each write so neither rows nor reports
    from concurrent scans can interleave.
    """

    def __init__(self, summary_path: str, verbose: bool = False, show_diff: bool = False,
                 renderer: Optional[DiffRenderer] = None, color: bool = True,
                 stream: Optional[TextIO] = None) -> None:
        self.summary_path = summary_path
        self.verbose = verbose
        self.show_diff = show_diff
        self.color = color
        self.renderer = renderer or DiffRenderer("auto", color=color)
        self.stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self._summary = open(summary_path, "w", newline="", encoding="utf-8")
        self._summary.write(",".join(SUMMARY_COLUMNS) + "\n")
        self._summary.flush()
        self.rows = 0

    @staticmethod
    def _format_row(values: List[str]) -> str:
        buf = io.StringIO()
        csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n").writerow(values)
        return buf.getvalue()

    def render(self, result: "ScanResult") -> str:
        if self.verbose:
            return build_report(result, self.show_diff, self.renderer, self.color)
        return build_line(result)

    def emit(self, result: "ScanResult") -> None:
        """Record one result: a summary row, then its report block."""
        row = self._format_row(summary_row(result))
        block = "\n" + self.render(result)
        with self._lock:
            self._summary.write(row)
            self._summary.flush()
            self.rows += 1
            self.stream.write(block)
            self.stream.flush()

    def note(self, message: str) -> None:
        with self._lock:
            self.stream.write(message + "\n")
            self.stream.flush()

    def close(self) -> None:
        with self._lock:
            if not self._summary.closed:
                self._summary.close()
