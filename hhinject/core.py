#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core implementation of the hhinject tool.

This module contains the scanning engine (target source, request executor,
scan task and bounded worker pool) together with the command-line interface.
Report rendering lives in :mod:`hhinject.report` and the optional web UI in
:mod:`hhinject.webui`.

The primary entry point for the command-line interface is the
``program_main`` function defined at the bottom of the file. It accepts an
optional ``argv`` list to support programmatic invocation (e.g. from the CLI
wrapper or the tests) and returns the process exit status.
"""

from __future__ import annotations

import argparse
import concurrent.futures as futures
import gzip
import hashlib
import logging
import os
import queue
import re
import sys
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Tuple

# External modules
import httpx  # type: ignore
import requests
from colorama import init as colorama_init

from hhinject.errors import ConfigurationError, RequestDeadlineExceeded
from hhinject.report import DiffRenderer, ResultSink

logger = logging.getLogger(__name__)

DEFAULT_HOST_HEADER = "www.evanricafort.com"
DEFAULT_USER_AGENT = "host-inject-script/1.0"
DEFAULT_TIMEOUT = 10.0
NOT_AVAILABLE = "N/A"
SUMMARY_NAME = "summary.csv"
MAX_NAME_LENGTH = 100
CHUNK_SIZE = 8192
MAX_JOBS = 20

_SCHEME_RE = re.compile(r"^https?://", re.I)
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]")
_STATUS_RE = re.compile(r"^HTTP/\S+\s+(\d{3})(?:\s|$)")


# ----------------------------------------------------------------------------
# Data model
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class HostHeader:
    """Tri-state Host header choice: unset, explicitly omitted, or a value."""

    UNSET_KIND = "unset"
    OMIT_KIND = "omit"
    VALUE_KIND = "value"

    kind: str
    value: Optional[str] = None

    @classmethod
    def unset(cls) -> "HostHeader":
        return cls(cls.UNSET_KIND)

    @classmethod
    def omit(cls) -> "HostHeader":
        return cls(cls.OMIT_KIND)

    @classmethod
    def of(cls, value: str) -> "HostHeader":
        if not value:
            raise ValueError("Host header value must be non-empty")
        return cls(cls.VALUE_KIND, value)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "HostHeader":
        """Map a command-line value to a HostHeader (``"none"`` means omit)."""
        if raw is None or raw == "":
            return cls.unset()
        if raw == "none":
            return cls.omit()
        return cls.of(raw)

    @property
    def is_set(self) -> bool:
        return self.kind != self.UNSET_KIND

    @property
    def is_omit(self) -> bool:
        return self.kind == self.OMIT_KIND

    @property
    def label(self) -> str:
        """Text used in the summary CSV and the reports."""
        if self.kind == self.VALUE_KIND:
            return self.value or ""
        if self.kind == self.OMIT_KIND:
            return "none"
        return ""


@dataclass(frozen=True)
class RequestSpec:
    """One request to issue: URL, Host header choice, timeout and User-Agent."""
    url: str
    host_header: HostHeader
    timeout: float
    user_agent: str

    def headers(self) -> dict[str, str]:
        hdrs = {"User-Agent": self.user_agent}
        if self.host_header.kind == HostHeader.VALUE_KIND:
            hdrs["Host"] = self.host_header.value or ""
        return hdrs


@dataclass(frozen=True)
class ResponseCapture:
    """Raw response captured by the executor.

    ``raw`` holds the full dump (status line, headers, body) exactly as it was
    written to ``artifact``. An unreachable target yields an empty dump,
    status ``"N/A"`` and a non-empty ``error``.
    """
    status: str
    server: str
    raw: bytes
    size: int
    retrieved_at: str
    artifact: str
    error: Optional[str] = None

    @property
    def reachable(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning one target."""
    target: str
    injected_host: HostHeader
    baseline_host: HostHeader
    injected: ResponseCapture
    baseline: Optional[ResponseCapture]
    started_at: str


@dataclass(frozen=True)
class ScanConfig:
    """Immutable run configuration assembled from the command line or web UI."""
    target: Optional[str] = None
    target_file: Optional[str] = None
    inject_host: str = DEFAULT_HOST_HEADER
    baseline: HostHeader = HostHeader.unset()
    show_diff: bool = False
    concurrency: int = 1
    timeout: float = DEFAULT_TIMEOUT
    output_dir: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    verbose: bool = False
    http2: bool = False
    proxy: Optional[str] = None
    verify_tls: bool = True
    follow_redirects: bool = False
    color: bool = True
    diff_tool: str = "auto"

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ScanConfig":
        """Build a validated config from parsed CLI arguments."""
        if not args.target and not args.file:
            raise ConfigurationError("Provide -t TARGET or -f FILE.", exit_code=1, show_usage=True)
        if args.concurrency < 1:
            raise ConfigurationError("Concurrency must be at least 1.", exit_code=1)
        if args.timeout <= 0:
            raise ConfigurationError("Timeout must be greater than 0.", exit_code=1)
        if not args.host:
            raise ConfigurationError("Injected Host header (-H) must not be empty.", exit_code=1)
        if args.file and not os.path.isfile(args.file):
            raise ConfigurationError(f"Target file not found: {args.file}", exit_code=1)
        return cls(
            target=args.target,
            target_file=args.file,
            inject_host=args.host,
            baseline=HostHeader.parse(args.baseline),
            show_diff=args.diff,
            concurrency=args.concurrency,
            timeout=args.timeout,
            output_dir=args.output_dir or f"results_{timestamp()}",
            user_agent=args.user_agent,
            verbose=args.verbose,
            http2=args.http2,
            proxy=args.proxy,
            verify_tls=not args.insecure,
            follow_redirects=args.follow_redirects,
            color=not args.no_color,
            diff_tool=args.diff_tool,
        )

    @property
    def summary_path(self) -> str:
        return os.path.join(self.output_dir, SUMMARY_NAME)


# ----------------------------------------------------------------------------
# Helper functions
# ----------------------------------------------------------------------------

def timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def iso_time() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


def normalize_url(target: str) -> str:
    """Prepend ``http://`` unless the target already carries an http(s) scheme."""
    if _SCHEME_RE.match(target):
        return target
    return f"http://{target}"


def safe_name(target: str) -> str:
    """Filesystem-safe form of a target used as the artifact name prefix.

    Names longer than ``MAX_NAME_LENGTH`` are cut and suffixed with a short hash
    of the full target so distinct targets keep distinct prefixes.
    """
    t = target
    for prefix in ("http://", "https://"):
        if t.startswith(prefix):
            t = t[len(prefix):]
            break
    name = _UNSAFE_RE.sub("_", t)
    if len(name) > MAX_NAME_LENGTH:
        digest = hashlib.sha1(target.encode("utf-8", errors="replace")).hexdigest()[:12]
        name = f"{name[:MAX_NAME_LENGTH - 13]}_{digest}"
    return name


def _clean_line(line: str) -> str:
    return line.split("#", 1)[0].strip()


def iter_targets(target: Optional[str] = None, target_file: Optional[str] = None) -> Iterator[str]:
    """Yield raw targets from a single value and/or a target list file.

    The single target (if any) comes first. For the file, everything after a
    ``#`` is dropped, whitespace is trimmed and lines that end up empty are
    skipped. Duplicates are kept. ``.gz`` files are decompressed on the fly.

    Args:
        target: Optional single target string.
        target_file: Optional path to a text (.txt) or gzip (.gz) file with
            one target per line.

    Yields:
        Each raw target string, without scheme normalization.
    """
    if target:
        yield target
    if not target_file:
        return
    opener = gzip.open if target_file.endswith(".gz") else open
    with opener(target_file, "rt", encoding="utf-8", errors="ignore") as f:
        for ln in f:
            t = _clean_line(ln)
            if t:
                yield t


def parse_meta(raw: bytes) -> Tuple[str, str]:
    """Extract ``(status, server)`` from a raw response dump.

    The status comes from the first ``HTTP/<version> <code>`` line, the server
    from the first ``Server:`` header of the header block (case-insensitive).
    Either one falls back to ``"N/A"``.
    """
    text = raw.decode("latin-1")
    head = re.split(r"\r?\n\r?\n", text, maxsplit=1)[0]
    status = NOT_AVAILABLE
    server = NOT_AVAILABLE
    lines = head.splitlines()
    for ln in lines:
        if ln.startswith("HTTP/"):
            m = _STATUS_RE.match(ln)
            if m:
                status = m.group(1)
            break
    for ln in lines:
        name, sep, value = ln.partition(":")
        if sep and name.strip().lower() == "server":
            server = value.strip() or NOT_AVAILABLE
            break
    return status, server


def _version_label(version: object) -> str:
    # urllib3 reports 10/11/20, httpx reports "HTTP/1.1" style strings
    if isinstance(version, str) and version.upper().startswith("HTTP/"):
        return version.upper()
    return {9: "HTTP/0.9", 10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2"}.get(version, "HTTP/1.1")  # type: ignore[arg-type]


def dump_response(version: str, status_code: int, reason: str,
                  header_items: Iterable[Tuple[str, str]], body: bytes) -> bytes:
    """Serialize a response the way ``curl -i`` prints it."""
    lines = [f"{version} {status_code} {reason}".rstrip()]
    lines.extend(f"{k}: {v}" for k, v in header_items)
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("latin-1", errors="replace") + body


def _read_until(chunks: Iterable[bytes], deadline: float, url: str) -> bytes:
    """Collect body chunks, raising once the monotonic ``deadline`` has passed."""
    buf = bytearray()
    if time.monotonic() > deadline:
        raise RequestDeadlineExceeded(f"{url}: headers arrived after the deadline")
    for chunk in chunks:
        buf.extend(chunk)
        if time.monotonic() > deadline:
            raise RequestDeadlineExceeded(f"{url}: body still arriving at the deadline")
    return bytes(buf)


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text.splitlines()[0] if text.strip() else 'request failed'}"


# ----------------------------------------------------------------------------
# Artifact naming
# ----------------------------------------------------------------------------

class ArtifactNamer:
    """Hand out unique artifact paths inside the output directory.

    Names carry a microsecond scan-time suffix; a clash with a name already
    issued in this run, or with a file already on disk, adds ``-<n>``.
    """

    def __init__(self, output_dir: str) -> None:
        self.output_dir = output_dir
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    def path_for(self, target: str, kind: str) -> str:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        base = os.path.join(self.output_dir, f"{safe_name(target)}_{kind}_{stamp}")
        with self._lock:
            path = f"{base}.resp"
            n = 1
            while path in self._issued or os.path.exists(path):
                path = f"{base}-{n}.resp"
                n += 1
            self._issued.add(path)
            return path


# ----------------------------------------------------------------------------
# Request executor
# ----------------------------------------------------------------------------

class RequestExecutor:
    """Perform single HTTP requests and persist the raw response.

    HTTP/1.1 requests go through a shared ``requests.Session``; with
    ``http2=True`` an ``httpx.Client`` with HTTP/2 enabled is used instead.
    Bodies are streamed and the whole request is abandoned after its timeout.
    Transport failures never propagate: they produce an unreachable capture.
    """

    def __init__(self, http2: bool = False, proxy: Optional[str] = None,
                 verify: bool = True, follow_redirects: bool = False) -> None:
        self.http2 = http2
        self.follow_redirects = follow_redirects
        self.verify = verify
        self.proxy = proxy
        self.req_session = requests.Session()
        self.req_session.verify = verify
        if proxy:
            self.req_session.proxies.update({"http": proxy, "https": proxy})
        self.httpx_client: Optional[httpx.Client] = None
        if http2:
            self.httpx_client = httpx.Client(
                http2=True, verify=verify, proxy=proxy, follow_redirects=follow_redirects)

    def close(self) -> None:
        self.req_session.close()
        if self.httpx_client is not None:
            self.httpx_client.close()

    def _fetch(self, spec: RequestSpec, deadline: float) -> bytes:
        """Stream one response, giving up once ``deadline`` (monotonic) passes."""
        headers = spec.headers()
        if self.httpx_client is not None:
            with self.httpx_client.stream("GET", spec.url, headers=headers, timeout=spec.timeout) as resp:
                body = _read_until(resp.iter_bytes(), deadline, spec.url)
                return dump_response(
                    _version_label(resp.http_version), resp.status_code, resp.reason_phrase,
                    resp.headers.multi_items(), body)
        resp = self.req_session.get(
            spec.url, headers=headers, timeout=spec.timeout,
            allow_redirects=self.follow_redirects, stream=True)
        try:
            body = _read_until(resp.iter_content(chunk_size=CHUNK_SIZE), deadline, spec.url)
        finally:
            resp.close()
        return dump_response(
            _version_label(getattr(resp.raw, "version", 11)), resp.status_code, resp.reason or "",
            resp.headers.items(), body)

    def _fetch_within(self, spec: RequestSpec) -> bytes:
        """Run ``_fetch`` and stop waiting for it after ``spec.timeout`` seconds.

        The transport timeout only bounds each individual read, so the fetch
        runs in a helper thread that the caller waits on for at most the
        timeout. An abandoned fetch stops at its next chunk because it checks
        the same deadline.
        """
        deadline = time.monotonic() + spec.timeout
        outcome: "queue.Queue[Tuple[Optional[bytes], Optional[BaseException]]]" = queue.Queue(maxsize=1)

        def _worker() -> None:
            try:
                outcome.put((self._fetch(spec, deadline), None))
            except BaseException as exc:  # handed back to the waiting thread
                outcome.put((None, exc))

        threading.Thread(target=_worker, name="hhinject-fetch", daemon=True).start()
        try:
            raw, exc = outcome.get(timeout=spec.timeout)
        except queue.Empty:
            raise RequestDeadlineExceeded(f"no complete response within {spec.timeout:g}s") from None
        if exc is not None:
            raise exc
        return raw or b""

    def execute(self, target: str, host_header: HostHeader, artifact_path: str,
                timeout: float = DEFAULT_TIMEOUT, user_agent: str = DEFAULT_USER_AGENT) -> ResponseCapture:
        """Request ``target`` with the given Host header and save the dump.

        Args:
            target: Raw target; ``http://`` is prepended when no scheme is given.
            host_header: ``VALUE`` overrides the Host header, ``OMIT`` (or
                ``UNSET``) leaves it to the transport.
            artifact_path: Where the raw dump is written (empty on failure).
            timeout: Seconds after which the request is abandoned.
            user_agent: User-Agent header value.

        Returns:
            A ``ResponseCapture``; never raises for network problems or
            artifact write failures.
        """
        spec = RequestSpec(normalize_url(target), host_header, timeout, user_agent)
        retrieved_at = iso_time()
        error: Optional[str] = None
        try:
            raw = self._fetch_within(spec)
        except (requests.RequestException, httpx.HTTPError, httpx.InvalidURL,
                RequestDeadlineExceeded, ValueError) as exc:
            error = _describe(exc)
            logger.warning("[-] %s unreachable (Host: %s): %s", spec.url, host_header.label or "<default>", error)
            raw = b""
        try:
            with open(artifact_path, "wb") as f:
                f.write(raw)
        except OSError as exc:
            write_error = f"artifact not written: {_describe(exc)}"
            logger.warning("[-] %s: %s", spec.url, write_error)
            error = f"{error}; {write_error}" if error else write_error
        status, server = parse_meta(raw)
        return ResponseCapture(
            status=status,
            server=server,
            raw=raw,
            size=len(raw),
            retrieved_at=retrieved_at,
            artifact=artifact_path,
            error=error,
        )


# ----------------------------------------------------------------------------
# Job registry (progress tracking for the web UI)
# ----------------------------------------------------------------------------

JOBS: dict[str, dict[str, object]] = {}
"""
In-memory registry of background scan jobs started from the web UI. Each job
is keyed by a UUID and stores ``status`` (``"running"`` or ``"done"``),
``done`` (results emitted so far), ``output_dir``, ``summary``, ``report``
(live buffer while running, ``None`` once saved to ``report_file``) and
``error``.
At most ``MAX_JOBS`` jobs are kept; ``JOBS_LOCK`` guards every access.
"""

JOBS_LOCK = threading.Lock()


def prune_jobs(keep: int = MAX_JOBS) -> None:
    """Forget the oldest finished jobs so that fewer than ``keep`` remain."""
    with JOBS_LOCK:
        finished = [jid for jid, job in JOBS.items() if job.get("status") == "done"]
        while finished and len(JOBS) >= keep:
            JOBS.pop(finished.pop(0), None)


def progress_update(job_id: Optional[str], delta: int = 1) -> None:
    """Increment the number of emitted results for a running job."""
    if not job_id:
        return
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if job:
            job["done"] = int(job.get("done", 0)) + delta  # type: ignore[arg-type]


# ----------------------------------------------------------------------------
# Engine implementation
# ----------------------------------------------------------------------------

_DONE = object()


class Engine:
    """Run paired baseline/injected scans with bounded concurrency.

    At most ``config.concurrency`` scan tasks run at once. A bounded
    semaphore gates admission; finished results go through a completion
    queue drained by a single emitter thread, so the sink sees them one at a
    time and in completion order.
    """

    def __init__(self, config: ScanConfig, executor: Optional[RequestExecutor] = None,
                 sink: Optional[ResultSink] = None, job_id: Optional[str] = None) -> None:
        self.config = config
        self.job_id = job_id
        self.executor = executor or RequestExecutor(
            http2=config.http2, proxy=config.proxy, verify=config.verify_tls,
            follow_redirects=config.follow_redirects)
        self.sink = sink or ResultSink(
            config.summary_path,
            verbose=config.verbose,
            show_diff=config.show_diff,
            renderer=DiffRenderer(config.diff_tool, color=config.color),
            color=config.color,
        )
        self.namer = ArtifactNamer(config.output_dir)
        self.start_time = time.time()

        self._slots = threading.BoundedSemaphore(config.concurrency)
        self._lock = threading.Lock()
        self._running = 0
        self.max_running = 0
        self.submitted = 0
        self.emitted = 0
        self._results: "queue.Queue[object]" = queue.Queue()
        self._errors: List[BaseException] = []

    @property
    def running(self) -> int:
        with self._lock:
            return self._running

    def scan_target(self, target: str) -> ScanResult:
        """Issue the optional baseline request and the injected request."""
        cfg = self.config
        started_at = iso_time()
        baseline: Optional[ResponseCapture] = None
        if cfg.baseline.is_set:
            baseline = self.executor.execute(
                target, cfg.baseline, self.namer.path_for(target, "baseline"),
                timeout=cfg.timeout, user_agent=cfg.user_agent)
        injected_host = HostHeader.of(cfg.inject_host)
        injected = self.executor.execute(
            target, injected_host, self.namer.path_for(target, "inject"),
            timeout=cfg.timeout, user_agent=cfg.user_agent)
        return ScanResult(
            target=target,
            injected_host=injected_host,
            baseline_host=cfg.baseline,
            injected=injected,
            baseline=baseline,
            started_at=started_at,
        )

    def _run_slot(self, target: str) -> None:
        try:
            self._results.put(self.scan_target(target))
        finally:
            with self._lock:
                self._running -= 1
            self._slots.release()

    def _task_done(self, fut: futures.Future) -> None:
        exc = fut.exception()
        if exc is not None:
            logger.error("Scan task failed: %r", exc)
            with self._lock:
                self._errors.append(exc)

    def _emit_loop(self) -> None:
        while True:
            item = self._results.get()
            if item is _DONE:
                return
            try:
                self.sink.emit(item)  # type: ignore[arg-type]
            except Exception as exc:
                logger.error("Result sink failed: %r", exc)
                with self._lock:
                    self._errors.append(exc)
                continue
            self.emitted += 1
            progress_update(self.job_id, 1)

    def run(self, targets: Iterable[str]) -> int:
        """Scan every target and return the number of emitted results.

        Blocks until all submitted tasks have finished and their results have
        been handed to the sink. The first unexpected worker or sink error is
        re-raised after the drain.
        """
        emitter = threading.Thread(target=self._emit_loop, name="hhinject-emitter", daemon=True)
        emitter.start()
        try:
            with futures.ThreadPoolExecutor(
                    max_workers=self.config.concurrency, thread_name_prefix="hhinject") as pool:
                for target in targets:
                    self._slots.acquire()
                    with self._lock:
                        self._running += 1
                        self.max_running = max(self.max_running, self._running)
                    self.submitted += 1
                    self.sink.note(f"[*] -> {target}")
                    fut = pool.submit(self._run_slot, target)
                    fut.add_done_callback(self._task_done)
        finally:
            self._results.put(_DONE)
            emitter.join()
        if self._errors:
            raise self._errors[0]
        return self.emitted


# ----------------------------------------------------------------------------
# Command-line interface
# ----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser for the ``hhinject`` command."""
    ap = argparse.ArgumentParser(
        prog="hhinject",
        description="hhinject – Host header injection probe with baseline comparison",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog=(
            "Examples:\n"
            "  hhinject -t example.com -H www.evanricafort.com -v\n"
            "  hhinject -f targets.txt -H www.evanricafort.com -B none -D -c 4 -v\n\n"
            "  # Launch Web UI on localhost:8966\n"
            "  hhinject --ui\n"
        ),
    )
    # Targets
    ap.add_argument("-t", "--target", help="Single target (URL or host[:port]). http:// is prepended if no scheme is given.")
    ap.add_argument("-f", "--file", help="File with targets (one per line, .txt or .gz). Blank lines and # comments are skipped.")
    # Headers
    ap.add_argument("-H", "--host", default=DEFAULT_HOST_HEADER, help="Host header value to inject.")
    ap.add_argument("-B", "--baseline", help='Baseline Host header. Use "none" to send the baseline without an explicit Host header. If omitted, no baseline run.')
    ap.add_argument("-D", "--diff", action="store_true", help="Show a unified diff between baseline and injected responses (needs -B and -v).")
    # Engine
    ap.add_argument("-c", "--concurrency", type=int, default=1, help="Number of parallel scans (1 = sequential).")
    ap.add_argument("-T", "--timeout", type=float, default=DEFAULT_TIMEOUT, help="Seconds before a request is abandoned.")
    ap.add_argument("-o", "--output-dir", help="Output directory (default: results_<timestamp>).")
    ap.add_argument("-u", "--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent string.")
    # Transport
    ap.add_argument("--http2", action="store_true", help="Send requests using HTTP/2 where supported.")
    ap.add_argument("--proxy", help="Use an HTTP proxy (e.g. http://127.0.0.1:8080).")
    ap.add_argument("-k", "--insecure", action="store_true", help="Do not verify TLS certificates.")
    ap.add_argument("--follow-redirects", action="store_true", help="Follow HTTP redirects.")
    # Output
    ap.add_argument("-v", "--verbose", action="store_true", help="Verbose live output (prints full responses).")
    ap.add_argument("--diff-tool", choices=list(DiffRenderer.TOOLS), default="auto", help="Diff renderer: auto picks diff-so-fancy, then colordiff, else built-in colours.")
    ap.add_argument("--no-color", action="store_true", help="Disable ANSI colours.")
    ap.add_argument("--debug", action="store_true", help="Enable debug logging.")
    # UI options
    ap.add_argument("--ui", action="store_true", help="Launch the local Web UI (FastAPI) on 127.0.0.1:PORT.")
    ap.add_argument("--ui-port", type=int, default=8966, help="Port for the Web UI (use with --ui).")
    return ap


def prepare_output_dir(path: str) -> None:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Failed to create {path}: {exc.strerror or exc}", exit_code=3) from exc


def run_scan(config: ScanConfig, sink: Optional[ResultSink] = None, job_id: Optional[str] = None) -> Engine:
    """Create the output directory, run the engine over all targets and return it."""
    prepare_output_dir(config.output_dir)
    engine = Engine(config, sink=sink, job_id=job_id)
    try:
        engine.run(iter_targets(config.target, config.target_file))
    finally:
        engine.executor.close()
        engine.sink.close()
    return engine


def program_main(argv: List[str] | None = None) -> int:
    """Entry point for running hhinject from code or CLI.

    Builds the argument parser, validates the configuration, runs the scan
    (or starts the web UI) and returns the process exit status: ``0`` once a
    run completes, even if individual targets were unreachable, non-zero
    only for configuration errors.

    Args:
        argv: Optional list of argument strings to parse. When ``None`` (the
            default), ``sys.argv[1:]`` is used.
    """
    ap = build_parser()
    parsed_args = ap.parse_args(argv if argv is not None else None)
    if not parsed_args.no_color:
        colorama_init()

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if parsed_args.ui:
        import uvicorn  # type: ignore
        from hhinject.webui import build_app

        app = build_app()
        print(f"[+] Web UI on http://127.0.0.1:{parsed_args.ui_port}")
        uvicorn.run(app, host="127.0.0.1", port=parsed_args.ui_port)
        return 0

    try:
        config = ScanConfig.from_args(parsed_args)
        renderer = DiffRenderer(config.diff_tool, color=config.color)
        renderer.check_available()
        prepare_output_dir(config.output_dir)
    except ConfigurationError as exc:
        if exc.show_usage:
            ap.print_usage(sys.stderr)
        print(f"[-] Error: {exc}", file=sys.stderr)
        return exc.exit_code

    if config.target:
        print(f"[*] Scanning target: {config.target} with Host: {config.inject_host}")
    if config.target_file:
        mode = "sequential" if config.concurrency == 1 else f"concurrency={config.concurrency}"
        print(f"[*] Scanning targets from file: {config.target_file} ({mode})")

    engine = run_scan(config)

    print("")
    print(f"[+] Scans finished in {time.time() - engine.start_time:.2f} seconds. Targets: {engine.emitted}")
    print(f"[+] Results in: {config.output_dir}")
    print(f"[+] Summary CSV: {config.summary_path}")
    if config.verbose:
        print(f"[*] Diff renderer: {engine.sink.renderer.tool}")
    return 0


if __name__ == "__main__":
    sys.exit(program_main())
