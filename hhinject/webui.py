"""
FastAPI web interface for hhinject.

The UI accepts a target list and the scan options, runs the scan in a
background thread and lets the operator poll progress, read the plain-text
reports and download the summary CSV. Job state lives in
:data:`hhinject.core.JOBS`.
"""

from __future__ import annotations

import html
import io
import logging
import os
import tempfile
import threading
import uuid

from fastapi import FastAPI, Form, HTTPException  # type: ignore
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse  # type: ignore

from hhinject.core import (
    DEFAULT_HOST_HEADER,
    DEFAULT_USER_AGENT,
    JOBS,
    JOBS_LOCK,
    HostHeader,
    ScanConfig,
    prepare_output_dir,
    prune_jobs,
    run_scan,
)
from hhinject.report import DiffRenderer, ResultSink

logger = logging.getLogger(__name__)

REPORT_NAME = "report.txt"

_CSS = """
<style>
  :root { color-scheme: light dark; }
  * { box-sizing: border-box; }
  body { font-family: Inter, system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif;
         margin: 0; background: #0b0d10; color: #e8eaed; }
  header { padding: 24px; background: linear-gradient(135deg,#1c1f24 0%,#121418 100%);
           border-bottom: 1px solid #2a2f36; }
  h1 { margin: 0; font-size: 22px; letter-spacing: .3px; }
  main { max-width: 1060px; margin: 0 auto; padding: 28px 16px 64px; }
  .card { background: #151922; border: 1px solid #2a2f36; border-radius: 16px; padding: 24px; }
  .row { display: grid; grid-template-columns: 160px 1fr; gap: 12px; align-items: center; margin-bottom: 10px; }
  label { font-weight: 600; font-size: 13px; color: #aab2c0; }
  input[type=text], input[type=number], textarea, select {
    width: 100%; padding: 10px 12px; border-radius: 10px;
    border: 1px solid #2a2f36; background: #0f131a; color: #e8eaed; }
  textarea { min-height: 140px; font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, monospace; }
  .muted { color: #91a0b6; font-size: 12px; }
  .btn { background: linear-gradient(135deg,#4a66ff 0%, #00ccff 100%); border: none; color: white;
         padding: 10px 16px; border-radius: 10px; cursor: pointer; font-weight: 700; text-decoration: none; }
  .actions { display:flex; gap:10px; margin-top:16px; }
</style>
"""


def _render_html(title: str, body: str) -> HTMLResponse:
    page = f"""<!doctype html>
    <html><head><meta charset="utf-8"><title>{html.escape(title)}</title>{_CSS}</head>
    <body>
      <header><h1>hhinject – Web UI</h1></header>
      <main>{body}</main>
    </body></html>"""
    return HTMLResponse(page)


def _run_job(job_id: str, config: ScanConfig, stream: io.StringIO) -> None:
    """Background thread body: run the scan and record the final job state."""
    error = None
    try:
        prepare_output_dir(config.output_dir)
        sink = ResultSink(
            config.summary_path,
            verbose=True,
            show_diff=config.show_diff,
            renderer=DiffRenderer("plain", color=False),
            color=False,
            stream=stream,
        )
        run_scan(config, sink=sink, job_id=job_id)
    except Exception as exc:
        logger.exception("Web UI job %s failed", job_id)
        error = str(exc)
    report_path = os.path.join(config.output_dir, REPORT_NAME)
    try:
        with open(report_path, "w", encoding="utf-8") as f:
            f.write(stream.getvalue())
    except OSError as exc:
        logger.error("Could not save report for job %s: %s", job_id, exc)
        error = error or f"report not saved: {exc}"
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if job:
            job["status"] = "done"
            job["error"] = error
            job["report"] = None
            job["report_file"] = report_path
    stream.close()


def build_app() -> FastAPI:
    """Construct and configure the FastAPI application for the web UI."""
    app = FastAPI()

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        body = f"""
        <div class="card">
          <form method="post" action="/run">
            <div class="row"><label>Targets</label>
              <textarea name="targets" placeholder="example.com&#10;https://another.test:8443"></textarea></div>
            <div class="row"><label>Injected Host</label>
              <input type="text" name="host" value="{html.escape(DEFAULT_HOST_HEADER)}" /></div>
            <div class="row"><label>Baseline Host</label>
              <input type="text" name="baseline" placeholder="none = omit Host header; empty = no baseline" /></div>
            <div class="row"><label>Show diff</label>
              <select name="diff"><option value="">No</option><option value="1">Yes</option></select></div>
            <div class="row"><label>Concurrency</label>
              <input type="number" name="concurrency" value="4" /></div>
            <div class="row"><label>Timeout (s)</label>
              <input type="number" name="timeout" step="0.5" value="10" /></div>
            <div class="row"><label>User-Agent</label>
              <input type="text" name="user_agent" value="{html.escape(DEFAULT_USER_AGENT)}" /></div>
            <div class="row"><label>HTTP/2</label>
              <select name="http2"><option value="">No</option><option value="1">Yes</option></select></div>
            <div class="row"><label>Skip TLS verify</label>
              <select name="insecure"><option value="">No</option><option value="1">Yes</option></select></div>
            <div class="actions">
              <button class="btn" type="submit">Run scan</button>
              <span class="muted">Reports and the summary CSV are available once the scan is running.</span>
            </div>
          </form>
        </div>
        """
        return _render_html("hhinject UI", body)

    @app.post("/run", response_class=HTMLResponse)
    async def run(
        targets: str = Form(default=""),
        host: str = Form(default=DEFAULT_HOST_HEADER),
        baseline: str = Form(default=""),
        diff: str = Form(default=""),
        concurrency: int = Form(default=4),
        timeout: float = Form(default=10.0),
        user_agent: str = Form(default=DEFAULT_USER_AGENT),
        http2: str = Form(default=""),
        insecure: str = Form(default=""),
    ) -> HTMLResponse:
        """Validate the form, spawn a background scan job and render the progress page."""
        if not targets.strip():
            raise HTTPException(status_code=400, detail="No targets given")
        if not host.strip():
            raise HTTPException(status_code=400, detail="Injected Host must not be empty")
        if concurrency < 1 or timeout <= 0:
            raise HTTPException(status_code=400, detail="Concurrency must be >= 1 and timeout > 0")

        job_id = uuid.uuid4().hex
        output_dir = os.path.join(tempfile.gettempdir(), f"hhinject_{job_id}")
        os.makedirs(output_dir, exist_ok=True)
        target_file = os.path.join(output_dir, "targets.txt")
        with open(target_file, "w", encoding="utf-8") as f:
            f.write(targets)

        config = ScanConfig(
            target_file=target_file,
            inject_host=host.strip(),
            baseline=HostHeader.parse(baseline.strip()),
            show_diff=bool(diff),
            concurrency=concurrency,
            timeout=timeout,
            output_dir=output_dir,
            user_agent=user_agent,
            verbose=True,
            http2=bool(http2),
            verify_tls=not insecure,
            color=False,
            diff_tool="plain",
        )
        stream = io.StringIO()
        prune_jobs()
        with JOBS_LOCK:
            JOBS[job_id] = {
                "status": "running",
                "done": 0,
                "output_dir": output_dir,
                "summary": config.summary_path,
                "report": stream,
                "error": None,
            }
        threading.Thread(target=_run_job, args=(job_id, config, stream), daemon=True).start()

        progress_html = """
        <div class="card">
          <p class="muted">Your scan is running...</p>
          <div id="pct" class="muted">0 targets scanned</div>
          <div class="actions">
            <a class="btn" href="/report/{job_id}">View reports</a>
            <a class="btn" href="/download/{job_id}">Download summary CSV</a>
            <a class="btn" href="/">Run another scan</a>
          </div>
        </div>
        <script>
          const pct = document.getElementById('pct');
          async function poll() {{
            try {{
              const r = await fetch('/progress/{job_id}');
              if (!r.ok) throw new Error('bad');
              const j = await r.json();
              pct.textContent = j.done + ' targets scanned' + (j.status === 'done' ? ' (finished)' : '');
              if (j.status === 'done') return;
            }} catch (e) {{}}
            setTimeout(poll, 500);
          }}
          poll();
        </script>
        """.format(job_id=job_id)
        return _render_html("hhinject – Running", progress_html)

    @app.get("/progress/{job_id}")
    async def ui_progress(job_id: str) -> dict[str, object]:
        """Return JSON progress information for a running or completed job."""
        with JOBS_LOCK:
            job = JOBS.get(job_id)
            if not job:
                raise HTTPException(status_code=404, detail="Job not found")
            return {"status": job.get("status"), "done": job.get("done"), "error": job.get("error")}

    @app.get("/report/{job_id}", response_class=PlainTextResponse)
    async def ui_report(job_id: str) -> PlainTextResponse:
        with JOBS_LOCK:
            job = JOBS.get(job_id)
            if not job:
                raise HTTPException(status_code=404, detail="Job not found")
            stream = job["report"]
            live = stream.getvalue() if stream is not None else None  # type: ignore[attr-defined]
            report_file = job.get("report_file")
        if live is not None:
            return PlainTextResponse(live)
        if not report_file or not os.path.isfile(str(report_file)):
            raise HTTPException(status_code=404, detail="Report not available")
        with open(str(report_file), "r", encoding="utf-8") as f:
            return PlainTextResponse(f.read())

    @app.get("/download/{job_id}")
    async def ui_download(job_id: str):
        """Serve the summary CSV of a job."""
        with JOBS_LOCK:
            job = JOBS.get(job_id)
            if not job:
                raise HTTPException(status_code=404, detail="Job not found")
            path = str(job["summary"])
        if not os.path.isfile(path):
            raise HTTPException(status_code=404, detail="Summary not available yet")
        return FileResponse(path, filename="summary.csv", media_type="text/csv")

    return app
