# -*- coding: utf-8 -*-
"""Job bookkeeping for the HTTP front-end.

Each job runs the CLI in a child process. Its output lines are fanned out to
the subscribers of that job. Records live in a ``JobStore`` passed to the
handlers. Every update is also written to ``meta.json``, so a restarted server
can still answer status and result queries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import re
import sys
import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Set

from .errors import ProcessSpawnError
from .urls import series_dir_from_url

LOG = logging.getLogger("toonpdf.jobs")

STARTED = "started"
DONE = "done"
ERROR = "error"
FINAL_STATES = (DONE, ERROR)

DONE_SENTINEL = "__DONE__"
ERROR_SENTINEL = "__ERROR__"

META_NAME = "meta.json"
STDERR_NAME = "stderr.log"
STDERR_TAIL_LINES = 15

CHROME_MISSING_RE = re.compile(
    r"Executable doesn't exist|playwright install|Could not find Chrom", re.I
)
NETWORK_ERROR_RE = re.compile(r"ERR_NAME_NOT_RESOLVED|ERR_BLOCKED_BY_CLIENT|ERR_CONNECTION", re.I)


@dataclass
class JobRecord:
    job_id: str
    status: str
    out_dir: str
    file_name: str
    pdf_path: str
    error_message: Optional[str] = None

    @property
    def stderr_path(self) -> pathlib.Path:
        return pathlib.Path(self.out_dir) / STDERR_NAME

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "JobRecord":
        return cls(
            job_id=str(data.get("job_id", "")),
            status=data.get("status", STARTED),
            out_dir=data.get("out_dir", ""),
            file_name=data.get("file_name", ""),
            pdf_path=data.get("pdf_path", ""),
            error_message=data.get("error_message"),
        )


def explain_failure(stderr_text: str, code: Optional[int]) -> str:
    """Turn a failed run's stderr into a short message for the client."""
    if CHROME_MISSING_RE.search(stderr_text or ""):
        return "Chromium not found (run `playwright install chromium`)"
    if NETWORK_ERROR_RE.search(stderr_text or ""):
        return "Network/loading error (URL, cookie consent, adblock)"
    tail = "\n".join((stderr_text or "").splitlines()[-STDERR_TAIL_LINES:]).strip()
    return tail or f"Process exited with code={code}"


class JobStore:
    """In-memory job records keyed by id, snapshotted to disk.

    Only the task running a job updates its record. Subscribers get one
    ``asyncio.Queue`` each.
    """

    def __init__(self, root: pathlib.Path):
        self.root = pathlib.Path(root)
        self._jobs: Dict[str, JobRecord] = {}
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def _new_id(self) -> str:
        stamp = int(time.time() * 1000)
        while str(stamp) in self._jobs or (self.root / str(stamp)).exists():
            stamp += 1
        return str(stamp)

    def create(self, url: str) -> JobRecord:
        job_id = self._new_id()
        series = series_dir_from_url(url)
        out_dir = self.root / job_id / series
        out_dir.mkdir(parents=True, exist_ok=True)
        file_name = f"{series}.pdf"
        record = JobRecord(
            job_id=job_id,
            status=STARTED,
            out_dir=str(out_dir),
            file_name=file_name,
            pdf_path=str(out_dir / file_name),
        )
        record.stderr_path.write_text("", encoding="utf-8")
        self._jobs[job_id] = record
        self.save(record)
        return record

    def save(self, record: JobRecord) -> None:
        meta = pathlib.Path(record.out_dir) / META_NAME
        try:
            meta.write_text(json.dumps(record.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            LOG.warning("Could not persist %s: %s", meta, exc)

    def _rehydrate(self, job_id: str) -> Optional[JobRecord]:
        job_root = self.root / job_id
        if not job_root.is_dir():
            return None
        for meta in sorted(job_root.glob(f"*/{META_NAME}")):
            try:
                data = json.loads(meta.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                LOG.warning("Unreadable job snapshot %s: %s", meta, exc)
                continue
            record = JobRecord.from_dict(data)
            record.job_id = job_id
            return record
        return None

    def get(self, job_id: str) -> Optional[JobRecord]:
        record = self._jobs.get(job_id)
        if record is None:
            record = self._rehydrate(job_id)
            if record is not None:
                self._jobs[job_id] = record
        return record

    def update(self, job_id: str, **changes) -> JobRecord:
        record = self.get(job_id)
        if record is None:
            raise KeyError(job_id)
        if record.status in FINAL_STATES:
            LOG.debug("Ignoring update of finished job %s: %s", job_id, changes)
            return record
        for key, value in changes.items():
            setattr(record, key, value)
        self.save(record)
        return record

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, set()).add(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        subs = self._subscribers.get(job_id)
        if not subs:
            return
        subs.discard(queue)
        if not subs:
            self._subscribers.pop(job_id, None)

    def publish(self, job_id: str, line: str) -> None:
        for queue in list(self._subscribers.get(job_id, ())):
            queue.put_nowait(line)


def build_command(record: JobRecord, url: str, debug: bool = False, wait: int = 0) -> List[str]:
    cmd = [sys.executable, "-m", "toonpdf", url, record.out_dir, record.file_name]
    if debug:
        cmd.append("--debug")
    if wait and int(wait) > 0:
        cmd.extend(["--wait", str(int(wait))])
    return cmd


async def _pump(stream: asyncio.StreamReader, on_line) -> None:
    while True:
        raw = await stream.readline()
        if not raw:
            return
        on_line(raw.decode("utf-8", errors="replace").rstrip("\r\n"))


async def spawn(cmd: List[str]) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProcessSpawnError(f"Spawn error: {exc}") from exc


async def run_job_process(
    store: JobStore, record: JobRecord, url: str, debug: bool = False, wait: int = 0
) -> JobRecord:
    job_id = record.job_id
    cmd = build_command(record, url, debug, wait)
    LOG.info("Spawning: %s", " ".join(cmd))
    try:
        proc = await spawn(cmd)
    except ProcessSpawnError as exc:
        LOG.error("Job %s: %s", job_id, exc)
        store.update(job_id, status=ERROR, error_message=str(exc))
        store.publish(job_id, ERROR_SENTINEL)
        return record

    stderr_lines: List[str] = []

    def on_stdout(line: str) -> None:
        store.publish(job_id, line)

    def on_stderr(line: str) -> None:
        stderr_lines.append(line)
        try:
            with open(record.stderr_path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:
            LOG.debug("Could not append to %s: %s", record.stderr_path, exc)
        if line.strip():
            store.publish(job_id, "ERR: " + line)

    await asyncio.gather(_pump(proc.stdout, on_stdout), _pump(proc.stderr, on_stderr))
    code = await proc.wait()

    if code == 0 and pathlib.Path(record.pdf_path).exists():
        store.update(job_id, status=DONE)
        store.publish(job_id, DONE_SENTINEL)
        LOG.info("Job %s done: %s", job_id, record.pdf_path)
        return record

    message = explain_failure("\n".join(stderr_lines), code)
    store.update(job_id, status=ERROR, error_message=message)
    store.publish(job_id, f"ERR: See log: {record.stderr_path}")
    store.publish(job_id, ERROR_SENTINEL)
    LOG.warning("Job %s failed (code=%s): %s", job_id, code, message)
    return record
