import pathlib

import pytest
from fastapi.testclient import TestClient

from toonpdf import server
from toonpdf.jobs import DONE, ERROR, JobStore
from toonpdf.server import create_app

URL = "https://www.webtoons.com/en/romance/bittersweet-sweetheart/ep-1/viewer?title_no=1&episode_no=1"


@pytest.fixture
def store(tmp_path):
    return JobStore(tmp_path)


@pytest.fixture
def client(store):
    return TestClient(create_app(store))


@pytest.fixture
def runs(monkeypatch):
    seen = []

    async def fake_run(store, record, url, debug=False, wait=0):
        seen.append((record.job_id, url, debug, wait))
        pathlib.Path(record.pdf_path).write_bytes(b"%PDF-1.4\n%fake\n")
        store.update(record.job_id, status=DONE)
        return record

    monkeypatch.setattr(server, "run_job_process", fake_run)
    return seen


def test_root_and_health(client):
    assert client.get("/").json() == {"service": "toonpdf", "status": "ok"}
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.text == "ok"


def test_diag(client):
    body = client.get("/diag").json()
    assert {"version", "python", "cwd", "env"} <= set(body)


@pytest.mark.parametrize("payload", [{}, {"url": ""}, {"url": "   "}])
def test_start_requires_url(client, runs, payload):
    resp = client.post("/start", json=payload)
    assert resp.status_code == 400
    assert runs == []


def test_start_runs_job_and_serves_pdf(client, runs):
    resp = client.post("/start", json={"url": URL, "debug": True, "wait": -10})
    assert resp.status_code == 200
    body = resp.json()
    assert body["fileName"] == "romance-bittersweet-sweetheart-ep1.pdf"
    job_id = body["jobId"]
    assert runs == [(job_id, URL, True, 0)]

    status = client.get(f"/status/{job_id}").json()
    assert status == {
        "status": DONE,
        "fileName": "romance-bittersweet-sweetheart-ep1.pdf",
        "errorMessage": None,
    }

    pdf = client.get(f"/result/{job_id}")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert "romance-bittersweet-sweetheart-ep1.pdf" in pdf.headers["content-disposition"]
    assert pdf.content.startswith(b"%PDF")


def test_relative_url_is_completed(client, runs):
    client.post("/start", json={"url": "/en/x/ep-2/viewer"})
    assert runs[0][1] == "https://www.webtoons.com/en/x/ep-2/viewer"


def test_unknown_job(client):
    resp = client.get("/status/123")
    assert resp.status_code == 404
    assert resp.json() == {"status": "unknown"}
    assert client.get("/result/123").status_code == 404


def test_result_missing_pdf(client, store):
    record = store.create(URL)
    assert client.get(f"/result/{record.job_id}").status_code == 404


def test_events_for_finished_jobs(client, store):
    done = store.create(URL)
    store.update(done.job_id, status=DONE)
    failed = store.create(URL)
    store.update(failed.job_id, status=ERROR, error_message="boom")

    with client.stream("GET", f"/events/{done.job_id}") as resp:
        assert resp.headers["content-type"].startswith("text/event-stream")
        text = "".join(resp.iter_text())
    assert text.startswith("retry: 1000\n\n")
    assert "data: __DONE__\n\n" in text

    text = client.get(f"/events/{failed.job_id}").text
    assert "data: __ERROR__\n\n" in text


def test_status_survives_restart(tmp_path, runs):
    first = TestClient(create_app(JobStore(tmp_path)))
    job_id = first.post("/start", json={"url": URL}).json()["jobId"]

    second = TestClient(create_app(JobStore(tmp_path)))
    assert second.get(f"/status/{job_id}").json()["status"] == DONE
    assert second.get(f"/result/{job_id}").status_code == 200
