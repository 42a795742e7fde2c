from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from floorplan_engine.config import Settings
from floorplan_engine.errors import GroupPipelineFailure, InputError
from floorplan_engine.server import create_app

PDF_BODY = b"%PDF-1.4\n% board\n"


class FakePipeline:
    def __init__(self, paths, cfg, opts, *, error=None, write_pdf=True, merge_error=None):
        self.paths = paths
        self.opts = opts
        self.error = error
        self.write_pdf = write_pdf
        self.merge_error = merge_error

    async def run(self, job_id):
        self.uploaded = Path(self.opts.input_path).read_bytes()
        if self.error:
            raise self.error
        merged = None
        if self.write_pdf:
            merged = Path(self.opts.merged_output_path)
            merged.write_bytes(b"%PDF-1.4 merged renders")
        return SimpleNamespace(merged_pdf_path=str(merged) if merged else None, merge_error=self.merge_error)


@pytest.fixture
def make_client(workspace_dir):
    created = []

    def _make(max_upload_mb=100, **behaviour):
        def factory(paths, cfg, opts):
            pipeline = FakePipeline(paths, cfg, opts, **behaviour)
            created.append(pipeline)
            return pipeline

        settings = Settings(floorplan_workspace=str(workspace_dir), max_upload_mb=max_upload_mb)
        return TestClient(create_app(settings=settings, pipeline_factory=factory))

    _make.created = created
    return _make


def _upload(client, body=PDF_BODY, content_type="application/pdf", params=None):
    return client.post("/process", files={"pdf": ("board.pdf", body, content_type)}, params=params or {})


def _temp_entries(workspace_dir):
    temp = workspace_dir / "temp"
    return list(temp.iterdir()) if temp.exists() else []


class TestHealth:
    def test_health(self, make_client):
        response = make_client().get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestProcess:
    def test_returns_merged_pdf(self, make_client, workspace_dir):
        client = make_client()
        response = _upload(client, params={"filename": "Smith Residence.pdf"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 merged renders"
        assert 'filename="smith_residence.pdf"' in response.headers["content-disposition"]
        assert make_client.created[0].uploaded == PDF_BODY
        assert _temp_entries(workspace_dir) == []

    def test_query_options(self, make_client):
        client = make_client()
        _upload(
            client,
            params={
                "skipConversion": 2,
                "skip": 1,
                "concurrency": 3,
                "continue": "true",
                "merge": "false",
                "dpi": 150,
                "prefix": "Sheet",
                "pad": "false",
                "keepIntermediates": "true",
            },
        )

        opts = make_client.created[0].opts
        assert opts.skip_conversion_pages == 2
        assert opts.skip_pages == 1
        assert opts.concurrency == 3
        assert opts.continue_on_error is True
        assert opts.merge_output is False
        assert opts.dpi == 150
        assert opts.file_prefix == "sheet"
        assert opts.pad_pages is False
        assert opts.keep_intermediates is True

    def test_defaults(self, make_client):
        _upload(make_client())
        opts = make_client.created[0].opts
        assert opts.skip_conversion_pages == 4
        assert opts.concurrency == 2
        assert opts.continue_on_error is False
        assert opts.merge_output is True
        assert opts.file_prefix == "page"
        assert opts.pad_pages is True
        assert opts.keep_intermediates is False

    def test_rejects_non_pdf(self, make_client):
        response = _upload(make_client(), body=b"hello", content_type="text/plain")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_input"
        assert body["requestId"]
        assert make_client.created == []

    def test_zero_concurrency_rejected(self, make_client):
        response = _upload(make_client(), params={"concurrency": 0})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_input"
        assert body["message"].startswith("concurrency:")
        assert body["requestId"]
        assert make_client.created == []

    def test_missing_upload(self, make_client):
        response = make_client().post("/process")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_input"
        assert body["message"] == "No PDF file uploaded"
        assert body["requestId"]
        assert make_client.created == []

    def test_file_too_large(self, make_client, workspace_dir):
        client = make_client(max_upload_mb=0)
        response = _upload(client)

        assert response.status_code == 400
        assert response.json()["error"] == "file_too_large"
        assert _temp_entries(workspace_dir) == []

    def test_input_error(self, make_client):
        response = _upload(make_client(error=InputError("unreadable PDF upload.pdf")))

        assert response.status_code == 400
        assert response.json()["message"] == "unreadable PDF upload.pdf"

    def test_pipeline_failure(self, make_client, workspace_dir):
        response = _upload(make_client(error=GroupPipelineFailure(2, "image model unavailable")))

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "processing_failed"
        assert "image model unavailable" in body["message"]
        assert _temp_entries(workspace_dir) == []

    def test_unexpected_error(self, make_client):
        response = _upload(make_client(error=RuntimeError("disk full")))

        assert response.status_code == 500
        assert response.json()["message"] == "disk full"

    def test_no_merged_pdf(self, make_client):
        response = _upload(make_client(write_pdf=False, merge_error="No image files found in output directory"))

        assert response.status_code == 500
        assert response.json()["message"] == "No image files found in output directory"
