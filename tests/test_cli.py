from __future__ import annotations

import json

import pytest
from PIL import Image

from floorplan_engine.cli import build_parser, main


@pytest.fixture(autouse=True)
def isolated_cwd(workspace_dir, monkeypatch):
    monkeypatch.chdir(workspace_dir)


class TestParser:
    def test_run_defaults(self):
        args = build_parser().parse_args(["run", "--input", "board.pdf"])

        assert args.skip_conversion == 4
        assert args.skip == 0
        assert args.concurrency == 2
        assert args.continue_on_error is False
        assert args.merge is True
        assert args.dpi == 110
        assert args.pad is True
        assert args.keep_intermediates is False

    def test_run_flags(self):
        args = build_parser().parse_args(
            ["run", "--input", "b.pdf", "--continue", "--no-merge", "--no-pad", "--concurrency", "5", "--prefix", "sheet"]
        )
        assert args.continue_on_error is True
        assert args.merge is False
        assert args.pad is False
        assert args.concurrency == 5
        assert args.prefix == "sheet"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_merge(self, workspace_dir, capsys):
        images = workspace_dir / "generated"
        images.mkdir()
        Image.new("RGB", (80, 60), color=(1, 2, 3)).save(images / "page-1-render.png")

        code = main(["merge", "--image-dir", str(images), "--out", str(workspace_dir / "out.pdf")])

        assert code == 0
        assert "merged=1" in capsys.readouterr().out
        assert (workspace_dir / "out.pdf").exists()

    def test_merge_empty(self, workspace_dir, capsys):
        (workspace_dir / "generated").mkdir()
        code = main(["merge", "--image-dir", str(workspace_dir / "generated"), "--out", "out.pdf"])

        assert code == 1
        assert "merge_failed" in capsys.readouterr().out

    def test_run_rejects_zero_concurrency(self, capsys):
        assert main(["run", "--input", "board.pdf", "--concurrency", "0"]) == 2
        assert "concurrency" in capsys.readouterr().out

    def test_run_missing_pdf(self, workspace_dir, capsys):
        code = main(["run", "--input", str(workspace_dir / "missing.pdf"), "--workspace", str(workspace_dir)])

        assert code == 1
        assert "run_failed: PDF not found" in capsys.readouterr().out
        reports = list((workspace_dir / "jobs").glob("*/*/report.json"))
        assert len(reports) == 1
        saved = json.loads(reports[0].read_text(encoding="utf-8"))
        assert saved["job"]["state"] == "aborted"

    def test_detect_unreadable_image(self, workspace_dir, capsys):
        bad = workspace_dir / "page.png"
        bad.write_bytes(b"nope")

        assert main(["detect", "--image", str(bad)]) == 1
        assert "detect_failed" in capsys.readouterr().out
