from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from dotenv import load_dotenv

from .config import Settings, load_config
from .errors import FloorplanError, GroupPipelineFailure
from .job import create_job_dirs, init_job_outputs, new_job_id
from .log import configure_logging
from .merger import merge_images_to_pdf
from .ocr import HeadingDetector
from .pipeline import EnginePipeline, PipelineReport, RunOptions

_DEFAULT_CONFIG = Path("config") / "default.json"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="floorplan_engine")
    p.add_argument("--log-level", default=None, help="debug|info|warning|error (default: FLOORPLAN_LOG_LEVEL)")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Render a board PDF into room renders and a merged PDF")
    run.add_argument("--input", required=True, help="Input PDF path")
    run.add_argument("--workspace", default=None, help="Workspace root (default: FLOORPLAN_WORKSPACE)")
    run.add_argument("--pages-dir", default=None, help="Directory for rasterized pages")
    run.add_argument("--output-dir", default=None, help="Directory for generated renders")
    run.add_argument("--skip-conversion", type=int, default=4, help="PDF pages to skip before rendering")
    run.add_argument("--skip", type=int, default=0, help="Rendered pages to skip before heading detection")
    run.add_argument("--concurrency", type=int, default=2, help="Groups processed concurrently")
    run.add_argument("--continue", dest="continue_on_error", action="store_true", help="Record failures and keep going")
    run.add_argument("--no-merge", dest="merge", action="store_false", help="Do not merge renders into a PDF")
    run.add_argument("--merged-output", default=None, help="Merged PDF path (default: <job_dir>/merged-output.pdf)")
    run.add_argument("--dpi", type=int, default=110, help="DPI for PDF rendering")
    run.add_argument("--prefix", default="page", help="Page image filename prefix")
    run.add_argument("--no-pad", dest="pad", action="store_false", help="Do not zero-pad page numbers")
    run.add_argument("--keep-intermediates", action="store_true", help="Keep page and render PNGs after merging")
    run.add_argument("--config", default=None, help="Engine config JSON (default: config/default.json if present)")

    detect = sub.add_parser("detect", help="Print the room heading detected on one page image")
    detect.add_argument("--image", required=True, help="Page image path")
    detect.add_argument("--config", default=None, help="Engine config JSON")

    merge = sub.add_parser("merge", help="Merge a folder of images into a PDF")
    merge.add_argument("--image-dir", required=True, help="Folder of images")
    merge.add_argument("--out", required=True, help="Output PDF path")

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--config", default=None, help="Engine config JSON")

    return p


def _config_path(arg: str | None) -> Path | None:
    if arg:
        return Path(arg)
    return _DEFAULT_CONFIG if _DEFAULT_CONFIG.exists() else None


def _print_summary(report: PipelineReport) -> None:
    print(f"pages={len(report.pages)} groups={len(report.groups)} succeeded={report.successes} failed={report.failures}")
    if report.merged_pdf_path:
        print(f"merged={report.merged_pdf_path}")
    elif report.merge_error:
        print(f"merge_failed: {report.merge_error}")


def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    if args.concurrency < 1:
        print("concurrency must be >= 1")
        return 2

    job_id = new_job_id()
    paths = create_job_dirs(
        args.workspace or settings.floorplan_workspace,
        job_id,
        pages_dir=args.pages_dir,
        output_dir=args.output_dir,
    )
    init_job_outputs(paths)

    cfg = load_config(_config_path(args.config))
    opts = RunOptions(
        input_path=args.input,
        skip_conversion_pages=max(0, args.skip_conversion),
        skip_pages=max(0, args.skip),
        concurrency=args.concurrency,
        continue_on_error=bool(args.continue_on_error),
        merge_output=bool(args.merge),
        merged_output_path=args.merged_output,
        dpi=args.dpi,
        file_prefix=args.prefix,
        pad_pages=bool(args.pad),
        keep_intermediates=bool(args.keep_intermediates),
    )

    print(str(paths.job_dir))
    try:
        report = asyncio.run(EnginePipeline(paths=paths, cfg=cfg, opts=opts, settings=settings).run(job_id=job_id))
    except GroupPipelineFailure as e:
        if e.report is not None:
            _print_summary(e.report)
        print(f"run_failed: {e}")
        return 1
    except FloorplanError as e:
        print(f"run_failed: {e}")
        return 1

    _print_summary(report)
    if report.failures:
        print("Some pages failed during processing. See errors.jsonl for details.")
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    cfg = load_config(_config_path(args.config))
    try:
        detection = HeadingDetector.from_config(cfg.detect).detect(args.image)
    except FloorplanError as e:
        print(f"detect_failed: {e}")
        return 1
    print(detection.room_name or detection.room_name_raw or "(no room identified)")
    return 0


def cmd_merge(args: argparse.Namespace) -> int:
    try:
        result = merge_images_to_pdf(args.image_dir, args.out)
    except FloorplanError as e:
        print(f"merge_failed: {e}")
        return 1
    print(f"merged={result.image_count} out={result.output_path}")
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    from .server import create_app

    app = create_app(settings=settings, cfg=load_config(_config_path(args.config)))
    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(args.log_level or settings.floorplan_log_level)

    if args.command == "run":
        return cmd_run(args, settings)

    if args.command == "detect":
        return cmd_detect(args)

    if args.command == "merge":
        return cmd_merge(args)

    if args.command == "serve":
        return cmd_serve(args, settings)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
