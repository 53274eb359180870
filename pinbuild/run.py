from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import load_config
from .errors import ReleaseError
from .logging_utils import configure_logging
from .pipeline import PipelineContext, ReleasePipeline, Stage

logger = logging.getLogger(__name__)


def _load_pipeline(args: argparse.Namespace) -> ReleasePipeline:
    config = load_config(args.config)
    context = PipelineContext(
        config=config,
        work_dir=Path(args.work_dir),
        release_dir=Path(args.release_dir),
    )
    return ReleasePipeline(context)


def cmd_revision(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    print(config.revision)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    pipeline = _load_pipeline(args)
    print(json.dumps(pipeline.status(), indent=2))
    return 0


def cmd_clean(args: argparse.Namespace) -> int:
    pipeline = _load_pipeline(args)
    removed = pipeline.clean()
    print(json.dumps({"revision": str(pipeline.context.revision), "removed": removed}, indent=2))
    return 0


def _run_to_stage(args: argparse.Namespace, stage: Stage) -> int:
    pipeline = _load_pipeline(args)
    result = pipeline.run_until(stage)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pinned-revision release builder")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the release config file (default: $PINBUILD_CONFIG or pinbuild.yaml).",
    )
    parser.add_argument(
        "--work-dir",
        default=".pinbuild",
        help="Directory used for workspaces, stage state, and logs.",
    )
    parser.add_argument(
        "--release-dir",
        default="release",
        help="Directory that receives the stripped release binary.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    revision_parser = subparsers.add_parser("revision", help="Print the pinned revision")
    revision_parser.set_defaults(func=cmd_revision)

    status_parser = subparsers.add_parser("status", help="Show recorded stage status for the pinned revision")
    status_parser.set_defaults(func=cmd_status)

    clean_parser = subparsers.add_parser("clean", help="Discard the pinned revision's workspace")
    clean_parser.set_defaults(func=cmd_clean)

    for command, stage in (
        ("fetch", Stage.FETCH),
        ("build", Stage.BUILD),
        ("package", Stage.PACKAGE),
        ("release", Stage.PACKAGE),
    ):
        stage_parser = subparsers.add_parser(command, help=f"Run the pipeline through stage: {stage.name.lower()}")
        stage_parser.set_defaults(func=lambda args, stage=stage: _run_to_stage(args, stage))

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    configure_logging(Path(args.work_dir) / "logs" / "pinbuild.log", level=level)
    try:
        return args.func(args)
    except ReleaseError as exc:
        print(f"pinbuild: {exc.stage} stage failed: {exc.diagnostics}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
