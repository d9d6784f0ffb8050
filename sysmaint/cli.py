"""이 파일은 .py 명령행 인터페이스 모듈로 실행 옵션을 해석해 오케스트레이터를 호출합니다."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from sysmaint.core.config import CONFIG_DIR, DEFAULT_PROFILE, STORAGE_ROOT
from sysmaint.core.logging import setup_logging
from sysmaint.core.types import Mode, SessionContext
from sysmaint.services.orchestrator import Orchestrator, RunOutcome

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sysmaint", description="Detect-diff-act system maintenance")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--live", dest="mode", action="store_const", const=Mode.LIVE, help="Apply changes to the host")
    mode.add_argument(
        "--dry-run",
        dest="mode",
        action="store_const",
        const=Mode.DRY_RUN,
        help="Report intended changes without applying them",
    )
    parser.add_argument("--tasks", help="Comma-separated task ids to run (default: all enabled tasks)")
    parser.add_argument(
        "--non-interactive",
        dest="interactive",
        action="store_false",
        help="Do not wait for user input (post-run action fires without countdown)",
    )
    parser.add_argument("--profile", default=DEFAULT_PROFILE, help="Settings profile to overlay")
    parser.add_argument("--root", default=str(STORAGE_ROOT), help="Output root for data/logs/processed/reports")
    parser.add_argument("--config-dir", default=str(CONFIG_DIR), help="Directory holding settings, schemas and lists")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: settings logging.level)",
    )
    parser.set_defaults(mode=None, interactive=True)
    return parser


def parse_task_ids(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def print_summary(outcome: RunOutcome) -> None:
    if outcome.session is None or outcome.result_set is None:
        print(f"Run aborted: {outcome.error}")
        return
    session: SessionContext = outcome.session
    print(f"Session {session.session_id} ({session.mode.value})")
    for result in outcome.result_set.results:
        status = "OK  " if result.success else "FAIL"
        suffix = " (dry-run)" if result.dry_run else ""
        line = f"  [{status}] {result.task_name}: {result.items_detected} detected / {result.items_processed} processed{suffix}"
        if result.error is not None:
            line += f" - {result.error.kind.value}: {result.error.message}"
        print(line)
    if outcome.metrics is not None:
        print(f"Success rate: {outcome.metrics.success_rate * 100:.1f}%")
    for artifact in outcome.artifacts:
        print(f"Report: {artifact.path}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console_level = args.log_level
    setup_logging(console_level or "INFO")
    orchestrator = Orchestrator(
        config_dir=Path(args.config_dir),
        root=Path(args.root),
        profile=args.profile,
        console_level=console_level,
    )
    outcome = orchestrator.run(
        mode=args.mode,
        task_ids=parse_task_ids(args.tasks),
        interactive=args.interactive and sys.stdin.isatty(),
    )
    print_summary(outcome)
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
