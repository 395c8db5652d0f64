"""pwdscan command line entry point.

Usage:
    # Scan a repo against the public OpenAI endpoint
    OPENAI_API_KEY=... pwdscan -p ./repo

    # Internal gateway, forwarding two env vars as headers
    pwdscan -p ./repo -H llm.example.com/api/openai/v1 -m Mistral-24b \\
        -e X_API_KEY -e X_TENANT_ID

Exit codes: 0 after a completed run (individual file failures are printed
inline), 2 on configuration errors.
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import List, Optional, TextIO

from pwdscan._logging import configure_logging, get_component_logger
from pwdscan.adapters.openai_chat import OpenAIChatClient
from pwdscan.config import ScanSettings, build_settings
from pwdscan.engine import ToolCallingEngine
from pwdscan.files import list_files
from pwdscan.prompts import PromptLoader
from pwdscan.scheduler import AnalysisScheduler
from pwdscan.tools import build_default_registry
from pwdscan.types import ScanError

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pwdscan",
        description="Ask a language model to flag files that contain secrets.",
    )
    parser.add_argument("-p", "--path", required=True, help="Path of the local repo to scan")
    parser.add_argument("-H", "--host", default="", help="Host URL of the chat completions endpoint")
    parser.add_argument("-m", "--model", default="", help="Model name")
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=[],
        metavar="NAME",
        help="Environment variable to forward as a header (repeatable)",
    )
    parser.add_argument("-c", "--concurrency", type=int, default=8, help="Files analyzed at once")
    parser.add_argument("--timeout", type=float, default=None, help="Global deadline in seconds")
    parser.add_argument("--max-rounds", type=int, default=1, help="Model rounds per file")
    parser.add_argument("--prompts", default=None, help="YAML file with role prompts")
    parser.add_argument("--role", default="security", choices=["security", "review"])
    parser.add_argument("--log-level", default="INFO")
    return parser


def build_scheduler(settings: ScanSettings) -> AnalysisScheduler:
    client = OpenAIChatClient(settings.endpoint)
    engine = ToolCallingEngine(client, build_default_registry(), max_rounds=settings.max_rounds)
    return AnalysisScheduler(
        engine,
        PromptLoader(settings.prompts_path),
        role=settings.role,
        max_concurrency=settings.concurrency,
        timeout=settings.timeout,
    )


async def run(
    settings: ScanSettings,
    files: List[str],
    out: Optional[TextIO] = None,
    scheduler: Optional[AnalysisScheduler] = None,
) -> int:
    out = out or sys.stdout
    scheduler = scheduler or build_scheduler(settings)
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        pass  # no signal support on this loop

    try:
        async for result in scheduler.analyze(files, cancel=cancel):
            print(result.format_line(), file=out, flush=True)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    logger = get_component_logger("cli")

    try:
        settings = build_settings(
            root=args.path,
            host=args.host,
            model=args.model,
            env_names=args.env,
            concurrency=args.concurrency,
            timeout=args.timeout,
            max_rounds=args.max_rounds,
            prompts_path=args.prompts,
            role=args.role,
        )
        files = list_files(settings.root)
    except ScanError as exc:
        logger.error("configuration_error", error=str(exc))
        print(f"Error: {exc.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if not args.host:
        logger.info("using_default_host", base_url=settings.endpoint.base_url)
    if not args.model:
        logger.info("using_default_model", model=settings.endpoint.model)

    return asyncio.run(run(settings, files))


if __name__ == "__main__":
    sys.exit(main())
