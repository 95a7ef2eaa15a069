import sys

import argparse
import asyncio
import os

from shipyard.config import config
from shipyard.runner import PipelineRunner
from shipyard.runner.utils import allocate_run_number, reserve_run_number
from shipyard.schemas import PipelineParameters, RunResult, RunStatus


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='shipyard')
    commands = parser.add_subparsers(dest='command', required=True)

    run = commands.add_parser('run', help='run the pipeline once')
    run.add_argument('--repository-url', required=True)
    run.add_argument('--branch', required=True)
    run.add_argument('--scanner-project-key', required=True)
    run.add_argument(
        '--skip-tests', action=argparse.BooleanOptionalAction, default=True
    )
    run.add_argument(
        '--run-number',
        type=int,
        default=os.getenv('BUILD_NUMBER') or None,
        help='defaults to $BUILD_NUMBER, then to the next local run number',
    )

    commands.add_parser('server', help='serve the trigger API')
    return parser.parse_args(argv)


def get_run_number(args: argparse.Namespace) -> int:
    if args.run_number is not None:
        return reserve_run_number(config.data_dir, args.run_number)
    return allocate_run_number(config.data_dir)


async def run_pipeline(args: argparse.Namespace) -> RunResult:
    parameters = PipelineParameters(
        repository_url=args.repository_url,
        branch=args.branch,
        scanner_project_key=args.scanner_project_key,
        skip_tests=args.skip_tests,
    )
    runner = PipelineRunner(parameters, get_run_number(args))
    try:
        return await runner.run()
    finally:
        await runner.downstream.drain(timeout=30)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.command == 'server':
        import uvicorn

        from shipyard.web import app

        uvicorn.run(app, host=config.host, port=config.port)
        return 0

    result = asyncio.run(run_pipeline(args))
    print(result.model_dump_json(by_alias=True, indent=2))
    return 0 if result.status == RunStatus.succeeded else 1


if __name__ == '__main__':
    sys.exit(main())
