"""Command-line entry point.

Usage:
    site-deploy deploy        # build, upload, invalidate, verify
    site-deploy build
    site-deploy upload        # upload the existing build directory
    site-deploy invalidate    # purge everything
    site-deploy verify

All settings come from environment variables (see shared/config.py).
Exit codes: 0 success, 1 deployment failure, 2 configuration error.
"""

import argparse
import signal
import sys
from typing import List, Optional

from shared.config import Config
from shared.errors import ConfigurationError
from shared.logger import StructuredLogger
from site_deploy.orchestrator import DeploymentOrchestrator

STAGES = ["deploy", "build", "upload", "invalidate", "verify"]

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site-deploy",
        description="Deploy the static site to S3 and invalidate CloudFront. Configured through environment variables.",
    )
    parser.add_argument("stage", choices=STAGES, help="Stage to run; 'deploy' runs all of them in order")
    return parser


def _install_signal_handlers(orchestrator: DeploymentOrchestrator) -> None:
    def _cancel(signum, frame):
        orchestrator.cancel()

    signal.signal(signal.SIGINT, _cancel)
    signal.signal(signal.SIGTERM, _cancel)


def main(argv: Optional[List[str]] = None, config: Optional[Config] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config or Config.from_env()
        StructuredLogger.configure(config.LOG_LEVEL)
        config.validate(args.stage)
    except ConfigurationError as e:
        StructuredLogger.error("Invalid configuration", exception=e, stage=args.stage)
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    orchestrator = DeploymentOrchestrator(config)
    _install_signal_handlers(orchestrator)

    report = orchestrator.run_stage(args.stage)

    print(report.render())
    if config.REPORT_PATH:
        path = report.write_json(config.REPORT_PATH)
        StructuredLogger.info("Report written", path=str(path))

    return EXIT_OK if orchestrator.succeeded else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
