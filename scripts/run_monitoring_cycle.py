#!/usr/bin/env python3
"""
Cron script to run one monitoring pass without the long-running server.

Usage:
    python scripts/run_monitoring_cycle.py            # performance + security
    python scripts/run_monitoring_cycle.py --security-only

Add to crontab to run automatically:
    # Run every 5 minutes
    */5 * * * * cd /path/to/apiwatch && python scripts/run_monitoring_cycle.py
"""

import argparse
import asyncio
import sys
import logging
from pathlib import Path

# Add src to path so we can import apiwatch
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from apiwatch.logging_config import configure_logging
from apiwatch.services.monitoring_engine import MonitoringEngine

logger = logging.getLogger(__name__)


async def main(security_only: bool = False) -> int:
    engine = MonitoringEngine()
    try:
        if not security_only:
            results = await engine.run_performance_cycle()
            failed = [r for r in results if not r.success]
            logger.info("Probed %d endpoints, %d unhealthy", len(results), len(failed))

        report = await engine.run_security_cycle()
        logger.info(
            "Scanned %d endpoints, %d security alerts, %d failed checks",
            report.endpoints_scanned, len(report.alerts), report.failed_checks,
        )
        if report.failed_checks:
            return 1  # Non-zero exit code for monitoring
    except Exception:
        logger.exception("Fatal error during monitoring pass")
        return 1
    finally:
        await engine.aclose()

    return 0


if __name__ == "__main__":
    load_dotenv()
    configure_logging()

    parser = argparse.ArgumentParser(description="Run one monitoring pass")
    parser.add_argument("--security-only", action="store_true")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(security_only=args.security_only)))
