"""
LegacyLens - command-line entry point
Runs one repository scan in-process and prints its progress
"""
import argparse
import asyncio
import json
import sys
import tempfile
from datetime import datetime
from typing import Optional

from .config import settings
from .core.analyzers.factory import ANALYZER_STRATEGIES
from .core.error_handling.exceptions import InvalidRepositoryUrlException
from .core.logging.structured_logger import configure_logging
from .core.pipeline.service import build_scan_service
from .core.progress.broker import ProgressBroker
from .core.records import ScanStatus
from .core.roadmap import generate_roadmap
from .core.scoring import SEVERITY_ORDER


class LegacyLensCLI:
    """Command-line interface for LegacyLens scans"""

    def __init__(self, strategy: Optional[str] = None, offline: bool = False, data_dir: Optional[str] = None):
        overrides = {"record_store_backend": "json", "data_dir": data_dir or tempfile.mkdtemp(prefix="legacylens-")}
        if strategy:
            overrides["analyzer_strategy"] = strategy
        if offline:
            overrides["analyzer_strategy"] = "pattern"

        self.settings = settings.model_copy(update=overrides)
        self.service = build_scan_service(
            self.settings,
            broker=ProgressBroker(self.settings.progress_queue_size),
            offline=offline
        )

    async def run_scan(self, repo_url: str) -> dict:
        print(f"""
╔═══════════════════════════════════════════════════════════════╗
║                 LEGACYLENS - TECH DEBT SCANNER                ║
╚═══════════════════════════════════════════════════════════════╝

[*] Repository: {repo_url}
[*] Strategy: {self.settings.analyzer_strategy}
[*] Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}
        """)

        scan_id = await self.service.submit(repo_url)
        print(f"[*] Scan ID: {scan_id}\n")

        async for event in self.service.stream_progress(scan_id):
            if event["type"] == "log":
                log = event["log"]
                print(f"[{log['phase']:>7}] {log['message']}")

        await self.service.wait_for_idle()
        record = await self.service.get_record(scan_id)
        self._print_summary(record)
        return record

    def _print_summary(self, record: dict):
        stats = record["stats"]
        print(f"\n[*] Status: {record['status'].upper()}")
        if record["status"] != ScanStatus.COMPLETED.value:
            return

        print(f"[*] Findings: {len(record['findings'])}")
        for severity in SEVERITY_ORDER:
            print(f"    {severity:<9} {stats.get(f'{severity}Count', 0)}")
        print(f"[*] Estimated time saved: {stats.get('totalHours', 0)} hours")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="LegacyLens - scan a GitHub repository for technical debt"
    )
    parser.add_argument("repo_url", help="GitHub repository URL (https://github.com/owner/repo)")
    parser.add_argument("-o", "--output", help="Write the scan record as JSON to this file")
    parser.add_argument("--strategy", choices=ANALYZER_STRATEGIES, help="Analyzer strategy")
    parser.add_argument("--offline", action="store_true",
                        help="Pattern analysis and canned explanations only, no AI services")
    parser.add_argument("--roadmap", help="Write the markdown roadmap to this file")
    parser.add_argument("--data-dir", help="Keep scan records in this directory (default: a temp directory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")

    cli = LegacyLensCLI(strategy=args.strategy, offline=args.offline, data_dir=args.data_dir)
    try:
        record = asyncio.run(cli.run_scan(args.repo_url))
    except InvalidRepositoryUrlException as e:
        print(f"[!] {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n[!] Scan interrupted by user")
        return 130

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)
        print(f"[*] Record saved to: {args.output}")

    if args.roadmap and record["status"] == ScanStatus.COMPLETED.value:
        with open(args.roadmap, "w", encoding="utf-8") as f:
            f.write(generate_roadmap(record))
        print(f"[*] Roadmap saved to: {args.roadmap}")

    return 0 if record["status"] == ScanStatus.COMPLETED.value else 1


if __name__ == "__main__":
    sys.exit(main())
