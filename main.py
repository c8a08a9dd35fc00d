"""
IREC Portfolio Analytics CLI
============================

Loads project records from a JSON file, composes analytics for every project
and the portfolio, prints summaries and exports events / results.

Usage:
    python main.py --projects data/sample_projects.json --output-dir ./output
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List

from irec_analytics.config import Settings
from irec_analytics.errors import ConfigurationError
from irec_analytics.models import EventKind, ProjectRecord
from irec_analytics.service import AnalyticsService
from reporting.reporter import AnalyticsReporter

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
DEFAULT_PROJECTS = Path(__file__).parent / "data" / "sample_projects.json"

logger = logging.getLogger(__name__)


def load_projects(path: str) -> List[ProjectRecord]:
    """Read explorer-shaped project records (a list, or {"projects": [...]})"""
    with open(path) as f:
        payload = json.load(f)
    if isinstance(payload, dict):
        payload = payload.get("projects", [])
    return [ProjectRecord.from_payload(item) for item in payload]


def main():
    parser = argparse.ArgumentParser(description="IREC portfolio analytics")
    parser.add_argument("--projects", "-p", default=str(DEFAULT_PROJECTS), help="Projects JSON file")
    parser.add_argument("--output-dir", "-o", default="./output", help="Directory for exports")
    parser.add_argument("--project", help="Only report on this project id")
    parser.add_argument("--no-export", action="store_true", help="Print summaries only")
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error(f"Invalid configuration: {e}")
        raise SystemExit(2)

    logging.basicConfig(level=settings.logging_level, format=LOG_FORMAT)

    projects = load_projects(args.projects)
    if args.project:
        projects = [p for p in projects if p.id == args.project]
    if not projects:
        logger.error(f"No projects to analyze in {args.projects}")
        raise SystemExit(1)
    logger.info(f"Loaded {len(projects)} projects from {args.projects}")

    service = AnalyticsService.from_settings(settings)
    reporter = AnalyticsReporter()
    try:
        for project in projects:
            result = service.project_analytics(project)
            reporter.print_summary(result)

            if not args.no_export:
                out = Path(args.output_dir) / project.id
                reporter.export_events(service.project_events(project, EventKind.RETIREMENT), out, "retirements")
                reporter.export_events(service.project_events(project, EventKind.TRANSFER), out, "transfers")
                reporter.export_result(result, out / "analytics.json")

        portfolio = service.portfolio_analytics(projects)
        dashboard = service.dashboard_dataset(projects)
        reporter.print_portfolio(portfolio, dashboard)

        if not args.no_export:
            reporter.export_result(portfolio, Path(args.output_dir) / "portfolio.json")
            reporter.export_result(dashboard, Path(args.output_dir) / "dashboard.json")
            reporter.export_buckets(portfolio.by_country, Path(args.output_dir) / "by_country.csv")

        stats = service.cache.stats()
        logger.info(f"Cache: {stats.entries} entries, {stats.hits} hits, {stats.misses} misses")
    finally:
        service.close()


if __name__ == "__main__":
    main()
