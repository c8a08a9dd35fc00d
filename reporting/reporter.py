"""
Analytics Reporting
===================

Console summaries and file exports for composed analytics. Reporting is a
collaborator of the engine: it only reads result records.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable

from irec_analytics.frames import buckets_to_frame, events_to_frame
from irec_analytics.models import (
    AggregateBucket,
    AnalyticsResult,
    DashboardDataset,
    ItemizedEvent,
    PortfolioAnalytics,
    to_payload,
)

logger = logging.getLogger(__name__)


class AnalyticsReporter:
    """Generate summary statistics and exports"""

    @staticmethod
    def print_summary(result: AnalyticsResult):
        """Print the headline figures of one project's analytics"""

        supply = result.supply
        retirements = result.retirements
        metrics = result.metrics

        print("\n" + "="*70)
        print(f"PROJECT ANALYTICS: {result.project_id}")
        print("="*70)
        print(f"Generated at: {result.generated_at.isoformat()}")

        print("\n" + "-"*70)
        print("SUPPLY")
        print("-"*70)
        print(f"  Total:      {supply.total_supply:>20,}")
        print(f"  Available:  {supply.available_supply:>20,}")
        print(f"  Retired:    {supply.retired_supply:>20,}")
        print(f"  Locked:     {supply.locked_supply:>20,}")
        print(f"  Utilization: {supply.utilization_rate:6.2f}%")

        print("\n" + "-"*70)
        print("RETIREMENTS")
        print("-"*70)
        print(f"  Count: {retirements.total_count}")
        print(f"  Amount: {retirements.total_amount:,} (${retirements.total_value:,.2f})")
        print(f"  Average retirement: {retirements.average_retirement:,}")
        print(f"  30-day growth: {retirements.growth_rate:+.1f}%")

        print("\nPayment Method Distribution:")
        if retirements.by_payment_method is not None:
            for name, stats in retirements.by_payment_method.methods.items():
                print(f"  {name:12s}: {stats.count:4d} ({stats.percentage:5.1f}%)")

        print("\nTop Participants:")
        for bucket in retirements.top_participants:
            label = bucket.label or bucket.key
            print(f"  {label:40s}: {bucket.amount:>12,} ({bucket.percentage:5.1f}%)")

        print("\n" + "-"*70)
        print("SCORES")
        print("-"*70)
        print(f"  Liquidity:       {metrics.liquidity_score:6.1f}")
        print(f"  Activity:        {metrics.activity_score:6.1f}")
        print(f"  Price stability: {metrics.price_stability:6.1f}")
        print(f"  Risk:            {metrics.risk_score:6.1f}")
        print(f"  Market cap:      ${metrics.market_cap:,.2f}")

        validation = result.validation
        print(f"\nValidation: {'✓' if validation.is_valid else '✗'} "
              f"({len(validation.errors)} errors, {len(validation.warnings)} warnings)")

    @staticmethod
    def print_portfolio(portfolio: PortfolioAnalytics, dashboard: DashboardDataset = None):
        """Print portfolio-wide breakdowns"""
        overview = portfolio.overview

        print("\n" + "="*70)
        print("PORTFOLIO SUMMARY")
        print("="*70)
        print(f"Projects: {overview.total_projects} ({overview.active_markets} with available supply)")
        print(f"Total supply: {overview.total_supply:,}")
        print(f"Total retired: {overview.total_retired:,}")
        print(f"Total value: ${overview.total_value:,.2f} (avg price ${overview.average_price:,.2f})")

        for title, buckets in (("Country", portfolio.by_country), ("Technology", portfolio.by_technology)):
            print(f"\n{title} Distribution:")
            for key, bucket in buckets.items():
                print(f"  {key:20s}: {bucket.count:4d} projects ({bucket.percentage:5.1f}% of supply)")

        if dashboard is not None:
            real_time = dashboard.real_time
            print("\n" + "-"*70)
            print("REAL-TIME")
            print("-"*70)
            print(f"  Retirements last hour: {real_time.active_retirements}")
            print(f"  Success rate: {real_time.success_rate:.1f}%")
            print(f"  Price volatility: {real_time.price_volatility:.2f}%")
            print(f"  Dominant payment method: {dashboard.payment_methods.dominant_method}")

    @staticmethod
    def export_events(events: Iterable[ItemizedEvent], output_dir: str, basename: str = "events") -> Dict[str, str]:
        """Export events to CSV and JSON; returns the written paths"""
        events = list(events)
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)

        csv_path = out / f"{basename}.csv"
        json_path = out / f"{basename}.json"

        events_to_frame(events).to_csv(csv_path, index=False)
        with open(json_path, "w") as f:
            json.dump(to_payload(events), f, indent=2)

        logger.info(f"✓ Exported {len(events)} events to {csv_path} and {json_path}")
        return {"csv": str(csv_path), "json": str(json_path)}

    @staticmethod
    def export_result(result, output_path: str) -> str:
        """Write any result record as JSON"""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(to_payload(result), f, indent=2)
        logger.info(f"✓ Exported {type(result).__name__} to {path}")
        return str(path)

    @staticmethod
    def export_buckets(buckets: Dict[str, AggregateBucket], output_path: str) -> str:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        buckets_to_frame(buckets.values()).to_csv(path, index=False)
        return str(path)
