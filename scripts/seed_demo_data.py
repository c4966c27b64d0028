#!/usr/bin/env python3
"""
Seed a small synthetic account universe for local runs.

Creates:
  1. Four customers with three months of telemetry each
  2. Closed-won opportunities (expansion and new business) so lift stats have data
  3. A couple of pre-existing external events

Usage:
    python scripts/seed_demo_data.py             # replace ingest tables with demo data
    python scripts/seed_demo_data.py --month 2025-05-01

Requires: DATABASE_URL set (or defaults to sqlite:///local.db). Ingest replaces
customers, opportunities, events and telemetry wholesale.
"""
import sys
import os
import argparse
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from expansion_engine import import_models
from expansion_engine.database import Base, engine
from expansion_engine.logging_config import configure_logging
from expansion_engine.services.dates import month_start, shift_months
from expansion_engine.services.ingest import store_ingest


# ── Fake accounts ────────────────────────────────────────────────────────────

ACCOUNTS = [
    {'domain': 'northwind.example',  'account_id': 'ACC-001', 'account_name': 'Northwind Traders', 'arr': 180000, 'seats': 500, 'active': [420, 470, 505], 'adoption': 0.86},
    {'domain': 'globex.example',     'account_id': 'ACC-002', 'account_name': 'Globex',            'arr': 95000,  'seats': 300, 'active': [260, 190, 110], 'adoption': 0.41},
    {'domain': 'initech.example',    'account_id': 'ACC-003', 'account_name': 'Initech',           'arr': 42000,  'seats': 120, 'active': [60, 75, 90],    'adoption': 0.63},
    {'domain': 'umbrella.example',   'account_id': 'ACC-004', 'account_name': 'Umbrella Corp',     'arr': 260000, 'seats': 900, 'active': [880, 860, 870], 'adoption': 0.78},
]


def build_rows(evaluation_month):
    months = [shift_months(evaluation_month, offset) for offset in (-2, -1, 0)]

    customers, telemetry = [], []
    for account in ACCOUNTS:
        customers.append({
            'domain': account['domain'],
            'account_id': account['account_id'],
            'account_name': account['account_name'],
            'website': f"https://www.{account['domain']}",
            'arr': account['arr'],
            'renewal_date': shift_months(evaluation_month, 5).isoformat(),
            'segment': 'Enterprise' if account['arr'] >= 100000 else 'Mid-Market',
            'status': 'active',
            'licensed_seats': account['seats'],
        })
        for month, active in zip(months, account['active']):
            telemetry.append({
                'domain': account['domain'],
                'month': month.isoformat(),
                'active_users_30d': active,
                'licensed_seats': account['seats'],
                'feature_adoption_score': account['adoption'],
            })

    close = shift_months(evaluation_month, -1)
    opportunities = [
        {'account_id': 'ACC-001', 'opportunity_id': 'OPP-1', 'type': 'Expansion', 'stage': 'Closed Won', 'close_date': close.isoformat(), 'amount': 40000},
        {'account_id': 'ACC-004', 'opportunity_id': 'OPP-2', 'type': 'Expansion', 'stage': 'Closed Won', 'close_date': close.isoformat(), 'amount': 65000},
        {'account_id': 'ACC-002', 'opportunity_id': 'OPP-3', 'type': 'Renewal',   'stage': 'Closed Won', 'close_date': close.isoformat(), 'amount': 95000},
        {'account_id': 'ACC-003', 'opportunity_id': 'OPP-4', 'type': 'Renewal',   'stage': 'Closed Lost', 'close_date': close.isoformat(), 'amount': 42000},
    ]

    events = [
        {'domain': 'globex.example', 'event_type': 'LAYOFF', 'event_ts': f'{shift_months(evaluation_month, -1).isoformat()}T00:00:00Z',
         'source': 'news.example', 'source_url': 'https://news.example/globex-cuts', 'confidence': 0.9,
         'payload_json': {'summary': 'Globex cuts 8% of staff in restructuring'}},
        {'domain': 'northwind.example', 'event_type': 'EXEC_HIRE_LD', 'event_ts': f'{evaluation_month.isoformat()}T00:00:00Z',
         'source': 'news.example', 'source_url': 'https://news.example/northwind-clo', 'confidence': 0.8,
         'payload_json': {'summary': 'Northwind names new Chief Learning Officer'}},
    ]
    return customers, opportunities, events, telemetry


def main():
    parser = argparse.ArgumentParser(description='Seed demo accounts for local runs')
    parser.add_argument('--month', help='Evaluation month (YYYY-MM-DD); defaults to last month')
    args = parser.parse_args()

    configure_logging()
    import_models()
    # Ensure tables exist (for SQLite local dev)
    Base.metadata.create_all(engine)

    if args.month:
        evaluation_month = month_start(date.fromisoformat(args.month))
    else:
        evaluation_month = shift_months(month_start(date.today()), -1)

    customers, opportunities, events, telemetry = build_rows(evaluation_month)
    counts = store_ingest(customers=customers, opportunities=opportunities, events=events, telemetry=telemetry)
    print(f'Seeded {counts} for evaluation month {evaluation_month.isoformat()}')


if __name__ == '__main__':
    main()
