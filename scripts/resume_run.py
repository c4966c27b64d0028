#!/usr/bin/env python3
"""
Resume an interrupted run in the foreground.

Scores only the accounts that do not yet have an evaluation for the run,
printing progress after each account and the run log when done.

Usage:
    python scripts/resume_run.py <run_id>
    python scripts/resume_run.py <run_id> --log-tail 50

Requires: DATABASE_URL and OPENAI_API_KEY set.
"""
import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from expansion_engine import import_models
from expansion_engine.errors import EngineError
from expansion_engine.logging_config import configure_logging
from expansion_engine.pipeline.manager import resume_run
from expansion_engine.services.log_formatter import humanize_log_entry
from expansion_engine.services.run_log import get_run_log_entries


def _print_progress(progress):
    print(f"[{progress['processed_count']}/{progress['total_accounts']}] "
          f"{progress.get('substep_label') or progress['current_step']}")


def main():
    parser = argparse.ArgumentParser(description='Resume an interrupted run')
    parser.add_argument('run_id')
    parser.add_argument('--log-tail', type=int, default=20, help='Run log entries to print at the end')
    args = parser.parse_args()

    configure_logging()
    import_models()

    try:
        progress = resume_run(args.run_id, on_progress=_print_progress)
    except EngineError as e:
        print(f'Error: {e}')
        sys.exit(1)
    finally:
        entries, _ = get_run_log_entries(args.run_id, tail=args.log_tail)
        for entry in entries:
            print(f"{entry['ts']} {humanize_log_entry(entry)}")

    print(f"\nRun {args.run_id}: {progress['status']} "
          f"({progress['processed_count']}/{progress['total_accounts']} accounts)")


if __name__ == '__main__':
    main()
