"""
Command-line entry point.

Usage:
    python -m intention_stats analyze SNAPSHOT.json [options]

Options:
    --config PATH           YAML analysis configuration
    --out PATH              Write the JSON report here (default: stdout)
    --plots DIR             Also render PNG figures into DIR
    --completion MODE       all | completers | nonCompleters
    --condition LABEL       Keep sessions with this condition
    --session-type TYPE     Keep sessions of this type (human, ai_agent, baseline)
    --data-source SOURCE    Keep sessions from this data source
    --session-ordinal ORD   all | first | repeat
    --session-weighted      One session (the earliest) per participant
    --verbose               Debug logging
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .analysis.report import build_report
from .core.config import COMPLETION_MODES, SESSION_ORDINALS, load_config
from .core.exceptions import IntentionStatsError
from .core.snapshot import load_sessions, write_report

logger = logging.getLogger('intention_stats')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='intention-stats',
        description='Statistical analysis of intention experiment snapshots'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    analyze = subparsers.add_parser('analyze', help='Analyze a session snapshot')
    analyze.add_argument('snapshot', help='JSON export of sessions')
    analyze.add_argument(
        '--config', type=str, default=None,
        help='YAML analysis configuration'
    )
    analyze.add_argument(
        '--out', type=str, default=None,
        help='Write the JSON report to this path (default: stdout)'
    )
    analyze.add_argument(
        '--plots', type=str, default=None,
        help='Directory for PNG figures'
    )
    analyze.add_argument(
        '--completion', choices=COMPLETION_MODES, default=None,
        help='Completion filter (default: all)'
    )
    analyze.add_argument('--condition', type=str, default=None,
                         help='Condition label filter')
    analyze.add_argument('--session-type', type=str, default=None,
                         help='Session type filter')
    analyze.add_argument('--data-source', type=str, default=None,
                         help='Data source filter')
    analyze.add_argument(
        '--session-ordinal', choices=SESSION_ORDINALS, default=None,
        help='Keep first sessions, repeat sessions or all (default: all)'
    )
    analyze.add_argument(
        '--session-weighted', action='store_true',
        help='Keep one session per participant'
    )
    analyze.add_argument(
        '--verbose', action='store_true',
        help='Enable debug logging'
    )
    return parser.parse_args(argv)


def filter_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Filter settings given on the command line; unset flags are left out."""
    filters: Dict[str, Any] = {}
    if args.completion is not None:
        filters['completion'] = args.completion
    if args.condition is not None:
        filters['condition'] = args.condition
    if args.session_type is not None:
        filters['session_type'] = args.session_type
    if args.data_source is not None:
        filters['data_source'] = args.data_source
    if args.session_ordinal is not None:
        filters['session_ordinal'] = args.session_ordinal
    if args.session_weighted:
        filters['session_weighted'] = True
    return {'filters': filters} if filters else {}


def run_analyze(args: argparse.Namespace) -> int:
    config = load_config(args.config, filter_overrides(args))
    sessions, coverage = load_sessions(args.snapshot)
    report = build_report(sessions, config, coverage)
    data = report.to_dict()

    if args.out:
        write_report(data, args.out)
        logger.info("Report written to %s", args.out)
    else:
        sys.stdout.write(json.dumps(data, indent=2, allow_nan=False))
        sys.stdout.write('\n')

    if args.plots:
        from .visualization.plots import save_report_plots
        paths = save_report_plots(report, args.plots)
        logger.info("%d figure(s) written to %s", len(paths), args.plots)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        return run_analyze(args)
    except IntentionStatsError as e:
        logger.error("%s", e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
