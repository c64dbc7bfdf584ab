#!/usr/bin/env python3
"""
Suicidality analysis pipeline runner.

Runs one stage or the whole analysis over the raw exports. Stage outputs
already present in the output directory are reused unless --force is given.

Usage:
  python scripts/run_pipeline.py --stage all --raw-dir data/raw --output-dir data/processed
  python scripts/run_pipeline.py --stage evaluate --force
"""
import argparse
import logging

from suicidality_ml.config import DATA_CONFIG
from suicidality_ml.pipeline import STAGES, AnalysisPipeline


def main():
    ap = argparse.ArgumentParser(description="Suicidal ideation prediction analysis")
    ap.add_argument('--stage', choices=STAGES + ['all'], default='all',
                    help='Stage to run (default: all)')
    ap.add_argument('--raw-dir', default=str(DATA_CONFIG['raw_data_dir']),
                    help='Directory with the raw questionnaire and interview exports')
    ap.add_argument('--output-dir', default=str(DATA_CONFIG['output_dir']),
                    help='Directory for intermediate and output files')
    ap.add_argument('--force', action='store_true', help='Recompute outputs that already exist')
    ap.add_argument('--no-boruta', action='store_true', help='Skip the Boruta-selected variant')
    ap.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    pipeline = AnalysisPipeline(
        raw_dir=args.raw_dir,
        output_dir=args.output_dir,
        use_boruta=False if args.no_boruta else None,
    )
    stages = None if args.stage == 'all' else [args.stage]
    pipeline.run(stages=stages, force=args.force)


if __name__ == '__main__':
    main()
