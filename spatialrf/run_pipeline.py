#!/usr/bin/env python3
"""
spatialrf Pipeline Runner
=========================
Main entry point for fitting a spatial model from a YAML configuration.

Usage:
    # Run with default config (config/pipeline.yaml)
    python -m spatialrf.run_pipeline

    # Run with custom config
    python -m spatialrf.run_pipeline --config path/to/config.yaml

    # Override the method of the config
    python -m spatialrf.run_pipeline --method mem.effect.optimized

    # Show current config
    python -m spatialrf.run_pipeline --show-config

Available methods:
    mem.moran.sequential, mem.effect.sequential, mem.effect.optimized,
    hengl, hengl.moran.sequential, hengl.effect.sequential,
    hengl.effect.optimized, pca.moran.sequential, pca.effect.sequential,
    pca.effect.optimized
"""

import argparse
import sys
from datetime import datetime
from typing import Optional

from .config import METHODS, load_config
from .console import Tee, print_header
from .engine import run_spatial_model


def run_pipeline(
    config_path: Optional[str] = None,
    method: Optional[str] = None
):
    """
    Run the spatialrf pipeline.

    Args:
        config_path: Path to config file. If None, uses default.
        method: Method overriding the one in the config.

    Returns:
        SpatialModelResult
    """
    config = load_config(config_path)
    if method is not None:
        config = config.with_method(method)

    config.paths.ensure_dirs()
    timestamp_format = config.logging.get("timestamp_format", "%Y%m%d_%H%M%S")
    log_file = config.paths.results / (
        f"spatialrf_{config.method.name}_{datetime.now().strftime(timestamp_format)}.log"
    )

    original_stdout = sys.stdout
    with open(log_file, 'w', encoding='utf-8') as f:
        sys.stdout = Tee(original_stdout, f)
        try:
            print_header("spatialrf - spatial predictor selection")
            print(f"Execution started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
            print(config.summary())

            result = run_spatial_model(config)

            print_header("Pipeline completed successfully")
            print(f"Status: {result.status}")
            print(f"Selected spatial predictors: {len(result.spatial_predictors)}")
            print("\nPerformance comparison:")
            print(result.performance_comparison.round(4).to_string(index=False))
            if not result.variable_importance.empty:
                print("\nVariable importance:")
                print(result.variable_importance.round(4).to_string(index=False))
            print(f"\nExecution finished: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
            print(f"Results: {config.paths.results}")
        except Exception as e:
            print(f"\n✗ ERROR: {e}")
            import traceback
            traceback.print_exc(file=sys.stdout)
            raise
        finally:
            sys.stdout = original_stdout
            print(f"\n✓ Log saved to: {log_file}")

    return result


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="spatialrf Pipeline Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config
  python -m spatialrf.run_pipeline

  # Run with custom config
  python -m spatialrf.run_pipeline --config config/pipeline.yaml

  # Try another method
  python -m spatialrf.run_pipeline --method pca.effect.sequential

  # Show current config
  python -m spatialrf.run_pipeline --show-config
"""
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to configuration YAML file'
    )

    parser.add_argument(
        '--method', '-m',
        choices=METHODS,
        help='Method to use instead of the configured one'
    )

    parser.add_argument(
        '--show-config',
        action='store_true',
        help='Show current configuration and exit'
    )

    parser.add_argument(
        '--list-methods',
        action='store_true',
        help='List available methods and exit'
    )

    args = parser.parse_args()

    # Handle info flags
    if args.list_methods:
        print("Available methods:")
        for i, method in enumerate(METHODS, 1):
            print(f"  {i}. {method}")
        sys.exit(0)

    if args.show_config:
        config = load_config(args.config)
        if args.method is not None:
            config = config.with_method(args.method)
        print(config.summary())
        sys.exit(0)

    try:
        run_pipeline(config_path=args.config, method=args.method)
    except Exception:
        sys.exit(1)


if __name__ == "__main__":
    main()
