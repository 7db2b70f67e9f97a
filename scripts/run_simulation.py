#!/usr/bin/env python3
"""
Run a city simulation from a YAML configuration file.

Usage:
    python -m scripts.run_simulation --config configs/two_zones.yaml --ticks 50

Options:
    --config PATH       Path to YAML configuration file (required)
    --ticks INT         Number of ticks to run (default: 10)
    --workers INT       Override number of decision workers from config
    --threshold FLOAT   Override commute cost threshold from config
    --output-dir PATH   Directory for results (default: results/simulation)
    --verbose           Enable verbose logging
    --dry-run           Parse config and show settings without running
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from citysim import CityConfig, ConfigurationError, EngineFault, SimulationEngine, load_config
from citysim.config import export_series
from citysim.simulation import CORE_METRICS, Snapshot

logger = logging.getLogger(__name__)


def setup_logging(config: CityConfig, verbose: bool = False) -> None:
    """Setup logging based on configuration."""
    log_config = config.logging
    level = logging.DEBUG if verbose else getattr(logging, log_config.get("level", "INFO"))

    # Create logs directory if needed
    log_file = log_config.get("file")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file) if log_file else logging.NullHandler(),
        ],
    )


def apply_overrides(config: CityConfig, args: argparse.Namespace) -> CityConfig:
    """Apply command-line overrides to the simulation settings."""
    simulation = config.simulation
    if args.workers is not None:
        simulation = replace(simulation, workers=args.workers)
    if args.threshold is not None:
        simulation = replace(simulation, commute_threshold=args.threshold)
    return replace(config, simulation=simulation)


def run_simulation(config: CityConfig, ticks: int, output_dir: Path) -> Snapshot:
    """Run the simulation and save its results."""
    logger.info(f"Starting simulation: {ticks} ticks")
    logger.info(f"  Zones: {len(config.zones)}")
    logger.info(f"  Links: {len(config.links)}")
    logger.info(f"  Workers: {config.simulation.workers}")

    start_time = time.time()
    with SimulationEngine.configure(config) as engine:
        snapshot = engine.run(ticks)
        frame = engine.metrics_frame()
    elapsed = time.time() - start_time

    logger.info(f"Simulation complete in {elapsed:.2f} seconds")
    logger.info(f"  Employment rate: {snapshot.metrics.get('employment_rate', 0):.3f}")

    save_results(snapshot, frame, config, output_dir)
    return snapshot


def save_results(snapshot: Snapshot, frame, config: CityConfig, output_dir: Path) -> None:
    """Save simulation results."""
    output_dir.mkdir(parents=True, exist_ok=True)

    metrics_path = export_series(frame, output_dir / "metrics.csv")
    logger.info(f"Saved metric series to {metrics_path}")

    summary: dict[str, Any] = {
        "tick": snapshot.tick,
        "metrics": {name: snapshot.metrics[name] for name in CORE_METRICS if name in snapshot.metrics},
        "zone_populations": snapshot.zone_populations,
        "zone_workers": snapshot.zone_workers,
    }
    summary_path = output_dir / "summary.json"
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2)
    logger.info(f"Saved summary to {summary_path}")

    # Save config used
    config_path = output_dir / "config_used.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a city simulation from a YAML configuration file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=10,
        help="Number of ticks to run",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Override number of decision workers from config",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Override commute cost threshold from config",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("results/simulation"),
        help="Directory for results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse config and show settings without running",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Load configuration
    try:
        config = apply_overrides(load_config(args.config), args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigurationError as e:
        print(f"Error in config: {e}", file=sys.stderr)
        return 1

    setup_logging(config, args.verbose)

    print(f"Simulation: {args.config}")
    print(f"  Zones: {len(config.zones)}")
    print(f"  Residents: {len(config.residents)} configured"
          + (f", {config.population.total} generated" if config.population else ""))
    print(f"  Ticks: {args.ticks}")
    print(f"  Commute threshold: {config.simulation.commute_threshold}")
    print(f"  Output: {args.output_dir}")
    print()

    if args.dry_run:
        print("Dry run - not executing simulation")
        print("\nFull configuration:")
        print(yaml.dump(config.to_dict(), default_flow_style=False))
        return 0

    try:
        snapshot = run_simulation(config, args.ticks, args.output_dir)

        print("\nResults:")
        print(f"  Tick: {snapshot.tick}")
        print(f"  Employment rate: {snapshot.metrics.get('employment_rate', 0):.3f}")
        print(f"  Avg commute cost: {snapshot.metrics.get('average_commute_cost', 0):.3f}")
        print(f"\nResults saved to: {args.output_dir}")

        return 0

    except ConfigurationError as e:
        print(f"Error in config: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nSimulation interrupted by user.")
        return 130
    except EngineFault as e:
        logger.exception(f"Simulation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
