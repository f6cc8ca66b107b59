#!/usr/bin/env python3
"""
Naproxen / Physa Exposure Trial - Application Runner.

Entry point for running the complete analysis and checking the configuration.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))


def build_settings(args: argparse.Namespace):
    """Apply command-line overrides on top of the environment settings."""
    from config.settings import get_settings

    settings = get_settings()

    data_update = {}
    if args.data_dir:
        data_update["data_dir"] = args.data_dir

    output_update = {}
    if args.output_dir:
        output_update["output_dir"] = args.output_dir
    if args.format:
        output_update["formats"] = args.format
    if args.interactive:
        output_update["interactive"] = True

    analysis_update = {}
    if args.simulations is not None:
        analysis_update["n_simulations"] = args.simulations
    if args.seed is not None:
        analysis_update["random_seed"] = args.seed

    return settings.model_copy(update={
        "data": settings.data.model_copy(update=data_update),
        "output": settings.output.model_copy(update=output_update),
        "analysis": settings.analysis.model_copy(update=analysis_update),
    })


def run_analysis(args: argparse.Namespace) -> int:
    """Run the full pipeline and print the report."""
    import matplotlib
    matplotlib.use("Agg")

    from naproxen_physa.analysis.pipeline import ExperimentPipeline
    from naproxen_physa.analysis.reporting import generate_pipeline_report

    settings = build_settings(args)

    try:
        result = ExperimentPipeline(settings).run()
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: could not load data: {e}")
        return 1

    print(generate_pipeline_report(result))
    return 0 if result.succeeded else 2


def check_env():
    """Check environment configuration and report status."""
    from importlib.metadata import version, PackageNotFoundError
    from config.settings import get_settings

    print("=" * 60)
    print("NAPROXEN / PHYSA ANALYSIS - ENVIRONMENT CHECK")
    print("=" * 60)

    settings = get_settings()

    print("\n[Input data]")
    for label, path in (
        ("Measurements", settings.data.measurements_path),
        ("Feeding", settings.data.feeding_path),
    ):
        status = "FOUND" if path.exists() else "MISSING"
        print(f"  {label}: {path} ({status})")
    print(f"  Exposure start: {settings.data.start_date}")
    print(f"  Snails: {settings.data.n_snails}")

    print("\n[Analysis]")
    print(f"  alpha: {settings.analysis.alpha}")
    print(f"  Simulations: {settings.analysis.n_simulations} (seed {settings.analysis.random_seed})")
    print(f"  P-value adjustment: {settings.analysis.p_adjust_method}")

    print("\n[Output]")
    print(f"  Directory: {settings.output.output_dir}")
    print(f"  Formats: {', '.join(settings.output.formats)}")

    print("\n[Libraries]")
    for package in ("numpy", "scipy", "pandas", "statsmodels", "patsy",
                    "lifelines", "matplotlib", "plotly", "pydantic-settings"):
        try:
            print(f"  {package}: {version(package)}")
        except PackageNotFoundError:
            print(f"  {package}: NOT INSTALLED")

    print("\n[Usage]")
    print("  1. Place the CSV files in the data directory (or set DATA_DATA_DIR in .env)")
    print("  2. Run: python3 run.py analyze")
    print("  3. Figures are written to the output directory")
    print("\n" + "=" * 60)


def main():
    parser = argparse.ArgumentParser(
        description="Naproxen sodium exposure trial on Physa snails",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 run.py check-env                              # Check configuration
  python3 run.py analyze                                # Run with .env settings
  python3 run.py analyze --data-dir data --output-dir figures
  python3 run.py analyze --format eps --format pdf --interactive
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Check environment
    subparsers.add_parser("check-env", help="Check environment configuration")

    # Analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Run the complete analysis")
    analyze_parser.add_argument("--data-dir", help="Directory containing the CSV files")
    analyze_parser.add_argument("--output-dir", help="Directory for figures")
    analyze_parser.add_argument(
        "--format", action="append",
        help="Figure format (repeatable, default: eps)"
    )
    analyze_parser.add_argument(
        "--interactive", action="store_true", help="Also write a Plotly HTML summary"
    )
    analyze_parser.add_argument("--simulations", type=int, help="Simulations for residual diagnostics")
    analyze_parser.add_argument("--seed", type=int, help="Random seed")

    args = parser.parse_args()

    if args.command == "check-env":
        check_env()
    elif args.command == "analyze":
        sys.exit(run_analysis(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
