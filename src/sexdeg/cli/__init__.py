"""
sexdeg CLI - sex-stratified differential expression for case/control studies.

Commands:
    sexdeg run   - Batch analysis: DEGs per sex, summary, feature selection
    sexdeg app   - Launch the interactive Streamlit app
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for sexdeg."""
    from sexdeg import __version__

    parser = argparse.ArgumentParser(
        prog="sexdeg",
        description="Sex-stratified differential expression and feature selection "
                    "(rheumatoid arthritis vs control)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run   Differential expression per sex, cross-sex summary, feature selection
  app   Interactive Streamlit app

Examples:
  sexdeg run --expression expr.csv --phenotype pheno.csv --output results/
  sexdeg run --config analysis.yaml --degs-only --workflows boruta rfe
  sexdeg app --port 8502
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from sexdeg.cli import app, run
    run.register_parser(subparsers)
    app.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
