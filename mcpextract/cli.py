"""CLI entrypoint for mcp-extract."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .analyzers.tools import AnalysisError, ToolAnalyzer
from .config import ConfigError, build_settings, load_config
from .logging import configure_logging
from .renderers import available_formats, get_renderer

DEFAULT_FORMAT = "json"


def _build_parser(formats: Sequence[str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-extract",
        description="Extracts Model Context Protocol (MCP) tool metadata from .NET assemblies.",
    )
    parser.add_argument(
        "assembly_path",
        help="Path to the .NET assembly (.dll) to analyze.",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Path for the output file. If not specified, outputs to console.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=list(formats),
        default=None,
        help=f"Output format (default: {DEFAULT_FORMAT}, or the 'format' key of .mcpextract.yml).",
    )
    parser.add_argument(
        "--dotnet-root",
        type=Path,
        help="Root of the .NET installation used to locate reference assemblies.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Configuration file (defaults to .mcpextract.yml in the current directory).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Increase log verbosity for troubleshooting.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for mcp-extract."""
    formats = available_formats()
    parser = _build_parser(formats)
    args = parser.parse_args(argv)

    try:
        if args.config is not None:
            config = load_config(args.config, required=True)
        else:
            config = load_config(Path.cwd())
    except ConfigError as exc:
        parser.exit(1, f"Error: {exc}\n")

    settings = build_settings(config, dotnet_root=args.dotnet_root)
    configure_logging(verbose=bool(args.verbose) or settings.debug, log_file=config.log_file)

    output_format = args.format or config.format or DEFAULT_FORMAT
    if output_format not in formats:
        parser.exit(1, f"Error: Unknown output format '{output_format}'. Choose from: {', '.join(formats)}\n")

    assembly_path = Path(args.assembly_path)
    if not assembly_path.is_file():
        parser.exit(1, f"Error: Assembly file not found: {assembly_path.resolve()}\n")

    analyzer = ToolAnalyzer(settings)
    try:
        result = analyzer.analyze_assembly(assembly_path)
    except FileNotFoundError as exc:
        parser.exit(1, f"Error: {exc}\n")
    except AnalysisError as exc:
        parser.exit(1, f"Error: {exc}\nRun with --verbose for more details.\n")

    output = get_renderer(output_format).render(result, assembly_path.name)

    if args.output is not None:
        args.output.write_text(output + "\n", encoding="utf-8")
        print(f"Analysis complete. Output written to: {args.output.resolve()}")
        print(f"Found {len(result.tools)} MCP tools.")
    else:
        print(output)


if __name__ == "__main__":
    main(sys.argv[1:])
