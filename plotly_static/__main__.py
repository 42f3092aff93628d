"""
Command-line entry point
========================

Export a Plotly figure stored as JSON to a static image::

    python -m plotly_static figure.json -o out/figure -f svg --width 1000 --height 700
"""

from typing import List, Optional
from pathlib import Path
import argparse
import json
import sys

from plotly_static.core.errors import ExportError
from plotly_static.core.webdriver.browsers import BrowserProfileFactory
from plotly_static.exporter import StaticExporterBuilder
from plotly_static.models.schemas import ImageFormat


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plotly_static", description="Export a Plotly figure to a static image"
    )
    parser.add_argument("figure", help="Figure JSON file ('-' for stdin)")
    parser.add_argument("-o", "--output", required=True, help="Output path; the extension is set from the format")
    parser.add_argument(
        "-f",
        "--format",
        default="png",
        choices=[f.value for f in ImageFormat],
        help="Image format (default: png)",
    )
    parser.add_argument("--width", type=int, default=800, help="Width in pixels (default: 800)")
    parser.add_argument("--height", type=int, default=600, help="Height in pixels (default: 600)")
    parser.add_argument("--scale", type=float, default=1.0, help="Scale factor (default: 1.0)")
    parser.add_argument("--port", type=int, help="WebDriver port")
    parser.add_argument("--url", help="WebDriver base URL")
    parser.add_argument("--browser", choices=BrowserProfileFactory.available(), help="Browser profile")
    parser.add_argument("--offline", action="store_true", help="Embed the JavaScript bundles")
    parser.add_argument("--no-spawn", action="store_true", help="Only connect to a running driver")
    parser.add_argument("--pdf-timeout", type=int, help="PDF settle timeout in milliseconds")
    parser.add_argument("--strict-mime", action="store_true", help="Fail on MIME type mismatches")
    return parser


def load_figure(source: str) -> object:
    if source == "-":
        return json.load(sys.stdin)
    with open(source, "r", encoding="utf-8") as f:
        return json.load(f)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for static export."""
    args = build_parser().parse_args(argv)

    try:
        figure = load_figure(args.figure)
    except (OSError, ValueError) as e:
        print(f"Could not read figure from {args.figure}: {e}", file=sys.stderr)
        return 1

    builder = StaticExporterBuilder()
    if args.port is not None:
        builder.webdriver_port(args.port)
    if args.url:
        builder.webdriver_url(args.url)
    if args.browser:
        builder.browser(args.browser)
    if args.offline:
        builder.offline_mode(True)
    if args.no_spawn:
        builder.spawn_webdriver(False)
    if args.pdf_timeout is not None:
        builder.pdf_export_timeout(args.pdf_timeout)
    if args.strict_mime:
        builder.strict_mime(True)

    try:
        with builder.build() as exporter:
            path = exporter.write_fig(
                Path(args.output), figure, args.format, args.width, args.height, args.scale
            )
    except ExportError as e:
        print(f"Export failed ({e.stage.value}): {e}", file=sys.stderr)
        return 1

    print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
