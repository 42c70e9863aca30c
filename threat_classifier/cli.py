"""
Command-line interface for the threat classification service.

Usage:
    python -m threat_classifier scenarios
    python -m threat_classifier demo firearm-correct
    python -m threat_classifier classify path/to/image.jpg [--xray]
    python -m threat_classifier serve [--host HOST] [--port PORT]
"""

import argparse
import base64
import json
import sys
from pathlib import Path
from typing import List, Optional

from fastapi import HTTPException

from threat_classifier.config import get_settings
from threat_classifier.models.classification import AnalysisContext, ClassificationResult
from threat_classifier.services.analysis_mapping import build_classification
from threat_classifier.services.demo_scenarios import (
    ScenarioNotFoundError,
    list_scenarios,
    run_scenario,
)
from threat_classifier.services.gemini_client import get_gemini_client
from threat_classifier.services.image_validator import decode_image
from threat_classifier.services.rule_engine import detect_modality
from threat_classifier.services.threat_analyzer import (
    AIGatewayError,
    EmptyAnalysisError,
    analyze_image,
)


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="threat-classifier",
        description="Threat Classification CLI - run demo scenarios or classify local images"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("scenarios", help="List demo scenarios")

    demo_parser = subparsers.add_parser("demo", help="Run a demo scenario through the rule engine")
    demo_parser.add_argument("scenario_id", help="Scenario id (see 'scenarios')")
    demo_parser.add_argument(
        "--location",
        "-l",
        type=str,
        default=None,
        help="Location reported in the risk assessment (default: from env)"
    )

    classify_parser = subparsers.add_parser(
        "classify",
        help="Classify a local image with the hosted model (needs GEMINI_API_KEY)"
    )
    classify_parser.add_argument("image", type=str, help="Path to a JPEG/PNG/WebP image")
    classify_parser.add_argument(
        "--xray",
        "-x",
        action="store_true",
        help="Treat the image as an X-ray scan"
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", "-p", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser


def _print_result(result: ClassificationResult) -> None:
    print(json.dumps(result.model_dump(by_alias=True), indent=2))


def scenarios_command(args: argparse.Namespace) -> int:
    """Print one line per demo scenario."""
    for scenario in list_scenarios():
        print(f"{scenario.id:<18} {scenario.expected_class:<22} {scenario.name}")
    return 0


def demo_command(args: argparse.Namespace) -> int:
    """Run one demo scenario and print the classification as JSON."""
    context = AnalysisContext(location=args.location) if args.location else None
    try:
        result = run_scenario(args.scenario_id, context)
    except ScenarioNotFoundError as e:
        print(f"Error: {e}")
        return 1

    _print_result(result)
    return 0


def classify_command(args: argparse.Namespace) -> int:
    """
    Classify a local image file through the live path.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    path = Path(args.image)
    if not path.is_file():
        print(f"Error: File not found: {path}")
        return 1

    try:
        client = get_gemini_client()
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("\nMake sure you have a .env file with:")
        print("  GEMINI_API_KEY=your_api_key")
        return 1

    try:
        image_bytes, mime_type, _ = decode_image(base64.b64encode(path.read_bytes()).decode("ascii"))
    except HTTPException as e:
        print(f"Error: {e.detail}")
        return 1

    try:
        analysis = analyze_image(
            client, image_bytes, mime_type, args.xray, get_settings().model_name
        )
    except (AIGatewayError, EmptyAnalysisError) as e:
        print(f"Analysis failed: {e}")
        return 1

    _print_result(build_classification(analysis, detect_modality(args.xray)))
    return 0


def serve_command(args: argparse.Namespace) -> int:
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "threat_classifier.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


COMMANDS = {
    "scenarios": scenarios_command,
    "demo": demo_command,
    "classify": classify_command,
    "serve": serve_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
