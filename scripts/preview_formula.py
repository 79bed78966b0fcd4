"""
Preview a pricing formula from the command line.

Usage:
    python scripts/preview_formula.py "(width_cm * height_cm / 10000) * unit_m2_price" \
        width_cm=200 height_cm=150 unit_m2_price=3000
"""
import argparse
import logging
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from priceflow.config.settings import get_settings
from priceflow.services.pricing_service import preview_formula, validate_formula


def parse_assignments(pairs):
    values = {}
    for pair in pairs:
        name, sep, raw = pair.partition('=')
        if not sep:
            raise argparse.ArgumentTypeError(f"Expected name=value, got '{pair}'")
        values[name.strip()] = float(raw)
    return values


def main():
    parser = argparse.ArgumentParser(description="Validate and evaluate a pricing formula")
    parser.add_argument('formula', help="Formula text")
    parser.add_argument('values', nargs='*', help="Test values as name=value")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        test_values = parse_assignments(args.values)
    except (argparse.ArgumentTypeError, ValueError) as e:
        parser.error(str(e))

    field_keys = [k for k in test_values if k != 'base_price']
    validation = validate_formula(args.formula, field_keys)

    print(f"Formula: {args.formula}")
    print(f"Valid:   {validation.valid}")
    for error in validation.errors:
        print(f"  ERROR:   {error}")
    for warning in validation.warnings:
        print(f"  WARNING: {warning}")

    if not validation.valid:
        return 1

    preview = preview_formula(args.formula, test_values)
    if not preview["success"]:
        print(f"\nEvaluation failed: {preview['error']}")
        return 1

    print(f"\nResult: {preview['result']:.2f}")
    print(f"Variables used: {', '.join(preview['used_variables']) or '(none)'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
