"""
Collision report for the template snapshot.

Lists active templates that claim the same scope, and templates that
would fail save-time validation. Writes collisions.csv and
collision_report.json to the reports directory.
"""
import logging
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from priceflow.config.settings import get_settings
from priceflow.data.collision_report import build_collision_report


def main():
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    print("=" * 60)
    print("TEMPLATE COLLISION REPORT")
    print("=" * 60)
    print(f"Snapshot: {settings.templates_snapshot}")

    report = build_collision_report(settings)

    if report["status"] != "success":
        print("\nFAILED:")
        for error in report["errors"] + report["warnings"]:
            print(f"  - {error}")
        return 1

    metrics = report["metrics"]
    print(f"\nTemplates:        {metrics['templates']} ({metrics['active_templates']} active)")
    print(f"Collision groups: {metrics['collision_groups']}")
    print(f"Invalid:          {metrics['invalid_templates']}")

    for template_id, errors in report["invalid_templates"].items():
        print(f"\n  {template_id}:")
        for error in errors:
            print(f"    - {error}")

    if report["warnings"]:
        print("\nSkipped snapshot entries:")
        for warning in report["warnings"]:
            print(f"  - {warning}")

    print(f"\nCollisions written to {report['output_file']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
