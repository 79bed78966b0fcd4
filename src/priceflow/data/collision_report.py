"""
Collision Report - Diagnostic export of scope collisions and broken templates.

Reads the template snapshot, runs collision detection and template
validation, and writes a CSV of collisions plus a JSON build-style report.
"""
import json
import logging
from datetime import datetime
from typing import Optional

import pandas as pd

from ..catalog.snapshot import load_snapshot
from ..config.settings import Settings, get_settings
from ..engine.collision_detector import detect_collisions
from ..engine.models import CollisionGroup
from ..services.template_service import TemplateService

logger = logging.getLogger(__name__)

COLLISION_COLUMNS = ['Scope Key', 'Scope Type', 'Scope Value', 'Template ID', 'Template Name', 'Priority']


def collisions_to_frame(groups: list[CollisionGroup]) -> pd.DataFrame:
    """One row per (collision group, member template)."""
    rows = [
        {
            'Scope Key': group.key,
            'Scope Type': group.scope_type.value,
            'Scope Value': group.scope_value,
            'Template ID': template.id,
            'Template Name': template.name,
            'Priority': template.priority,
        }
        for group in groups
        for template in group.templates
    ]
    return pd.DataFrame(rows, columns=COLLISION_COLUMNS)


def build_collision_report(settings: Optional[Settings] = None) -> dict:
    """
    Build the collision report from the template snapshot.

    Returns the report dictionary; also written to reports_dir.
    """
    settings = settings or get_settings()

    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "snapshot": str(settings.templates_snapshot),
        "metrics": {},
        "invalid_templates": {},
        "warnings": [],
        "errors": [],
    }

    templates, load_errors = load_snapshot(settings.templates_snapshot)
    report["warnings"].extend(load_errors)

    if not templates and load_errors:
        report["errors"].append("No templates could be loaded")
        report["status"] = "failed"
        return report

    active = [t for t in templates if t.is_active]
    groups = detect_collisions(active)
    frame = collisions_to_frame(groups)

    audit = TemplateService(templates).audit()
    report["invalid_templates"] = {
        template_id: result.errors for template_id, result in audit.items() if not result.valid
    }

    report["metrics"] = {
        "templates": len(templates),
        "active_templates": len(active),
        "collision_groups": len(groups),
        "templates_in_collisions": int(frame['Template ID'].nunique()) if not frame.empty else 0,
        "invalid_templates": len(report["invalid_templates"]),
    }

    settings.reports_dir.mkdir(parents=True, exist_ok=True)
    csv_path = settings.reports_dir / 'collisions.csv'
    frame.to_csv(csv_path, index=False)
    report["output_file"] = str(csv_path)
    report["status"] = "success"

    report_path = settings.reports_dir / 'collision_report.json'
    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2)

    logger.info(
        "Collision report: %d groups across %d active templates, saved to %s",
        len(groups), len(active), report_path,
    )
    return report
