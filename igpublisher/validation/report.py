"""HTML rendering of the aggregate validation report."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from igpublisher.templating import render_template
from igpublisher.validation.models import ValidationReport

logger = logging.getLogger(__name__)


def render_report(report: ValidationReport, stylesheet: str = "publish/fhir.css") -> str:
    return render_template(
        "validation.html.j2",
        report=report,
        stylesheet=stylesheet,
        generated=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
    )
