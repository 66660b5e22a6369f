"""OutputWriter: puts serializations, fragments, and the report on disk."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from igpublisher.config.models import OutputConfig
from igpublisher.errors import PublishError
from igpublisher.templating import default_stylesheet, render_template

logger = logging.getLogger(__name__)


def sanitize_name(name: str) -> str:
    """Make an output name safe for use as a filename.

    Replaces `/` with `--`, strips `..` segments, and removes characters
    that are problematic on common filesystems.
    """
    safe = name.replace("/", "--").replace("\\", "--")
    safe = safe.replace("..", "")
    safe = re.sub(r"[^\w\-\.@]", "", safe)
    safe = re.sub(r"-{3,}", "--", safe)
    if not safe or safe.strip(".") == "":
        safe = "_unnamed"
    return safe


class OutputWriter:
    """Owns the output layout.

    ``<base>/publish`` holds serializations and the stylesheet,
    ``<base>/fragments`` bare fragments, ``<base>/pages`` page-wrapped
    fragments, and the validation report sits at ``<base>`` itself.
    """

    def __init__(self, config: OutputConfig, base_dir: str | Path | None = None) -> None:
        self.config = config
        self.base_dir = Path(base_dir if base_dir is not None else config.base_dir)
        self.publish_dir = self.base_dir / config.publish_dir
        self.fragments_dir = self.base_dir / config.fragments_dir
        self.pages_dir = self.base_dir / config.pages_dir

    @property
    def page_stylesheet(self) -> str:
        """Stylesheet href as seen from a page in ``pages/``."""
        return f"../{self.config.publish_dir}/{self.config.stylesheet}"

    @property
    def report_stylesheet(self) -> str:
        return f"{self.config.publish_dir}/{self.config.stylesheet}"

    @property
    def report_path(self) -> Path:
        return self.base_dir / self.config.report_name

    def prepare(self) -> None:
        if self.base_dir.exists() and not self.base_dir.is_dir():
            raise PublishError(f"Output location {self.base_dir} exists and is not a directory")
        for directory in (self.publish_dir, self.fragments_dir, self.pages_dir):
            directory.mkdir(parents=True, exist_ok=True)
        css = self.publish_dir / self.config.stylesheet
        css.write_bytes(default_stylesheet())
        logger.debug("prepared output directory %s", self.base_dir)

    def write_serialized(self, resource_type: str, output_id: str, fmt: str, content: str) -> Path:
        dest = self.publish_dir / f"{sanitize_name(f'{resource_type}-{output_id}')}.{fmt}"
        dest.write_text(content, encoding="utf-8")
        logger.debug("wrote %s (%d bytes)", dest, len(content))
        return dest

    def write_fragment(self, name: str, content: str) -> tuple[Path, Path]:
        """Write ``content`` as a bare fragment and as a page titled ``name``."""
        safe = sanitize_name(name)
        fragment = self.fragments_dir / f"{safe}.xhtml"
        fragment.write_text(content, encoding="utf-8")
        page = self.pages_dir / f"{safe}.html"
        page.write_text(
            render_template("page.html.j2", title=name, stylesheet=self.page_stylesheet, content=content),
            encoding="utf-8",
        )
        logger.debug("wrote fragment %s", safe)
        return fragment, page

    def write_report(self, html: str) -> Path:
        self.report_path.write_text(html, encoding="utf-8")
        logger.info("wrote validation report %s", self.report_path)
        return self.report_path
