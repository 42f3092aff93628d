"""
Host Document Templates
=======================

Jinja2 templates for the page that hosts the plotly.js runtime and for the
in-browser export scripts. In offline mode the JavaScript bundles are read
from the asset directory and embedded into the page; in online mode the page
references them from their CDNs.
"""

from typing import Dict, List, Optional, Union
from pathlib import Path
import tempfile

import jinja2

from plotly_static.config.logging import get_logger
from plotly_static.config.settings import get_settings
from plotly_static.core.errors import RenderError

logger = get_logger(__name__)

CONTAINER_ID = "plotly-html-element"
IMAGE_ELEMENT_ID = "plotly-img-element"

# tex-mml-chtml conflicts with tex-svg when rendering LaTeX titles
OFFLINE_BUNDLES = ("plotly.min.js", "tex-svg.js", "html2pdf.bundle.min.js")
CDN_SCRIPTS = (
    "https://cdn.plot.ly/plotly-3.0.1.min.js",
    "https://cdn.jsdelivr.net/npm/mathjax@3.2.2/es5/tex-svg.js",
    "https://cdnjs.cloudflare.com/ajax/libs/html2pdf.js/0.10.1/html2pdf.bundle.min.js",
)


class TemplateRenderer:
    """Renders the host document and export scripts."""

    def __init__(self, assets_path: Optional[Union[str, Path]] = None) -> None:
        self.settings = get_settings()
        self.assets_path = Path(
            assets_path or self.settings.assets_path or Path(__file__).parent / "assets"
        )
        self.logger = logger.bind(component="templates")
        self._documents: Dict[bool, str] = {}
        self._setup_jinja2_environment()

    def _setup_jinja2_environment(self) -> None:
        """Setup Jinja2 template environment."""
        template_dir = Path(__file__).parent / "templates"
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
        )

    def host_document(self, offline: bool) -> str:
        """Host page for the plotly.js runtime, cached per mode."""
        if offline not in self._documents:
            if offline:
                sources: List[str] = []
                inline = [self._read_bundle(name) for name in OFFLINE_BUNDLES]
            else:
                sources = list(CDN_SCRIPTS)
                inline = []
            self._documents[offline] = self.env.get_template("host.html").render(
                container_id=CONTAINER_ID,
                image_element_id=IMAGE_ELEMENT_ID,
                script_sources=sources,
                inline_scripts=inline,
            )
            self.logger.debug(
                "Host document rendered",
                offline=offline,
                length=len(self._documents[offline]),
            )
        return self._documents[offline]

    def _read_bundle(self, name: str) -> str:
        path = self.assets_path / name
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise RenderError(
                f"Offline JavaScript bundle '{name}' could not be read from {self.assets_path}: {e}"
            ) from e

    def image_export_script(self) -> str:
        return self.env.get_template("image_export.js").render(container_id=CONTAINER_ID)

    def pdf_export_script(self, timeout_ms: int, foreign_object_rendering: bool) -> str:
        return self.env.get_template("pdf_export.js").render(
            container_id=CONTAINER_ID,
            image_element_id=IMAGE_ELEMENT_ID,
            timeout_ms=int(timeout_ms),
            foreign_object_rendering=foreign_object_rendering,
        )


def write_host_file(html: str) -> Path:
    """Save the host document to a uniquely named temporary file."""
    with tempfile.NamedTemporaryFile(
        mode="w", prefix="plotly_", suffix=".html", encoding="utf-8", delete=False
    ) as handle:
        handle.write(html)
    path = Path(handle.name)
    logger.debug("Host document written", path=str(path))
    return path
