"""Render completed summaries into a standalone report.

Only COMPLETED documents appear, newest first, preceded by the global summary
when one exists.  No Markdown is converted here: the Markdown report is the
summaries concatenated, and the HTML report embeds the raw Markdown and lets
marked + KaTeX render it in the browser.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from jinja2 import BaseLoader, Environment, select_autoescape

from pdfdigest.models import Completed, TrackedDocument

logger = logging.getLogger(__name__)

_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<link rel="stylesheet" href="https://cdn.jsdelivr.net/npm/katex@0.16.11/dist/katex.min.css">
<script src="https://cdn.jsdelivr.net/npm/marked@12/marked.min.js"></script>
<script defer src="https://cdn.jsdelivr.net/npm/katex@0.16.11/dist/katex.min.js"></script>
<script defer src="https://cdn.jsdelivr.net/npm/katex@0.16.11/dist/contrib/auto-render.min.js"></script>
<style>
body { font-family: system-ui, sans-serif; max-width: 56rem; margin: 2rem auto; padding: 0 1rem; color: #1f2937; }
section { border: 1px solid #e5e7eb; border-radius: 0.75rem; padding: 1.5rem; margin-bottom: 1.5rem; }
section.global { border-color: #6366f1; background: #eef2ff; }
.meta { color: #6b7280; font-size: 0.875rem; }
</style>
</head>
<body>
<h1>{{ title }}</h1>
<p class="meta">Generated {{ generated_at }} &middot; {{ entries|length }} document(s)</p>
{% if global_summary %}
<section class="global">
<h2>Global Summary</h2>
<div class="markdown">{{ global_summary }}</div>
</section>
{% endif %}
{% for entry in entries %}
<section>
<h2>{{ entry.name }}</h2>
<p class="meta">{{ entry.size }}</p>
<div class="markdown">{{ entry.summary }}</div>
</section>
{% endfor %}
<script>
document.addEventListener("DOMContentLoaded", function () {
  document.querySelectorAll(".markdown").forEach(function (el) {
    el.innerHTML = marked.parse(el.textContent);
  });
  renderMathInElement(document.body, {
    delimiters: [
      {left: "$$", right: "$$", display: true},
      {left: "$", right: "$", display: false}
    ]
  });
});
</script>
</body>
</html>
"""

_ENV = Environment(
    loader=BaseLoader(),
    autoescape=select_autoescape(default_for_string=True),
    trim_blocks=True,
    lstrip_blocks=True,
)

DEFAULT_TITLE = "PDF Digest Report"


def format_size(byte_size: int | None) -> str:
    """Human-readable file size (``"400.0 KB"``); empty when unknown."""
    if byte_size is None:
        return ""
    size = float(byte_size)
    for unit in ("B", "KB", "MB"):
        if size < 1024 or unit == "MB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return ""


def _report_entries(documents: Iterable[TrackedDocument]) -> list[dict]:
    return [
        {
            "name": d.display_name,
            "size": format_size(d.byte_size),
            "summary": d.state.summary,
        }
        for d in documents
        if isinstance(d.state, Completed)
    ]


def render_markdown_report(
    documents: Iterable[TrackedDocument],
    global_summary: str | None = None,
    title: str = DEFAULT_TITLE,
) -> str:
    """Concatenate the global summary and completed summaries as Markdown."""
    parts = [f"# {title}"]
    if global_summary:
        parts.append(f"## Global Summary\n\n{global_summary.strip()}")
    for entry in _report_entries(documents):
        parts.append(f"---\n\n# {entry['name']}\n\n{entry['summary'].strip()}")
    return "\n\n".join(parts) + "\n"


def render_html_report(
    documents: Iterable[TrackedDocument],
    global_summary: str | None = None,
    title: str = DEFAULT_TITLE,
) -> str:
    """Render a self-contained HTML page (scripts loaded from a CDN)."""
    template = _ENV.from_string(_HTML_TEMPLATE)
    return template.render(
        title=title,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
        global_summary=global_summary,
        entries=_report_entries(documents),
    )


def export_report(
    path: Path,
    documents: Iterable[TrackedDocument],
    global_summary: str | None = None,
) -> Path:
    """Write a report to ``path``: Markdown for ``.md``, HTML otherwise."""
    documents = list(documents)
    if path.suffix.lower() in {".md", ".markdown"}:
        content = render_markdown_report(documents, global_summary)
    else:
        content = render_html_report(documents, global_summary)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info(
        "Report written: %s (%d document(s)%s)",
        path,
        sum(1 for d in documents if isinstance(d.state, Completed)),
        ", with global summary" if global_summary else "",
    )
    return path
