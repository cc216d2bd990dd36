"""
Resume HTML rendering and HTML -> PDF conversion.
"""
import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List

from resumeai.core.errors import CollaboratorError
from resumeai.schemas.generation import GeneratedResumeContent

logger = logging.getLogger(__name__)


@dataclass
class PdfOptions:
    page_size: str = "Letter"
    margin: str = "1in"

    def page_css(self) -> str:
        return f"@page {{ size: {self.page_size}; margin: {self.margin}; }}"


RESUME_CSS = """
body { font-family: Helvetica, Arial, sans-serif; font-size: 10.5pt; color: #222; line-height: 1.35; }
h1 { font-size: 20pt; margin: 0 0 4px 0; }
h2 { font-size: 12pt; border-bottom: 1px solid #999; margin: 16px 0 6px 0; text-transform: uppercase; }
.contact { color: #555; font-size: 9.5pt; }
.entry { margin-bottom: 8px; }
.entry-head { display: flex; justify-content: space-between; font-weight: bold; }
.dates { font-weight: normal; color: #555; }
.skills span { display: inline-block; margin: 0 6px 4px 0; padding: 1px 6px; border: 1px solid #ccc; border-radius: 3px; }
.skills span.match { border-color: #2a6; }
"""


def _e(value: Any) -> str:
    return html.escape(str(value or ""))


def _dates(row: Dict[str, Any]) -> str:
    start, end = row.get("start_date") or "", row.get("end_date") or ""
    if not start and not end:
        return ""
    return f"{_e(start)} – {_e(end) or 'Present'}"


def _entries(rows: List[Dict[str, Any]], title_key: str, subtitle_key: str) -> str:
    parts = []
    for row in rows:
        title = _e(row.get(title_key))
        subtitle = _e(row.get(subtitle_key))
        heading = f"{title}, {subtitle}" if title and subtitle else title or subtitle
        parts.append(
            '<div class="entry">'
            f'<div class="entry-head"><span>{heading}</span><span class="dates">{_dates(row)}</span></div>'
            f"<div>{_e(row.get('description'))}</div>"
            "</div>"
        )
    return "".join(parts)


def _section(title: str, body: str) -> str:
    if not body:
        return ""
    return f"<h2>{_e(title)}</h2>{body}"


def render_resume_html(profile_record: Dict[str, Any], content: GeneratedResumeContent) -> str:
    """
    Build the resume document. Every interpolated value is HTML-escaped.

    Enhanced sections from the generator win over the raw profile sections
    when present.
    """
    contact = " | ".join(
        _e(profile_record.get(key))
        for key in ("email", "mobile", "location", "linkedin_url", "portfolio_url")
        if profile_record.get(key)
    )

    experience = content.enhanced_experiences or profile_record.get("experience", [])
    education = content.enhanced_education or profile_record.get("education", [])
    projects = content.enhanced_projects or profile_record.get("projects", [])
    achievements = profile_record.get("achievements", [])

    highlighted = {s.lower() for s in content.highlighted_skills}
    skills = "".join(
        f'<span class="match">{_e(s)}</span>' if s.lower() in highlighted else f"<span>{_e(s)}</span>"
        for s in profile_record.get("skills", [])
    )

    body = "".join([
        f"<h1>{_e(profile_record.get('name'))}</h1>",
        f'<div class="contact">{contact}</div>',
        _section("Summary", f"<p>{_e(content.professional_summary)}</p>" if content.professional_summary else ""),
        _section("Experience", _entries(experience, "position", "company")),
        _section("Education", _entries(education, "degree", "institution")),
        _section("Skills", f'<div class="skills">{skills}</div>' if skills else ""),
        _section("Projects", _entries(projects, "name", "url")),
        _section("Achievements", _entries(achievements, "title", "date")),
    ])

    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{_e(profile_record.get('name')) or 'Resume'}</title>"
        f"<style>{RESUME_CSS}</style></head>"
        f"<body>{body}</body></html>"
    )


class PdfRenderer(ABC):
    """Converts HTML to PDF bytes."""

    @abstractmethod
    def render(self, html_content: str, options: PdfOptions) -> bytes:
        """
        Raises:
            CollaboratorError: Rendering failed
        """
        pass


class WeasyPrintRenderer(PdfRenderer):
    """Renders HTML and CSS into a PDF using WeasyPrint."""

    def render(self, html_content: str, options: PdfOptions) -> bytes:
        # Imported lazily: WeasyPrint needs native libraries at import time
        try:
            from weasyprint import HTML, CSS
        except OSError as e:
            logger.error(f"WeasyPrint unavailable: {e}")
            raise CollaboratorError("PDF renderer is not available") from e

        try:
            pdf = HTML(string=html_content, base_url=".").write_pdf(
                stylesheets=[CSS(string=options.page_css())]
            )
        except Exception as e:
            logger.error(f"Error during PDF generation: {type(e).__name__}: {e}", exc_info=True)
            raise CollaboratorError("Failed to render PDF") from e

        logger.info(f"PDF rendered: {len(pdf)} bytes, page_size={options.page_size}")
        return pdf


def get_pdf_renderer() -> PdfRenderer:
    return WeasyPrintRenderer()
