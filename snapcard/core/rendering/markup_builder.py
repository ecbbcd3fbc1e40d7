"""
Markup Builder
==============

Turn a render request into a self-contained HTML document.

Three modes:
- built-in cards (``text``, ``image``) with escaped field substitution
- on-disk templates from the configured template directory
- raw markup supplied by the caller, passed through unchanged
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2
from jinja2.sandbox import SandboxedEnvironment
from markupsafe import Markup

from snapcard.config.logging import get_logger
from snapcard.config.settings import Settings, get_settings
from snapcard.core.errors import TemplateInvalid, TemplateNotFound, ValidationError
from snapcard.models.schemas import BuiltMarkup, ContentFields, OutputOptions, RenderRequest

logger = get_logger(__name__)

BUILTIN_TEMPLATES = ("text", "image")

# Built-in cards whose layout depends on a remote resource
NETWORK_TEMPLATES = frozenset({"image"})

TEMPLATE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

_REMOTE_REFERENCE = re.compile(
    r"""(?:\b(?:src|href|srcset|poster)\s*=\s*["']?\s*|url\(\s*["']?\s*|@import\s+["']\s*)"""
    r"""(?:https?:)?//""",
    re.IGNORECASE,
)

_CSS_URL_ESCAPES = {
    "'": "%27",
    '"': "%22",
    "(": "%28",
    ")": "%29",
    "\\": "%5C",
    "<": "%3C",
    ">": "%3E",
    " ": "%20",
    "\t": "%09",
    "\n": "%0A",
    "\r": "%0D",
    "\f": "%0C",
}


def css_url(value: Optional[str]) -> Markup:
    """Percent-encode characters that could break out of a CSS ``url('...')``."""
    if not value:
        return Markup("")
    return Markup("".join(_CSS_URL_ESCAPES.get(ch, ch) for ch in str(value)))


def references_remote_resources(markup: str) -> bool:
    """Whether the markup pulls anything over the network."""
    return bool(_REMOTE_REFERENCE.search(markup))


def check_markup_size(markup: str, max_bytes: int) -> int:
    """
    Enforce the markup size ceiling.

    Returns:
        Size of the markup in UTF-8 bytes

    Raises:
        ValidationError: If the markup is larger than ``max_bytes``
    """
    size = len(markup.encode("utf-8"))
    if size > max_bytes:
        raise ValidationError(
            f"Markup is {size} bytes, exceeding the {max_bytes} byte limit",
            details={"size_bytes": size, "max_bytes": max_bytes},
        )
    return size


class MarkupBuilder:
    """Builds markup documents for render requests."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.logger: Any = logger.bind(component="markup_builder")  # structlog.BoundLoggerBase
        self._setup_jinja2_environments()

    def _setup_jinja2_environments(self) -> None:
        """Setup template environments for built-in cards and on-disk templates."""
        builtin_dir = Path(__file__).parent / "templates"
        self.builtin_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(builtin_dir)),
            autoescape=True,
            undefined=jinja2.StrictUndefined,
            auto_reload=False,
        )
        self.builtin_env.filters["css_url"] = css_url

        # Caller-controlled names and content go through the sandbox
        self.file_env = SandboxedEnvironment(
            loader=jinja2.FileSystemLoader(str(self.settings.template_dir)),
            autoescape=jinja2.select_autoescape(["html", "htm", "xml"]),
            undefined=jinja2.StrictUndefined,
            auto_reload=False,
        )

    def build(self, request: RenderRequest) -> BuiltMarkup:
        """
        Build markup for a validated render request.

        Args:
            request: Render request with either template + content or a raw override

        Returns:
            BuiltMarkup with the document and its load-wait classification

        Raises:
            ValidationError: If the resolved markup exceeds the size ceiling
            TemplateNotFound: If the template id does not resolve
            TemplateInvalid: If substitution fails
        """
        if request.raw_markup_override is not None:
            return self.build_from_override(request.raw_markup_override)

        return self.build_from_template(
            request.template_id or "",
            request.content or ContentFields(),
            request.output_options,
        )

    def build_from_override(self, markup: str) -> BuiltMarkup:
        """Pass caller markup through after the size check."""
        size = check_markup_size(markup, self.settings.max_markup_bytes)
        self.logger.debug("Using raw markup override", markup_bytes=size)
        return BuiltMarkup(markup=markup, requires_network=True, template_id=None)

    def build_from_template(
        self, template_id: str, content: ContentFields, options: OutputOptions
    ) -> BuiltMarkup:
        """Render a built-in card or an on-disk template."""
        options = options.with_defaults(self.settings)
        if template_id in BUILTIN_TEMPLATES:
            markup = self._render_builtin(template_id, content, options)
            requires_network = template_id in NETWORK_TEMPLATES
        else:
            markup = self._render_file_template(template_id, content, options)
            requires_network = references_remote_resources(markup)

        size = check_markup_size(markup, self.settings.max_markup_bytes)
        self.logger.info(
            "Markup built",
            template=template_id,
            markup_bytes=size,
            requires_network=requires_network,
        )
        return BuiltMarkup(
            markup=markup, requires_network=requires_network, template_id=template_id
        )

    def _render_builtin(
        self, template_id: str, content: ContentFields, options: OutputOptions
    ) -> str:
        if template_id == "image" and not content.background_image_url:
            raise TemplateInvalid(
                "The image template requires background_image_url",
                details={"template_id": template_id},
            )

        default_tag = (
            self.settings.default_image_tag
            if template_id == "image"
            else self.settings.default_text_tag
        )
        context = {
            "headline": content.headline,
            "summary": content.summary,
            "tag": content.tag or default_tag,
            "date": content.date or self._render_date(),
            "background_image_url": content.background_image_url or "",
            "width": options.width,
            "height": options.height,
        }

        try:
            template = self.builtin_env.get_template(f"{template_id}.html")
            return template.render(**context)
        except jinja2.TemplateError as e:
            raise TemplateInvalid(
                f"Built-in template '{template_id}' failed to render: {e}",
                details={"template_id": template_id},
            )

    def _render_file_template(
        self, template_id: str, content: ContentFields, options: OutputOptions
    ) -> str:
        if not TEMPLATE_ID_PATTERN.match(template_id):
            raise TemplateNotFound(
                f"Template '{template_id}' not found", details={"template_id": template_id}
            )

        context: Dict[str, Any] = content.model_dump()
        if not context.get("date"):
            context["date"] = self._render_date()
        context.setdefault("width", options.width)
        context.setdefault("height", options.height)

        try:
            template = self.file_env.get_template(f"{template_id}.html")
        except jinja2.TemplateNotFound:
            raise TemplateNotFound(
                f"Template '{template_id}' not found", details={"template_id": template_id}
            )
        except (jinja2.TemplateError, UnicodeDecodeError, OSError) as e:
            raise TemplateInvalid(
                f"Template '{template_id}' is invalid: {e}", details={"template_id": template_id}
            )

        try:
            return template.render(**context)
        except (jinja2.TemplateError, UnicodeDecodeError, OSError) as e:
            raise TemplateInvalid(
                f"Template '{template_id}' substitution failed: {e}",
                details={"template_id": template_id},
            )

    def _render_date(self) -> str:
        return datetime.now().strftime(self.settings.date_format)


def build_markup(request: RenderRequest, settings: Optional[Settings] = None) -> BuiltMarkup:
    """
    Build markup for a render request.

    Args:
        request: Render request
        settings: Optional settings override

    Returns:
        BuiltMarkup for the render pipeline
    """
    return MarkupBuilder(settings).build(request)
