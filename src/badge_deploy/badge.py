import functools
import logging
import re
from dataclasses import dataclass, field
from xml.sax.saxutils import escape

from PIL import ImageFont

from .constants import (
    APP_NAME,
    BADGE_HEIGHT,
    COLORS,
    CORNER_ALLOWANCE,
    FONT_FAMILY,
    FONT_FILE,
    FONT_SIZE,
    LEFT_PADDING,
    RIGHT_PADDING,
)

logger = logging.getLogger(APP_NAME)

# Matches every <tspan> whose whole text is a dotted number (e.g. "1.4.2").
VERSION_TSPAN_RE = re.compile(r"<tspan[^>]*>\s*([\d.]+)\s*</tspan>")


@dataclass(frozen=True)
class BadgeStyle:
    """Visual settings for a rendered badge.

    Attributes:
        colors (dict[str, str]): Gradient and text colours keyed like `COLORS`.
        font_family (str): CSS font-family written into the SVG.
        font_size (int): Font size in SVG user units.
    """

    colors: dict[str, str] = field(default_factory=lambda: dict(COLORS))
    font_family: str = FONT_FAMILY
    font_size: int = FONT_SIZE


@functools.lru_cache(maxsize=8)
def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Loads the measuring font, preferring DejaVu Sans over Pillow's bundled face."""
    try:
        return ImageFont.truetype(FONT_FILE, size)
    except OSError:
        logger.debug(f"{FONT_FILE} not found; measuring with Pillow's default font.")
        return ImageFont.load_default(size=size)


def measure_text_width(text: str, font_size: int = FONT_SIZE) -> float:
    """Returns the rendered advance width of `text` in the badge font.

    Args:
        text (str): The label to measure.
        font_size (int, optional): Font size in pixels. Defaults to FONT_SIZE.

    Returns:
        float: The width in pixels (SVG user units).
    """
    if not text:
        return 0.0
    return float(_load_font(font_size).getlength(text))


def _num(value: float) -> str:
    """Formats an SVG coordinate without trailing zeros."""
    return f"{round(value, 3):g}"


def segment_widths(
    environment: str, version: str, style: BadgeStyle | None = None
) -> tuple[float, float]:
    """Computes the (left, right) segment widths for a pair of labels."""
    style = style or BadgeStyle()
    left = measure_text_width(environment, style.font_size) + LEFT_PADDING
    right = measure_text_width(version, style.font_size) + RIGHT_PADDING
    return left, right


def render_badge(
    environment: str, version: str, style: BadgeStyle | None = None
) -> str:
    """Renders the two-segment environment/version badge as an SVG document.

    The left segment carries the environment name on a dark gradient, the
    right segment carries the version on a light gradient. Each label is
    drawn twice: a translucent shadow one unit lower, then the foreground.

    Args:
        environment (str): Label for the left segment (e.g. 'production').
        version (str): Label for the right segment (e.g. '1.4.2').
        style (BadgeStyle | None, optional): Colours and font. Defaults to BadgeStyle().

    Returns:
        str: The SVG markup.
    """
    style = style or BadgeStyle()
    c = style.colors
    left, right = segment_widths(environment, version, style)
    total = left + right + CORNER_ALLOWANCE

    env_text = escape(environment)
    ver_text = escape(version)
    font = escape(style.font_family, {"'": "&apos;"})
    lw, rw = _num(left), _num(right)

    return f"""<svg xmlns="http://www.w3.org/2000/svg" width="{_num(total)}" height="{BADGE_HEIGHT}">
  <title>{env_text} - {ver_text}</title>
  <defs>
    <linearGradient id="workflow-fill" x1="50%" y1="0%" x2="50%" y2="100%">
      <stop stop-color="{c['workflow_gradient_start']}" offset="0%"/>
      <stop stop-color="{c['workflow_gradient_end']}" offset="100%"/>
    </linearGradient>
    <linearGradient id="state-fill" x1="50%" y1="0%" x2="50%" y2="100%">
      <stop stop-color="{c['state_gradient_start']}" offset="0%"/>
      <stop stop-color="{c['state_gradient_end']}" offset="100%"/>
    </linearGradient>
  </defs>
  <g fill="none" fill-rule="evenodd">
    <g font-family="{font}" font-size="{style.font_size}">
      <path id="workflow-bg" d="M0,3 C0,1.3431 1.3552,0 3,0 L{lw},0 L{lw},20 L3,20 C1.3552,20 0,18.6569 0,17 L0,3 Z" fill="url(#workflow-fill)" fill-rule="nonzero"/>
      <text fill="{c['text_shadow']}" fill-opacity=".3">
        <tspan x="14" y="15" aria-hidden="true">{env_text}</tspan>
      </text>
      <text fill="{c['text']}">
        <tspan x="14" y="14">{env_text}</tspan>
      </text>
    </g>
    <g transform="translate({lw})" font-family="{font}" font-size="{style.font_size}">
      <path id="state-bg" d="M0 0h{rw}C{_num(right + 1.103)} 0 {_num(right + 3)} 1.343 {_num(right + 3)} 3v14c0 1.657-1.39 3-3.103 3H0V0z" fill="url(#state-fill)" fill-rule="nonzero"/>
      <text fill="{c['text_shadow']}" fill-opacity=".3" aria-hidden="true">
        <tspan x="6" y="15">{ver_text}</tspan>
      </text>
      <text fill="{c['text']}">
        <tspan x="6" y="14">{ver_text}</tspan>
      </text>
    </g>
  </g>
</svg>
"""


def extract_version(svg_text: str) -> str | None:
    """Extracts the published version from a previously rendered badge.

    The version is the token of the LAST `<tspan>` whose text is made of
    digits and dots, which is the foreground version label.

    Args:
        svg_text (str): The SVG document.

    Returns:
        str | None: The version string, or None if the document has none.
    """
    if not svg_text:
        return None
    matches = VERSION_TSPAN_RE.findall(svg_text)
    return matches[-1] if matches else None
