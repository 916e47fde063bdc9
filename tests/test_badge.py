"""Tests for the SVG badge renderer and the version extractor."""

import re
from unittest.mock import MagicMock

from badge_deploy import badge
from badge_deploy.badge import BadgeStyle, extract_version, render_badge
from badge_deploy.constants import LEFT_PADDING, RIGHT_PADDING


def test_render_badge_contains_labels_and_title() -> None:
    svg = render_badge("production", "1.4.2")

    assert svg.startswith('<svg xmlns="http://www.w3.org/2000/svg"')
    assert "<title>production - 1.4.2</title>" in svg
    # Shadow and foreground copies of each label.
    assert svg.count(">production</tspan>") == 2
    assert svg.count(">1.4.2</tspan>") == 2
    assert 'height="20"' in svg


def test_render_badge_uses_fixed_palette() -> None:
    svg = render_badge("dev", "0.1.0")

    for color in ("#444D56", "#24292E", "#959DA5", "#6A737D", "#010101", "#FFFFFF"):
        assert color in svg
    assert "font-size=\"11\"" in svg


def test_render_badge_geometry_uses_measured_widths(mocker: MagicMock) -> None:
    """Verifies the padding rules: left = text + 28, right = text + 12, total + 4."""
    mocker.patch(
        "badge_deploy.badge.measure_text_width",
        side_effect=lambda text, size: 10.0 * len(text),
    )

    svg = render_badge("qa", "2.0")  # 20 + 28 = 48, 30 + 12 = 42

    assert 'width="94"' in svg  # 48 + 42 + 4
    assert 'transform="translate(48)"' in svg
    assert "L48,0 L48,20" in svg
    assert 'd="M0 0h42C43.103 0 45 1.343 45 3v14' in svg


def test_segment_widths_apply_padding(mocker: MagicMock) -> None:
    mocker.patch("badge_deploy.badge.measure_text_width", return_value=0.0)

    assert badge.segment_widths("", "") == (LEFT_PADDING, RIGHT_PADDING)


def test_render_badge_escapes_markup() -> None:
    svg = render_badge("a<b&c", "1.0")

    assert "a&lt;b&amp;c" in svg
    assert "a<b&c" not in svg


def test_render_badge_custom_style_font_size() -> None:
    svg = render_badge("dev", "1.0", BadgeStyle(font_size=13))

    assert 'font-size="13"' in svg


def test_measure_text_width_empty_is_zero() -> None:
    assert badge.measure_text_width("") == 0.0


def test_measure_text_width_is_positive_and_font_dependent() -> None:
    narrow = badge.measure_text_width("iii")
    wide = badge.measure_text_width("WWW")

    assert narrow > 0
    assert wide > narrow


def test_extract_version_round_trip() -> None:
    assert extract_version(render_badge("production", "3.10.7")) == "3.10.7"


def test_extract_version_takes_last_numeric_tspan() -> None:
    svg = (
        '<tspan x="14">2.0</tspan>'
        '<tspan x="6" y="15"> 1.2.3 </tspan>'
        '<tspan x="6" y="14">1.2.4</tspan>'
    )
    assert extract_version(svg) == "1.2.4"


def test_extract_version_ignores_non_numeric_labels() -> None:
    svg = '<tspan x="6">v1.2.3</tspan><tspan x="14">staging</tspan>'
    assert extract_version(svg) is None


def test_extract_version_empty_document() -> None:
    assert extract_version("") is None
    assert extract_version("<svg/>") is None


def test_numeric_environment_does_not_shadow_version() -> None:
    """The foreground version tspan comes last, so it wins over a numeric label."""
    svg = render_badge("2024.1", "5.0.1")
    assert re.findall(r">([\d.]+)</tspan>", svg)[0] == "2024.1"
    assert extract_version(svg) == "5.0.1"
