"""Burned-in caption styling shared by the SRT and ASS render paths."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Tuple

import pysubs2


@dataclass(frozen=True)
class CaptionStyle:
    """
    Short-form caption look: bold, thick outline, no background box.

    ASS alignment uses the numpad layout, 2 is bottom centre.
    """

    font_name: str = "Arial"
    font_size: int = 16
    bold: bool = True
    text_color: str = "#FFFFFF"
    outline_color: str = "#000000"
    background_alpha: int = 255  # fully transparent back colour
    outline: float = 4
    shadow: float = 0
    alignment: int = 2
    margin_v: int = 20
    margin_h: int = 20


DEFAULT_CAPTION_STYLE = CaptionStyle()


def _rgb(hex_color: str) -> Tuple[int, int, int]:
    value = hex_color.lstrip("#")
    if len(value) != 6:
        return 255, 255, 255
    try:
        return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        return 255, 255, 255


def hex_to_ass(hex_color: str, alpha: int = 0) -> str:
    """Convert ``#RRGGBB`` to the ASS ``&HAABBGGRR`` colour notation."""
    r, g, b = _rgb(hex_color)
    return f"&H{alpha:02X}{b:02X}{g:02X}{r:02X}"


def force_style(style: CaptionStyle) -> str:
    """Build the ``force_style`` argument for ffmpeg's subtitles filter."""
    return ",".join(
        [
            f"FontName={style.font_name}",
            f"FontSize={style.font_size}",
            f"Bold={1 if style.bold else 0}",
            f"PrimaryColour={hex_to_ass(style.text_color)}",
            f"OutlineColour={hex_to_ass(style.outline_color)}",
            f"BackColour={hex_to_ass('#000000', style.background_alpha)}",
            "BorderStyle=1",
            f"Outline={style.outline:g}",
            f"Shadow={style.shadow:g}",
            f"Alignment={style.alignment}",
            f"MarginV={style.margin_v}",
            f"MarginL={style.margin_h}",
            f"MarginR={style.margin_h}",
        ]
    )


def to_ssa_style(style: CaptionStyle) -> pysubs2.SSAStyle:
    return pysubs2.SSAStyle(
        fontname=style.font_name,
        fontsize=float(style.font_size),
        primarycolor=pysubs2.Color(*_rgb(style.text_color)),
        outlinecolor=pysubs2.Color(*_rgb(style.outline_color)),
        backcolor=pysubs2.Color(0, 0, 0, style.background_alpha),
        bold=style.bold,
        borderstyle=1,
        outline=float(style.outline),
        shadow=float(style.shadow),
        alignment=pysubs2.Alignment(style.alignment),
        marginl=style.margin_h,
        marginr=style.margin_h,
        marginv=style.margin_v,
    )


def resolve_style(settings) -> CaptionStyle:
    """Layer the optional environment overrides on top of the default style."""
    overrides = {
        "font_name": getattr(settings, "caption_font_name", None),
        "font_size": getattr(settings, "caption_font_size", None),
        "text_color": getattr(settings, "caption_text_color", None),
        "outline_color": getattr(settings, "caption_outline_color", None),
        "margin_v": getattr(settings, "caption_margin_v", None),
    }
    return replace(DEFAULT_CAPTION_STYLE, **{k: v for k, v in overrides.items() if v is not None})
