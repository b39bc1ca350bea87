"""
Caption segmentation and subtitle synthesis.

Speech-to-text responses come back with word timestamps, segment timestamps,
or only plain text. Everything is normalised into ``Caption`` units, which are
stored as the video's transcript and later windowed into a clip's subtitle
track (SRT, or ASS when the style has to travel with the file).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import pysubs2

from clipworker.services.caption_style import CaptionStyle, to_ssa_style

# libass override tags: quick fade plus a 115% scale bump that settles back.
POP_IN_TAGS = r"{\fad(80,80)\t(0,120,\fscx115\fscy115)\t(120,200,\fscx100\fscy100)}"


@dataclass(frozen=True)
class Caption:
    start: float
    end: float
    text: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Caption":
        return cls(
            start=float(data.get("start", 0.0)),
            end=float(data.get("end", 0.0)),
            text=str(data.get("text", "")),
        )


def _value(item: Any, attr: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(attr, default)
    return getattr(item, attr, default)


def group_words(words: Sequence[Any], words_per_group: int = 3) -> List[Caption]:
    """Group consecutive words into short, fast-paced caption units."""
    if words_per_group < 1:
        raise ValueError("words_per_group must be at least 1")
    captions: List[Caption] = []
    for idx in range(0, len(words), words_per_group):
        group = words[idx: idx + words_per_group]
        if not group:
            continue
        text = " ".join(str(_value(w, "word", "")).strip() for w in group).strip()
        captions.append(
            Caption(
                start=float(_value(group[0], "start", 0.0) or 0.0),
                end=float(_value(group[-1], "end", 0.0) or 0.0),
                text=text,
            )
        )
    return captions


def segment_transcription(response: Any, words_per_group: int = 3) -> List[Caption]:
    """
    Normalise a verbose transcription response into caption units.

    Priority: top-level words, then words nested in segments, then one caption
    per segment, then the full text as a single zero-length caption.
    """
    words = _value(response, "words") or []
    if words:
        return group_words(list(words), words_per_group)

    segments = _value(response, "segments") or []
    if segments:
        nested: List[Any] = []
        for seg in segments:
            nested.extend(_value(seg, "words") or [])
        if nested:
            return group_words(nested, words_per_group)
        return [
            Caption(
                start=float(_value(seg, "start", 0.0) or 0.0),
                end=float(_value(seg, "end", 0.0) or 0.0),
                text=str(_value(seg, "text", "") or "").strip(),
            )
            for seg in segments
        ]

    text = _value(response, "text")
    if text:
        return [Caption(start=0.0, end=0.0, text=str(text))]
    return []


def window_captions(
    captions: Iterable[Caption],
    start: float,
    end: float,
    min_duration: float = 0.1,
) -> List[Caption]:
    """Restrict captions to [start, end), re-based so the window starts at zero."""
    window = end - start
    cues: List[Caption] = []
    for caption in captions:
        if not (caption.end > start and caption.start < end):
            continue
        cue_start = max(0.0, caption.start - start)
        cue_end = min(window, caption.end - start)
        if cue_end - cue_start < min_duration:
            continue
        text = caption.text.strip().upper()
        if not text:
            continue
        cues.append(Caption(start=cue_start, end=cue_end, text=text))
    return cues


def format_srt_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    total_ms = max(0, int(round(seconds * 1000)))
    hrs, rem = divmod(total_ms, 3_600_000)
    mins, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hrs:02}:{mins:02}:{secs:02},{millis:03}"


def _cue_text(text: str, pop_in: bool) -> str:
    return f"{POP_IN_TAGS}{text}" if pop_in else text


def render_srt(cues: Sequence[Caption], pop_in: bool = False) -> str:
    lines: List[str] = []
    for idx, cue in enumerate(cues, 1):
        lines.append(str(idx))
        lines.append(f"{format_srt_timestamp(cue.start)} --> {format_srt_timestamp(cue.end)}")
        lines.append(_cue_text(cue.text, pop_in))
        lines.append("")
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def render_ass(
    cues: Sequence[Caption],
    style: CaptionStyle,
    width: int,
    height: int,
    pop_in: bool = False,
    style_name: str = "Caption",
) -> str:
    """Render cues as an ASS document with the caption style embedded."""
    subs = pysubs2.SSAFile()
    subs.info["PlayResX"] = str(width)
    subs.info["PlayResY"] = str(height)
    subs.info["WrapStyle"] = "0"
    subs.styles[style_name] = to_ssa_style(style)
    for cue in cues:
        subs.events.append(
            pysubs2.SSAEvent(
                start=pysubs2.make_time(s=cue.start),
                end=pysubs2.make_time(s=cue.end),
                text=_cue_text(cue.text, pop_in),
                style=style_name,
            )
        )
    subs.sort()
    return subs.to_string("ass")


def captions_from_content(content: Optional[Iterable[Mapping[str, Any]]]) -> List[Caption]:
    return [Caption.from_dict(item) for item in content or []]
