"""Transcode Notion rich_text arrays into decorated-text runs.

A decorated-text run is ``[text]`` or ``[text, decorations]`` where
*decorations* is a list of short tags::

    ["b"]            bold
    ["i"]            italic
    ["s"]            strikethrough
    ["_"]            underline
    ["c"]            inline code
    ["h", color]     text or background colour (never "default")
    ["a", href]      hyperlink
    ["e", expr]      inline equation

A bold link reads ``["docs", [["b"], ["a", "https://example.com"]]]``.

The transcoder never raises: a span that is not a mapping, or whose
annotations are not a mapping, degrades to undecorated text.
"""

from __future__ import annotations

from typing import Any

# Annotation key -> decoration tag, in emission order.
_FLAG_DECORATIONS: tuple[tuple[str, str], ...] = (
    ("bold", "b"),
    ("italic", "i"),
    ("strikethrough", "s"),
    ("underline", "_"),
    ("code", "c"),
)


def _span_text(span: dict) -> str:
    text = span.get("plain_text")
    if isinstance(text, str) and text:
        return text
    inner = span.get("text")
    if isinstance(inner, dict) and isinstance(inner.get("content"), str):
        return inner["content"]
    return text if isinstance(text, str) else ""


def _equation_expression(span: dict) -> str | None:
    if span.get("type") != "equation":
        return None
    equation = span.get("equation")
    if isinstance(equation, dict) and isinstance(equation.get("expression"), str):
        return equation["expression"]
    return None


def _span_href(span: dict) -> str | None:
    href = span.get("href")
    if isinstance(href, str) and href:
        return href
    inner = span.get("text")
    if isinstance(inner, dict):
        link = inner.get("link")
        if isinstance(link, dict) and isinstance(link.get("url"), str) and link["url"]:
            return link["url"]
    return None


def _decorations(span: dict, expression: str | None) -> list[list[str]]:
    decorations: list[list[str]] = []
    annotations = span.get("annotations")
    if isinstance(annotations, dict):
        for key, tag in _FLAG_DECORATIONS:
            if annotations.get(key):
                decorations.append([tag])
        color = annotations.get("color")
        if isinstance(color, str) and color and color != "default":
            decorations.append(["h", color])

    href = _span_href(span)
    if href is not None:
        decorations.append(["a", href])

    if expression is not None:
        decorations.append(["e", expression])
    return decorations


def transcode_span(span: Any) -> list:
    """Transcode a single rich_text span into one decorated-text run."""
    if not isinstance(span, dict):
        return [span if isinstance(span, str) else ""]

    expression = _equation_expression(span)
    text = expression if expression is not None else _span_text(span)

    decorations = _decorations(span, expression)
    if decorations:
        return [text, decorations]
    return [text]


def transcode_rich_text(spans: Any) -> list[list]:
    """Transcode a Notion rich_text array into decorated-text runs.

    Parameters
    ----------
    spans:
        The upstream ``rich_text`` array.  ``None`` or an empty sequence
        yields an empty list.

    Returns
    -------
    list[list]
        One run per span, in input order.
    """
    if not spans or not isinstance(spans, (list, tuple)):
        return []
    return [transcode_span(span) for span in spans]


def plain_text(spans: Any) -> str:
    """Concatenate the visible text of a rich_text array."""
    return "".join(str(run[0]) for run in transcode_rich_text(spans))
