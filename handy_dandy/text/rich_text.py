"""Free text to PF2e rich text conversion.

Generated descriptions arrive either as plain text with light markdown or as
HTML. Both are rewritten into the markup the PF2e system renders: inline
``@Check``/``@Damage``/``@Template`` macros, condition links pointing at the
condition compendium by document id, and action glyph spans. Every rewrite
skips text that is already inside a macro or an HTML tag, so running a
converted description through again leaves it unchanged.
"""

from __future__ import annotations

import html
import re
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence, Tuple

from handy_dandy.pf2e.config import DEFAULT_SYSTEM_CONFIG, SystemConfig

_GLYPHS = {
    "one-action": "1",
    "two-actions": "2",
    "three-actions": "3",
    "reaction": "r",
    "free-action": "f",
    "free": "f",
}

_SAVES = ("fortitude", "reflex", "will", "perception")

_DAMAGE_TYPES = (
    "acid",
    "bludgeoning",
    "bleed",
    "cold",
    "electricity",
    "fire",
    "force",
    "holy",
    "mental",
    "piercing",
    "poison",
    "slashing",
    "sonic",
    "spirit",
    "unholy",
    "vitality",
    "void",
)

DETAIL_HEADERS = (
    "Activate",
    "Trigger",
    "Requirements",
    "Requirement",
    "Effect",
    "Frequency",
    "Cost",
    "Saving Throw",
    "Maximum Duration",
    "Onset",
    "Disable",
    "Routine",
    "Reset",
)

OUTCOME_HEADERS = ("Critical Success", "Success", "Failure", "Critical Failure")

_HTML_TAG = re.compile(
    r"</?(?:p|ul|ol|li|hr|strong|em|span|br|code|blockquote|h[1-6]|table|thead|tbody|tr|td|th)\b",
    re.IGNORECASE,
)
_MACRO = re.compile(
    r"@(?:UUID|Compendium|Check|Damage|Template|Localize)\[(?:[^\[\]]|\[[^\[\]]*\])*\](?:\{[^}]*\})?",
    re.IGNORECASE,
)
_TAG = re.compile(r"<[^>]+>")
_MASK = re.compile("\ue000(\\d+)\ue001")

_MACRO_NAMES = ("UUID", "Compendium", "Check", "Damage", "Template", "Localize")
_MACRO_CASING = re.compile(r"@(" + "|".join(_MACRO_NAMES) + r")\[", re.IGNORECASE)
_CANONICAL_MACRO = {name.lower(): name for name in _MACRO_NAMES}

_LEGACY_CONDITION = re.compile(
    r"@Compendium\[pf2e\.conditionitems\.([^\]]+)\](?:\{([^}]*)\})?",
    re.IGNORECASE,
)
_UUID_CONDITION = re.compile(
    r"@UUID\[Compendium\.pf2e\.conditionitems\.(?:Item\.)?([^\]]+)\](?:\{([^}]*)\})?",
    re.IGNORECASE,
)

_GLYPH_TOKEN = re.compile(r"\[(one-action|two-actions|three-actions|reaction|free-action|free)\]", re.IGNORECASE)
_BULLET = re.compile(r"^[-*\u2022]\s+(.+)$")
_STRIP_TAGS = re.compile(r"<[^>]+>")


def _protected(value: str, transform: Callable[[str], str]) -> str:
    """Apply *transform* to *value* with macros and HTML tags masked out."""

    stash: List[str] = []

    def _hide(match: "re.Match[str]") -> str:
        stash.append(match.group(0))
        return f"\ue000{len(stash) - 1}\ue001"

    masked = _TAG.sub(_hide, _MACRO.sub(_hide, value))
    rewritten = transform(masked)

    def _restore(match: "re.Match[str]") -> str:
        return stash[int(match.group(1))]

    # Macros can be stashed inside stashed tags only in malformed input; two
    # passes cover that nesting.
    return _MASK.sub(_restore, _MASK.sub(_restore, rewritten))


def normalize_text(value: str) -> str:
    return (
        value.replace("\u2013", "-")
        .replace("\u2014", "-")
        .replace("\u2018", "'")
        .replace("\u2019", "'")
        .replace("\u201c", '"')
        .replace("\u201d", '"')
        .replace("\u00a0", " ")
    )


def is_probably_html(value: str) -> bool:
    return bool(_HTML_TAG.search(value))


def normalize_macro_casing(value: str) -> str:
    """Rewrite ``@check[`` style macro openers to their canonical casing."""

    return _MACRO_CASING.sub(lambda match: f"@{_CANONICAL_MACRO[match.group(1).lower()]}[", value)


def canonicalize_condition_references(value: str, config: SystemConfig = DEFAULT_SYSTEM_CONFIG) -> str:
    """Point legacy and name-based condition links at the compendium document id.

    Existing labels are preserved. References to unknown conditions are left
    alone.
    """

    def _rewrite(match: "re.Match[str]") -> str:
        target = match.group(1).strip()
        condition = config.condition(target) or config.condition(target.split(".")[-1])
        if condition is None:
            return match.group(0)
        label = match.group(2)
        if label is None:
            label = condition.label
        return f"@UUID[{condition.uuid}]{{{label}}}"

    value = _LEGACY_CONDITION.sub(_rewrite, value)
    return _UUID_CONDITION.sub(_rewrite, value)


@lru_cache(maxsize=16)
def _condition_pattern(names: Tuple[str, ...]) -> Optional["re.Pattern[str]"]:
    if not names:
        return None
    ordered = sorted(names, key=lambda name: (-len(name), name))
    alternation = "|".join(re.escape(name).replace(r"\-", "-").replace("-", r"[-\s]") for name in ordered)
    return re.compile(rf"\b({alternation})\b(?:\s+(\d+))?", re.IGNORECASE)


def link_conditions(value: str, config: SystemConfig = DEFAULT_SYSTEM_CONFIG) -> str:
    """Replace bare condition names with compendium links."""

    pattern = _condition_pattern(tuple(sorted(set(config.conditions) | set(config.condition_aliases))))
    if pattern is None:
        return value

    def _link(match: "re.Match[str]") -> str:
        condition = config.condition(match.group(1))
        if condition is None:
            return match.group(0)
        stage = match.group(2)
        label = f"{condition.label} {stage}" if stage else condition.label
        return f"@UUID[{condition.uuid}]{{{label}}}"

    return _protected(value, lambda text: pattern.sub(_link, text))


def apply_action_glyphs(value: str) -> str:
    return _GLYPH_TOKEN.sub(
        lambda match: f'<span class="pf2-icon">{_GLYPHS[match.group(1).lower()]}</span>',
        value,
    )


def apply_inline_markdown(value: str) -> str:
    """Convert ``**bold**``, ``*italic*`` and backtick code spans to HTML."""

    value = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", value)
    value = re.sub(r"(^|[^*])\*(?!\s)([^*]+?)\*", r"\1<em>\2</em>", value)
    return re.sub(r"`([^`]+?)`", r"<code>\1</code>", value)


def _check_stats(config: SystemConfig) -> str:
    stats = list(_SAVES) + sorted(config.skills)
    return "|".join(re.escape(stat) for stat in stats)


def apply_inline_checks(value: str, config: SystemConfig = DEFAULT_SYSTEM_CONFIG) -> str:
    stats = _check_stats(config)

    def _dc_first(match: "re.Match[str]") -> str:
        basic = "|basic" if match.group(2) else ""
        return f"@Check[{match.group(3).lower()}|dc:{match.group(1)}{basic}]"

    def _stat_first(match: "re.Match[str]") -> str:
        return f"@Check[{match.group(1).lower()}|dc:{match.group(2)}]"

    value = re.sub(rf"\bDC\s*(\d+)\s+(?:(basic)\s+)?({stats})\b", _dc_first, value, flags=re.IGNORECASE)
    return re.sub(rf"\b({stats})(?:\s+save)?\s+DC\s*(\d+)\b", _stat_first, value, flags=re.IGNORECASE)


def apply_inline_damage(value: str) -> str:
    types = "|".join(_DAMAGE_TYPES)

    def _persistent(match: "re.Match[str]") -> str:
        return f"@Damage[{match.group(1)}[persistent,{match.group(2).lower()}]] damage"

    def _rolled(match: "re.Match[str]") -> str:
        formula = re.sub(r"\s+", "", match.group(1))
        if re.search(r"[+-]", formula):
            formula = f"({formula})"
        return f"@Damage[{formula}[{match.group(2).lower()}]] damage"

    value = re.sub(rf"\b(\d+d\d+)\s+persistent\s+({types})\s+damage\b", _persistent, value, flags=re.IGNORECASE)
    value = re.sub(
        rf"\b(\d+d\d+(?:\s*[+-]\s*\d+)?)\s+({types})\s+damage\b",
        _rolled,
        value,
        flags=re.IGNORECASE,
    )
    return re.sub(
        rf"\b(\d+)\s+({types})\s+damage\b",
        lambda match: f"@Damage[{match.group(1)}[{match.group(2).lower()}]] damage",
        value,
        flags=re.IGNORECASE,
    )


def apply_inline_templates(value: str) -> str:
    return re.sub(
        r"\b(\d+)\s*(?:-|\s)?\s*(?:foot|feet)\s+(emanation|burst|cone|line)\b",
        lambda match: f"@Template[type:{match.group(2).lower()}|distance:{match.group(1)}]",
        value,
        flags=re.IGNORECASE,
    )


def repair_inline_macros(value: Optional[str], config: SystemConfig = DEFAULT_SYSTEM_CONFIG) -> str:
    """Repair inline macros in *value* without changing its block structure."""

    if not value:
        return ""
    text = canonicalize_condition_references(normalize_macro_casing(value), config)
    text = _protected(text, lambda chunk: apply_inline_checks(chunk, config))
    text = _protected(text, apply_inline_damage)
    text = _protected(text, apply_inline_templates)
    return link_conditions(text, config)


def _format_headers(line: str) -> str:
    line = re.sub(r"^Stage\s+(\d+)\b:?\s*", r"<strong>Stage \1</strong> ", line, flags=re.IGNORECASE)
    for headers in (DETAIL_HEADERS, OUTCOME_HEADERS):
        for header in sorted(headers, key=len, reverse=True):
            pattern = re.compile(rf"^{header}\b:?\s*", re.IGNORECASE)
            match = pattern.match(line)
            if match:
                label = match.group(0).rstrip().rstrip(":").strip()
                line = f"<strong>{label}</strong> " + line[match.end():]
                break
    return line.strip()


def _format_line(line: str, config: SystemConfig) -> str:
    text = html.escape(normalize_macro_casing(line), quote=True)
    text = apply_action_glyphs(text)
    text = _protected(text, apply_inline_markdown)
    return _format_headers(repair_inline_macros(text, config))


def _starts_with_outcome(line: str) -> bool:
    plain = _STRIP_TAGS.sub("", line).strip().lower()
    return any(plain.startswith(header.lower()) for header in OUTCOME_HEADERS)


def _paragraph(lines: Sequence[str]) -> str:
    return "<p>" + "<br />".join(lines) + "</p>"


def _bullet_list(items: Sequence[str]) -> str:
    return "<ul>" + "".join(f"<li>{item}</li>" for item in items) + "</ul>"


def to_rich_text(value: Any, config: SystemConfig = DEFAULT_SYSTEM_CONFIG) -> str:
    """Convert a generated description into PF2e rich text HTML.

    Anything other than a string renders as empty text.
    """

    if not isinstance(value, str):
        return ""
    raw = value.strip()
    if not raw:
        return ""
    text = normalize_text(raw)
    if is_probably_html(text):
        text = _protected(apply_action_glyphs(text), apply_inline_markdown)
        return repair_inline_macros(text, config)

    blocks: List[str] = []
    paragraph: List[str] = []
    items: List[str] = []
    outcomes_started = False

    def flush_paragraph() -> None:
        if paragraph:
            blocks.append(_paragraph(paragraph))
            paragraph.clear()

    def flush_list() -> None:
        if items:
            blocks.append(_bullet_list(items))
            items.clear()

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            flush_paragraph()
            flush_list()
            outcomes_started = False
            continue

        bullet = _BULLET.match(line)
        if bullet:
            flush_paragraph()
            items.append(_format_line(bullet.group(1).strip(), config))
            continue

        formatted = _format_line(line, config)
        flush_list()
        if _starts_with_outcome(formatted) and not outcomes_started:
            flush_paragraph()
            blocks.append("<hr />")
            outcomes_started = True
        paragraph.append(formatted)

    flush_paragraph()
    flush_list()
    return "".join(blocks)


def paragraphs(lines: Sequence[Any], config: SystemConfig = DEFAULT_SYSTEM_CONFIG) -> str:
    """Join non-empty *lines* as separate rich text paragraphs."""

    return "".join(to_rich_text(line, config) for line in lines if isinstance(line, str) and line.strip())


_GLYPH_NAMES = {"1": "one-action", "2": "two-actions", "3": "three-actions", "r": "reaction", "f": "free-action"}
_GLYPH_SPAN = re.compile(r'<span class="pf2-icon">\s*([123rf])\s*</span>', re.IGNORECASE)
_OTHER_TRAITS_BLOCK = re.compile(r"<p>\s*<strong>Other Traits</strong>.*?</p>", re.IGNORECASE | re.DOTALL)
_PLAIN_TEXT_RULES: Sequence[Tuple["re.Pattern[str]", str]] = (
    (re.compile(r"<\s*br\s*/?\s*>", re.IGNORECASE), "\n"),
    (re.compile(r"<\s*hr\s*/?\s*>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<\s*li(?:\s[^>]*)?>", re.IGNORECASE), "\n- "),
    (re.compile(r"</\s*(?:p|ul|ol|div|h[1-6])\s*>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</?\s*strong\s*>", re.IGNORECASE), "**"),
    (re.compile(r"</?\s*em\s*>", re.IGNORECASE), "*"),
    (re.compile(r"</?\s*code\s*>", re.IGNORECASE), "`"),
)


def to_plain_text(value: Any) -> str:
    """Flatten PF2e rich text HTML back into markdown-flavoured plain text.

    Paragraphs are separated by a blank line, list items become ``- `` bullets
    and action glyph spans return to their bracketed tokens. Inline macros are
    left exactly as written. The demoted ``Other Traits`` paragraph is dropped
    because its traits travel in the trait list.
    """

    if not isinstance(value, str):
        return ""
    text = _OTHER_TRAITS_BLOCK.sub("", value)
    text = _GLYPH_SPAN.sub(lambda match: f"[{_GLYPH_NAMES[match.group(1).lower()]}]", text)
    for pattern, replacement in _PLAIN_TEXT_RULES:
        text = pattern.sub(replacement, text)
    text = html.unescape(_STRIP_TAGS.sub("", text))

    lines: List[str] = []
    for line in text.splitlines():
        line = line.strip()
        if line:
            lines.append(line)
        elif lines and lines[-1]:
            lines.append("")
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


__all__ = [
    "DETAIL_HEADERS",
    "OUTCOME_HEADERS",
    "apply_action_glyphs",
    "apply_inline_checks",
    "apply_inline_damage",
    "apply_inline_markdown",
    "apply_inline_templates",
    "canonicalize_condition_references",
    "is_probably_html",
    "link_conditions",
    "normalize_macro_casing",
    "normalize_text",
    "paragraphs",
    "repair_inline_macros",
    "to_plain_text",
    "to_rich_text",
]
