"""Rich text helpers for PF2e descriptions."""

from handy_dandy.text.rich_text import (
    canonicalize_condition_references,
    link_conditions,
    paragraphs,
    repair_inline_macros,
    to_plain_text,
    to_rich_text,
)

__all__ = [
    "canonicalize_condition_references",
    "link_conditions",
    "paragraphs",
    "repair_inline_macros",
    "to_plain_text",
    "to_rich_text",
]
