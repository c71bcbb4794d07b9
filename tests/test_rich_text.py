"""Rich text conversion tests."""

from __future__ import annotations

import pytest

from handy_dandy.pf2e.config import DEFAULT_SYSTEM_CONFIG
from handy_dandy.text import (
    canonicalize_condition_references,
    link_conditions,
    paragraphs,
    to_plain_text,
    to_rich_text,
)
from handy_dandy.text.rich_text import (
    apply_inline_checks,
    apply_inline_damage,
    apply_inline_templates,
    normalize_macro_casing,
)

FRIGHTENED = "Compendium.pf2e.conditionitems.Item.TBSHQspnbcqxsmjL"
OFF_GUARD = "Compendium.pf2e.conditionitems.Item.AJh5ex99aV6VTggg"


def test_plain_text_becomes_paragraphs() -> None:
    assert to_rich_text("First line.\nSecond line.\n\nNew paragraph.") == (
        "<p>First line.<br />Second line.</p><p>New paragraph.</p>"
    )
    assert to_rich_text("   ") == ""
    assert to_rich_text(None) == ""


def test_bullets_become_lists() -> None:
    assert to_rich_text("Choose one:\n- Fire\n* Cold") == "<p>Choose one:</p><ul><li>Fire</li><li>Cold</li></ul>"


def test_markdown_and_glyphs() -> None:
    result = to_rich_text("**Activate** [two-actions] *envision*, `command`")

    assert result == (
        '<p><strong>Activate</strong> <span class="pf2-icon">2</span> <em>envision</em>, <code>command</code></p>'
    )


def test_detail_headers_and_outcomes() -> None:
    text = (
        "Trigger An enemy ends its turn adjacent to you.\n"
        "Attempt a DC 18 Fortitude save.\n"
        "Critical Success The creature is unaffected.\n"
        "Success The creature takes half damage."
    )

    assert to_rich_text(text) == (
        "<p><strong>Trigger</strong> An enemy ends its turn adjacent to you.<br />"
        "Attempt a @Check[fortitude|dc:18] save.</p>"
        "<hr />"
        "<p><strong>Critical Success</strong> The creature is unaffected.<br />"
        "<strong>Success</strong> The creature takes half damage.</p>"
    )


@pytest.mark.parametrize(
    "text, expected",
    [
        ("DC 20 basic Reflex save", "@Check[reflex|dc:20|basic] save"),
        ("a Will save DC 25", "a @Check[will|dc:25]"),
        ("an Athletics DC 22 check", "an @Check[athletics|dc:22] check"),
    ],
)
def test_inline_checks(text, expected) -> None:
    assert apply_inline_checks(text, DEFAULT_SYSTEM_CONFIG) == expected


def test_inline_damage_and_templates() -> None:
    assert apply_inline_damage("deals 2d6+3 fire damage") == "deals @Damage[(2d6+3)[fire]] damage"
    assert apply_inline_damage("1d4 persistent bleed damage") == "@Damage[1d4[persistent,bleed]] damage"
    assert apply_inline_damage("5 cold damage") == "@Damage[5[cold]] damage"
    assert apply_inline_templates("a 30-foot emanation") == "a @Template[type:emanation|distance:30]"
    assert apply_inline_templates("a 15 foot cone") == "a @Template[type:cone|distance:15]"


def test_macro_casing_is_normalised() -> None:
    assert normalize_macro_casing("@check[will|dc:20] and @uuid[x]") == "@Check[will|dc:20] and @UUID[x]"


def test_condition_names_are_linked_with_stage() -> None:
    result = link_conditions("The target is frightened 2 and off-guard.")

    assert result == f"The target is @UUID[{FRIGHTENED}]{{Frightened 2}} and @UUID[{OFF_GUARD}]{{Off-Guard}}."


def test_legacy_aliases_resolve_to_current_condition() -> None:
    assert link_conditions("It is flat-footed.") == f"It is @UUID[{OFF_GUARD}]{{Off-Guard}}."


def test_condition_references_are_canonicalised() -> None:
    legacy = "@Compendium[pf2e.conditionitems.Frightened]{Frightened 1}"
    by_name = "@UUID[Compendium.pf2e.conditionitems.Item.Off-Guard]"
    unknown = "@UUID[Compendium.pf2e.conditionitems.Item.Bewildered]{Bewildered}"

    assert canonicalize_condition_references(legacy) == f"@UUID[{FRIGHTENED}]{{Frightened 1}}"
    assert canonicalize_condition_references(by_name) == f"@UUID[{OFF_GUARD}]{{Off-Guard}}"
    assert canonicalize_condition_references(unknown) == unknown


def test_existing_html_keeps_structure() -> None:
    source = "<p>Deal 2d6 fire damage; the target must attempt a @check[reflex|dc:20].</p>"

    assert to_rich_text(source) == (
        "<p>Deal @Damage[2d6[fire]] damage; the target must attempt a @Check[reflex|dc:20].</p>"
    )


def test_text_inside_macros_and_tags_is_untouched() -> None:
    source = '<p><span title="prone">Stand</span> @UUID[Compendium.pf2e.x.Item.abc]{prone ally}</p>'

    assert to_rich_text(source) == source


@pytest.mark.parametrize(
    "text",
    [
        "Each creature in a 30-foot emanation must succeed at a DC 18 Will save or become frightened 1.",
        "Trigger A creature moves.\nCritical Failure The creature is prone and takes 2d6 bludgeoning damage.",
        "<p>@Compendium[pf2e.conditionitems.Stunned]{Stunned 1} and slowed 1</p>",
        "- Deals 10 sonic damage\n- Target is deafened",
    ],
)
def test_rewriting_is_idempotent(text) -> None:
    once = to_rich_text(text)

    assert to_rich_text(once) == once


def test_paragraphs_skip_blank_lines() -> None:
    assert paragraphs(["One", None, "  ", "Two"]) == "<p>One</p><p>Two</p>"


@pytest.mark.parametrize("value", [None, 5, ["text"], {"text": "value"}])
def test_non_string_values_render_empty(value) -> None:
    assert to_rich_text(value) == ""
    assert paragraphs([value, "Kept"]) == "<p>Kept</p>"


def test_plain_text_flattens_rich_text() -> None:
    rich = (
        "<p><strong>Trigger</strong> An enemy moves.<br />It flinches &amp; falls.</p>"
        '<p><span class="pf2-icon">r</span> Then @Check[reflex|dc:20] <em>now</em>.</p>'
        "<hr /><ul><li>One</li><li>Two</li></ul>"
        "<p><strong>Other Traits</strong> glimmering</p>"
    )

    assert to_plain_text(rich) == (
        "**Trigger** An enemy moves.\nIt flinches & falls.\n\n"
        "[reaction] Then @Check[reflex|dc:20] *now*.\n\n"
        "- One\n- Two"
    )
    assert to_plain_text(None) == ""


def test_plain_text_survives_another_conversion() -> None:
    text = "Make a melee Strike.\n\n- first\n- second"

    assert to_plain_text(to_rich_text(text)) == text
