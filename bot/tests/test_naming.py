from __future__ import annotations

from utils.naming import format_questions, render_name, render_opening_message


def test_render_name_fills_name_and_number() -> None:
    assert render_name("ticket-{name}-{number}", "Ava", 7) == "ticket-Ava-7"


def test_render_name_accepts_placeholder_variants() -> None:
    assert render_name("{{ USERNAME }}", "Ava", 1) == "Ava"
    assert render_name("t-{ Num }", "Ava", 12) == "t-12"
    assert render_name("{username}/{num}", "Ava", 3) == "Ava/3"


def test_render_name_leaves_other_text_alone() -> None:
    assert render_name("support-{number}-{tag}", "Ava", 4) == "support-4-{tag}"


def test_render_name_keeps_backslashes_literal() -> None:
    assert render_name("ticket-{name}", r"A\1va", 1) == r"ticket-A\1va"


def test_render_opening_message_fills_mention() -> None:
    rendered = render_opening_message("Hi {name}! {ping} / {{ tag }} / {}", "Ava", "<@1>")
    assert rendered == "Hi Ava! <@1> / <@1> / <@1>"


def test_format_questions_numbers_each_entry() -> None:
    assert format_questions(["Why?", "When?"]) == "**1.** Why?\n\n**2.** When?"


def test_placeholders_inside_display_name_are_left_alone() -> None:
    assert render_name("ticket-{name}-{number}", "{num}", 7) == "ticket-{num}-7"
    assert render_opening_message("Hi {name} {mention}", "{tag}", "<@1>") == "Hi {tag} <@1>"
