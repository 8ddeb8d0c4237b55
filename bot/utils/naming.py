from __future__ import annotations

import re

# Each template is rendered in a single pass, so substituted values are never re-scanned.
NAME_FORMAT_PLACEHOLDER = re.compile(
    r"{+\s*(?:(?P<name>(?:user)?name)|(?P<number>num(?:ber)?))\s*}+",
    re.IGNORECASE,
)
OPENING_MESSAGE_PLACEHOLDER = re.compile(
    r"{+\s*(?:(?P<name>(?:user)?name)|(?:tag|ping|mention)?)\s*}+",
    re.IGNORECASE,
)


def render_name(template: str, display_name: str, number: int) -> str:
    """Fill ``{name}``/``{username}`` and ``{num}``/``{number}`` in a channel name template.

    Placeholders are case-insensitive and tolerate padding whitespace and doubled
    braces, so ``{{ USERNAME }}`` behaves like ``{name}``. Anything else in the
    template passes through untouched, including placeholder text that appears
    inside the display name itself.
    """
    return NAME_FORMAT_PLACEHOLDER.sub(
        lambda match: display_name if match.group("name") else str(number),
        template,
    )


def render_opening_message(template: str, display_name: str, mention: str) -> str:
    return OPENING_MESSAGE_PLACEHOLDER.sub(
        lambda match: display_name if match.group("name") else mention,
        template,
    )


def format_questions(questions: list[str]) -> str:
    return "\n\n".join(f"**{index}.** {question}" for index, question in enumerate(questions, start=1))
