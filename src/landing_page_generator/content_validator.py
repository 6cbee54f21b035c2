from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from itertools import cycle
from typing import Iterator

from .dictionaries import (
    BUSINESS_TEMPLATE_ALIASES,
    BUSINESS_TEMPLATES,
    DEFAULT_BUSINESS_TEMPLATE,
    EXPANSION_CLOSING,
    EXPANSION_LEAD_TITLE_KEYWORDS,
    EXPANSION_LEADS,
    EXPANSION_ROTATION,
    TEMPLATE_DEFAULTS,
)
from .models.run import BusinessContext, ContentLengthPolicy
from .models.section import Section

logger = logging.getLogger(__name__)

HTML_TAG = re.compile(r"<[^>]*>")
WHITESPACE = re.compile(r"\s+")
MIN_CLEAN_LENGTH = 10


@dataclass
class LengthOutcome:
    section: Section
    word_count: int
    status: str = "within"
    added_words: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.status in ("expanded", "template")


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split())


def validate_section(section: Section, policy: ContentLengthPolicy) -> tuple[int, bool]:
    word_count = count_words(section.body_text())
    return word_count, policy.accepts(word_count)


def clean_html(text: str | None) -> str | None:
    """Strip tags and collapse whitespace; None when too little text is left."""
    if not text:
        return None
    cleaned = WHITESPACE.sub(" ", HTML_TAG.sub("", text)).strip()
    if len(cleaned) < MIN_CLEAN_LENGTH:
        return None
    return cleaned


def template_values(section: Section, business: BusinessContext) -> dict[str, str]:
    values = {
        "business_name": business.business_name.strip(),
        "business_overview": business.business_overview.strip(),
        "target_audience": business.target_audience.strip(),
    }
    for key, default in TEMPLATE_DEFAULTS.items():
        if not values[key]:
            values[key] = default
    values["title"] = section.display_name
    return values


def _lead_key(section: Section) -> str | None:
    section_type = section.type.lower()
    if section_type in EXPANSION_LEADS:
        return section_type
    title = section.title.lower()
    for keyword, key in EXPANSION_LEAD_TITLE_KEYWORDS.items():
        if keyword in title:
            return key
    return None


def expansion_sentences(section: Section, business: BusinessContext) -> Iterator[str]:
    """Endless, deterministic stream of business-grounded filler.

    The rotation start depends on the section order, so neighbouring
    sections do not open with the same sentence.
    """
    values = template_values(section, business)
    lead = _lead_key(section)
    if lead is not None:
        yield EXPANSION_LEADS[lead].format(**values)

    offset = (section.order - 1) % len(EXPANSION_ROTATION)
    rotation = list(EXPANSION_ROTATION[offset:]) + list(EXPANSION_ROTATION[:offset])
    for template in rotation:
        yield template.format(**values)
    yield EXPANSION_CLOSING.format(**values)

    for template in cycle(rotation + [EXPANSION_CLOSING]):
        yield template.format(**values)


def expand_content(
    section: Section,
    business: BusinessContext,
    additional_words_needed: int,
    word_limit: int | None = None,
) -> str:
    """Filler text of at least ``additional_words_needed`` words.

    Whole sentences are used while they fit. With a ``word_limit`` the last
    sentence is cut so the filler never exceeds it.
    """
    if additional_words_needed <= 0:
        return ""
    if word_limit is not None:
        word_limit = max(word_limit, additional_words_needed)

    pieces: list[str] = []
    total = 0
    for sentence in expansion_sentences(section, business):
        words = sentence.split()
        if word_limit is not None and total + len(words) > word_limit:
            words = words[: additional_words_needed - total]
            pieces.append(_close_sentence(" ".join(words)))
            total += len(words)
            break
        pieces.append(sentence)
        total += len(words)
        if total >= additional_words_needed:
            break
    return " ".join(pieces)


def _close_sentence(text: str) -> str:
    if text and text[-1] not in ".!?":
        return text.rstrip(",;:") + "."
    return text


def apply_length_policy(
    section: Section,
    business: BusinessContext,
    policy: ContentLengthPolicy,
) -> LengthOutcome:
    """Bring the section body inside the policy bounds where possible.

    Model text is kept as an exact prefix; expansion is only ever appended.
    Over-long text is left untouched and reported.
    """
    body = section.body_text()
    word_count = count_words(body)
    low, high = policy.bounds

    if word_count == 0:
        text = last_resort_content(section, business, policy)
        return LengthOutcome(
            section=section.with_body_text(text),
            word_count=count_words(text),
            status="template",
            added_words=count_words(text),
        )

    if word_count < low:
        expansion = expand_content(section, business, low - word_count, word_limit=high - word_count)
        separator = "" if body[-1].isspace() else " "
        text = f"{body}{separator}{expansion}"
        final_count = count_words(text)
        logger.debug(
            "Expanded section content",
            extra={"section_id": section.id, "before": word_count, "after": final_count},
        )
        return LengthOutcome(
            section=section.with_body_text(text),
            word_count=final_count,
            status="expanded",
            added_words=final_count - word_count,
        )

    if word_count > high:
        logger.warning(
            "Section content exceeds length policy",
            extra={"section_id": section.id, "word_count": word_count, "maximum": high},
        )
        return LengthOutcome(
            section=section,
            word_count=word_count,
            status="over_limit",
            notes=[f"{section.id} has {word_count} words, maximum is {high}"],
        )

    return LengthOutcome(section=section, word_count=word_count)


def business_template(section: Section, business: BusinessContext) -> str:
    section_type = section.type.lower()
    section_type = BUSINESS_TEMPLATE_ALIASES.get(section_type, section_type)
    template = BUSINESS_TEMPLATES.get(section_type, DEFAULT_BUSINESS_TEMPLATE)
    return WHITESPACE.sub(" ", template.format(**template_values(section, business))).strip()


def last_resort_content(
    section: Section,
    business: BusinessContext,
    policy: ContentLengthPolicy,
) -> str:
    """Business template fitted into the policy bounds."""
    low, high = policy.bounds
    text = business_template(section, business)
    words = text.split()

    if len(words) > high:
        return _close_sentence(" ".join(words[:high]))
    if len(words) < low:
        expansion = expand_content(section, business, low - len(words), word_limit=high - len(words))
        return f"{text} {expansion}"
    return text


__all__ = [
    "LengthOutcome",
    "count_words",
    "validate_section",
    "clean_html",
    "template_values",
    "expansion_sentences",
    "expand_content",
    "apply_length_policy",
    "business_template",
    "last_resort_content",
]
