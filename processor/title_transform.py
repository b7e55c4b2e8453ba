"""Title rewriting and shortening for display."""
from typing import Any, Iterable

from processor.config import BuildConfig, TitleReplacement
from processor.models import EnrichedEvent
from processor.property_resolver import PropertyResolver
from processor.timeutil import local_year


LINE_BREAK = '<br>'
ELLIPSIS = '&hellip;'
DEFAULT_MAX_LENGTH = 25


def shorten(text: Any, max_length: Any, wrap: bool = False) -> str:
    """
    Shorten a title for display.

    With wrap enabled, words are packed greedily onto lines of at most
    max_length - 1 characters (a word longer than that gets a line of its
    own) and lines are joined with LINE_BREAK. Otherwise a text longer than
    max_length is cut and ELLIPSIS appended.

    Args:
        text: Title; anything other than a string shortens to ""
        max_length: Maximum line or title length
        wrap: Wrap instead of truncating

    Returns:
        Shortened title
    """
    if not isinstance(text, str):
        return ''

    has_limit = isinstance(max_length, int) and not isinstance(max_length, bool)

    if wrap:
        limit = (max_length if has_limit else DEFAULT_MAX_LENGTH) - 1
        lines = []
        current = ''
        for word in text.split(' '):
            if not current:
                current = word
            elif len(current) + 1 + len(word) <= limit:
                current = f"{current} {word}"
            else:
                lines.append(current)
                current = word
        lines.append(current)
        return LINE_BREAK.join(line.strip() for line in lines if line.strip())

    if has_limit and max_length and len(text) > max_length:
        return text.strip()[:max_length] + ELLIPSIS
    return text.strip()


def transform_title(
    title: str,
    replacements: Iterable[TitleReplacement],
    wrap: bool = False,
    max_length: Any = DEFAULT_MAX_LENGTH
) -> str:
    """
    Apply replacement rules in order, then shorten.

    Args:
        title: Event title
        replacements: Compiled title replacement rules
        wrap: Wrap instead of truncating
        max_length: Maximum line or title length

    Returns:
        Display title
    """
    for rule in replacements:
        title = rule.apply(title)
    return shorten(title, max_length, wrap)


def display_title(event: EnrichedEvent, config: BuildConfig) -> str:
    """Transform an event title with the configured rules and limits."""
    return transform_title(
        event.title,
        config.title_replace,
        wrap=config.wrap_events,
        max_length=config.max_title_length
    )


def repeating_count_title(
    event: EnrichedEvent,
    resolver: PropertyResolver,
    config: BuildConfig
) -> str:
    """
    Build the ", N. <label>" suffix for recurring anniversaries.

    Args:
        event: Event with first_year set by the ingestion service
        resolver: Property resolver for the per-source label
        config: Build options

    Returns:
        Suffix, or "" when disabled, unlabelled, or first_year is unknown
    """
    if not config.display_repeating_count_title:
        return ''

    label = resolver.count_title_for(event.source_id)
    if not label or event.first_year is None:
        return ''

    years = local_year(event.start_date) - event.first_year
    return f", {years}. {label}"


def presentation_title(
    event: EnrichedEvent,
    resolver: PropertyResolver,
    config: BuildConfig
) -> str:
    """Display title followed by the repeating count suffix, if any."""
    return display_title(event, config) + repeating_count_title(event, resolver, config)
