"""Symbol resolution and event payloads for other consumers."""
import logging
from typing import Any, Dict, List

from processor.config import BuildConfig
from processor.models import EnrichedEvent
from processor.property_resolver import PropertyResolver
from processor.title_transform import presentation_title

logger = logging.getLogger(__name__)


def merge_unique(first: List[Any], second: List[Any]) -> List[Any]:
    """Concatenate two lists, dropping items of second already in first."""
    return first + [item for item in second if item not in first]


def resolve_symbols_for_event(
    event: EnrichedEvent,
    resolver: PropertyResolver,
    config: BuildConfig
) -> List[str]:
    """
    Resolve the display symbols of an event.

    Recurring and full-day symbols of the source are placed in front of
    the regular ones. The first custom event rule whose keyword matches the
    title replaces the leading symbol.

    Args:
        event: Enriched event
        resolver: Property resolver for the event's source
        config: Build options holding the default symbol and custom rules

    Returns:
        List of symbol names
    """
    source_id = event.source_id
    symbols = resolver.resolve_as_array(source_id, 'symbol', config.default_symbol)

    if event.recurring_event and resolver.has_property(source_id, 'recurringSymbol'):
        symbols = merge_unique(
            resolver.resolve_as_array(source_id, 'recurringSymbol', config.default_symbol),
            symbols
        )

    if event.full_day_event and resolver.has_property(source_id, 'fullDaySymbol'):
        symbols = merge_unique(
            resolver.resolve_as_array(source_id, 'fullDaySymbol', config.default_symbol),
            symbols
        )

    for custom in config.custom_events:
        if not custom.symbol:
            continue
        if custom.keyword.search(event.title):
            class_name = resolver.symbol_class_name_for(source_id)
            symbols = [f"{class_name}{custom.symbol}"] + symbols[1:]
            break

    return symbols


def resolve_color_for_event(
    event: EnrichedEvent,
    resolver: PropertyResolver,
    config: BuildConfig
) -> str:
    """Source color, unless a custom event rule with a color matches the title."""
    for custom in config.custom_events:
        if custom.color and custom.keyword.search(event.title):
            return custom.color
    return resolver.color_for(event.source_id)


def presentation_payload(
    events: List[EnrichedEvent],
    resolver: PropertyResolver,
    config: BuildConfig
) -> List[Dict[str, Any]]:
    """
    Wire form of built events with their display title and title class.

    Args:
        events: Built event list
        resolver: Property resolver
        config: Build options holding the title rules and limits

    Returns:
        List of event dictionaries, source identifier included
    """
    payload = []
    for event in events:
        item = event.to_dict()
        item['displayTitle'] = presentation_title(event, resolver, config)
        item['titleClass'] = resolver.title_class_for(event.source_id)
        payload.append(item)
    return payload


def broadcast_payload(
    events: List[EnrichedEvent],
    resolver: PropertyResolver,
    config: BuildConfig
) -> List[Dict[str, Any]]:
    """
    Prepare events for other modules.

    The source identifier is stripped; symbol, calendar name and color
    are resolved from the source configuration and added to the
    presentation fields.

    Args:
        events: Built event list
        resolver: Property resolver
        config: Build options

    Returns:
        List of event dictionaries in wire form
    """
    payload = []
    for event, item in zip(events, presentation_payload(events, resolver, config)):
        del item['sourceId']
        item['symbol'] = resolve_symbols_for_event(event, resolver, config)
        item['calendarName'] = resolver.name_for(event.source_id)
        item['color'] = resolve_color_for_event(event, resolver, config)
        payload.append(item)

    logger.info(f"Prepared {len(payload)} events for broadcast")
    return payload
