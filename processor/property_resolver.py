"""Per-source property lookup with fallback to global defaults."""
import logging
from typing import Any, Dict, List, Optional

from processor.config import BuildConfig, SourceConfig

logger = logging.getLogger(__name__)

SYMBOL_PROPERTIES = ('symbol', 'recurring_symbol', 'full_day_symbol')


class PropertyResolver:
    """Answers per-source questions from the configured override blocks."""

    def __init__(self, config: BuildConfig):
        """
        Initialize the resolver.

        Args:
            config: Build configuration holding the source list and the
                global defaults
        """
        self.config = config
        self.sources = list(config.calendars)

    def has_source(self, source_id: str) -> bool:
        """Check whether a source identifier is configured."""
        return any(source.url == source_id for source in self.sources)

    def resolve(self, source_id: str, property_name: str, default: Any = None) -> Any:
        """
        Look up a per-source property.

        Args:
            source_id: Source identifier (calendar url)
            property_name: camelCase or snake_case property name
            default: Value returned when no source defines the property

        Returns:
            The first matching source's value, or default
        """
        attribute = SourceConfig.attribute_for(property_name)
        if attribute is None:
            logger.debug(f"Unknown source property requested: {property_name}")
            return default

        for source in self.sources:
            if source.url != source_id:
                continue
            value = getattr(source, attribute)
            if value is not None:
                return value

        return default

    def resolve_as_array(self, source_id: str, property_name: str, default: Any = None) -> List[Any]:
        """
        Look up a property and normalize it to a list.

        Symbol-family values are prefixed with the source's symbol class
        name before normalization.

        Args:
            source_id: Source identifier
            property_name: Property name
            default: Fallback value

        Returns:
            List of values
        """
        value = self.resolve(source_id, property_name, default)

        if SourceConfig.attribute_for(property_name) in SYMBOL_PROPERTIES:
            class_name = self.symbol_class_name_for(source_id)
            if isinstance(value, list):
                value = [f"{class_name}{symbol}" for symbol in value]
            else:
                value = f"{class_name}{value}"

        if not isinstance(value, list):
            value = [value]
        return value

    def has_property(self, source_id: str, property_name: str) -> bool:
        """Check whether a source defines a property with a truthy value."""
        return bool(self.resolve(source_id, property_name, None))

    def symbol_class_name_for(self, source_id: str) -> str:
        return self.resolve(
            source_id, 'symbolClassName', self.config.default_symbol_class_name
        )

    def symbols_for(self, source_id: str) -> Any:
        return self.resolve(source_id, 'symbol', self.config.default_symbol)

    def color_for(self, source_id: str) -> str:
        return self.resolve(source_id, 'color', self.config.default_color)

    def name_for(self, source_id: str) -> str:
        return self.resolve(source_id, 'name', '')

    def title_class_for(self, source_id: str) -> str:
        return self.resolve(source_id, 'titleClass', '')

    def count_title_for(self, source_id: str) -> str:
        return self.resolve(
            source_id, 'repeatingCountTitle', self.config.default_repeating_count_title
        )

    def maximum_entries_for(self, source_id: str) -> int:
        return self.resolve(source_id, 'maximumEntries', self.config.maximum_entries)

    def past_days_for(self, source_id: str) -> int:
        return self.resolve(source_id, 'pastDaysCount', self.config.past_days_count)

    def fetch_request_for(self, source_id: str) -> Optional[Dict[str, Any]]:
        """
        Build the registration payload an ingestion service needs to fetch a
        source.

        Per-source limits fall back to the global ones when unset or falsy.

        Args:
            source_id: Source identifier

        Returns:
            Registration payload, or None if the source is not configured
        """
        source = next(
            (source for source in self.sources if source.url == source_id), None
        )
        if source is None:
            return None

        return {
            'url': source.url,
            'excludedEvents': source.excluded_events or self.config.excluded_events,
            'maximumEntries': self.maximum_entries_for(source_id) or self.config.maximum_entries,
            'maximumNumberOfDays': (
                source.maximum_number_of_days or self.config.maximum_number_of_days
            ),
            'pastDaysCount': self.past_days_for(source_id) or self.config.past_days_count,
            'symbolClass': source.symbol_class or '',
            'titleClass': self.title_class_for(source_id) or '',
            'timeClass': source.time_class or '',
            'auth': source.auth,
        }
