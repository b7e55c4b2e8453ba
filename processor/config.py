"""Typed configuration for calendar sources and event list builds."""
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Union

logger = logging.getLogger(__name__)

# Matches keys such as "/^Re: /i"; flags limited to g, i and m.
DELIMITED_REGEX = re.compile(r'^/(.+)/([gim]*)$', re.DOTALL)

DEFAULT_TITLE_REPLACE = {
    "De verjaardag van ": "",
    "'s birthday": "",
}

Symbol = Union[str, List[str]]


@dataclass
class SourceConfig:
    """
    Per-source override block.

    A field left as None is not defined for the source; any other value,
    falsy ones included, overrides the global default.
    """
    url: str
    symbol: Optional[Symbol] = None
    recurring_symbol: Optional[Symbol] = None
    full_day_symbol: Optional[Symbol] = None
    color: Optional[str] = None
    name: Optional[str] = None
    title_class: Optional[str] = None
    symbol_class: Optional[str] = None
    time_class: Optional[str] = None
    maximum_entries: Optional[int] = None
    maximum_number_of_days: Optional[int] = None
    past_days_count: Optional[int] = None
    repeating_count_title: Optional[str] = None
    symbol_class_name: Optional[str] = None
    excluded_events: Optional[List[Any]] = None
    auth: Optional[Dict[str, Any]] = None

    # Wire (camelCase) option key -> attribute name
    OPTION_KEYS = {
        'symbol': 'symbol',
        'recurringSymbol': 'recurring_symbol',
        'fullDaySymbol': 'full_day_symbol',
        'color': 'color',
        'name': 'name',
        'titleClass': 'title_class',
        'symbolClass': 'symbol_class',
        'timeClass': 'time_class',
        'maximumEntries': 'maximum_entries',
        'maximumNumberOfDays': 'maximum_number_of_days',
        'pastDaysCount': 'past_days_count',
        'repeatingCountTitle': 'repeating_count_title',
        'symbolClassName': 'symbol_class_name',
        'excludedEvents': 'excluded_events',
        'auth': 'auth',
    }

    @classmethod
    def attribute_for(cls, property_name: str) -> Optional[str]:
        """Map a camelCase or snake_case property name to its attribute."""
        if property_name in cls.OPTION_KEYS:
            return cls.OPTION_KEYS[property_name]
        if property_name in cls.OPTION_KEYS.values():
            return property_name
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SourceConfig':
        """
        Build a source override block from its wire form.

        Args:
            data: Mapping with a required 'url' and optional camelCase keys

        Returns:
            SourceConfig

        Raises:
            ValueError: If 'url' is missing or not a string
        """
        url = data.get('url')
        if not isinstance(url, str) or not url:
            raise ValueError(f"calendar entry without url: {dict(data)!r}")

        if url.startswith('webcal://'):
            url = 'http://' + url[len('webcal://'):]

        values = {}
        for key, attribute in cls.OPTION_KEYS.items():
            if key in data and data[key] is not None:
                values[attribute] = data[key]

        if data.get('user') and data.get('pass'):
            logger.warning(
                f"Deprecated user/pass authentication for calendar {url}; "
                f"use an auth block instead"
            )
            values['auth'] = {'user': data['user'], 'pass': data['pass']}

        return cls(url=url, **values)


@dataclass
class CustomEvent:
    """Symbol/color override applied to events whose title matches."""
    keyword: Pattern
    symbol: str = ''
    color: str = ''

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CustomEvent':
        """
        Compile a custom event rule.

        Raises:
            ValueError: If the keyword is missing or not a valid pattern
        """
        keyword = data.get('keyword')
        if not isinstance(keyword, str):
            raise ValueError(f"custom event without keyword: {dict(data)!r}")
        try:
            pattern = re.compile(keyword, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"invalid keyword pattern {keyword!r}: {e}")
        return cls(
            keyword=pattern,
            symbol=data.get('symbol') or '',
            color=data.get('color') or ''
        )


_DOLLAR_TOKEN = re.compile(r'\$(\$|&|\d{1,2})')


@dataclass(frozen=True)
class LiteralReplacement:
    """
    Replace the first occurrence of a literal substring.

    In the replacement text "$&" stands for the needle and "$$" for a
    dollar sign; group references stay as written.
    """
    needle: str
    replacement: str

    def _expand(self) -> str:
        def substitute(token) -> str:
            value = token.group(1)
            if value == '$':
                return '$'
            if value == '&':
                return self.needle
            return token.group(0)

        return _DOLLAR_TOKEN.sub(substitute, self.replacement)

    def apply(self, title: str) -> str:
        if self.needle not in title:
            return title
        return title.replace(self.needle, self._expand(), 1)


@dataclass(frozen=True)
class PatternReplacement:
    """Replace regular expression matches; all of them when global."""
    pattern: Pattern
    replacement: str
    global_match: bool = False

    def _expand(self, match) -> str:
        def substitute(token) -> str:
            value = token.group(1)
            if value == '$':
                return '$'
            if value == '&':
                return match.group(0)
            index = int(value)
            if 0 < index <= (self.pattern.groups or 0):
                return match.group(index) or ''
            return token.group(0)

        return _DOLLAR_TOKEN.sub(substitute, self.replacement)

    def apply(self, title: str) -> str:
        return self.pattern.sub(self._expand, title, count=0 if self.global_match else 1)


TitleReplacement = Union[LiteralReplacement, PatternReplacement]


def compile_title_replacement(needle: str, replacement: Any) -> TitleReplacement:
    """
    Decide whether a titleReplace key is a delimited pattern or a literal.

    Args:
        needle: Search key, either "/pattern/flags" or a plain substring
        replacement: Replacement text

    Returns:
        LiteralReplacement or PatternReplacement

    Raises:
        ValueError: If a delimited pattern does not compile
    """
    replacement = '' if replacement is None else str(replacement)
    parts = DELIMITED_REGEX.match(needle)
    if not parts:
        return LiteralReplacement(needle=needle, replacement=replacement)

    source, flags = parts.groups()
    re_flags = 0
    if 'i' in flags:
        re_flags |= re.IGNORECASE
    if 'm' in flags:
        re_flags |= re.MULTILINE
    try:
        pattern = re.compile(source, re_flags)
    except re.error as e:
        raise ValueError(f"invalid title pattern {needle!r}: {e}")
    return PatternReplacement(
        pattern=pattern,
        replacement=replacement,
        global_match='g' in flags
    )


def compile_title_replacements(mapping: Mapping[str, Any]) -> List[TitleReplacement]:
    """
    Compile a titleReplace mapping, skipping malformed rules.

    Args:
        mapping: Ordered search key -> replacement mapping

    Returns:
        Compiled rules in iteration order
    """
    rules = []
    for needle, replacement in mapping.items():
        try:
            rules.append(compile_title_replacement(needle, replacement))
        except ValueError as e:
            logger.warning(f"Skipping title replacement rule: {e}")
            continue
    return rules


def compile_custom_events(entries: List[Mapping[str, Any]]) -> List[CustomEvent]:
    rules = []
    for entry in entries:
        try:
            rules.append(CustomEvent.from_dict(entry))
        except (ValueError, AttributeError) as e:
            logger.warning(f"Skipping custom event rule: {e}")
            continue
    return rules


@dataclass
class BuildConfig:
    """Global options for event list construction and enrichment."""
    maximum_entries: int = 10
    maximum_number_of_days: int = 365
    hide_private: bool = False
    hide_ongoing: bool = False
    slice_multi_day_events: bool = False
    default_symbol: Symbol = 'calendar'
    default_symbol_class_name: str = ''
    default_color: str = '#fff'
    display_repeating_count_title: bool = False
    default_repeating_count_title: str = ''
    past_days_count: int = 0
    max_title_length: int = 25
    wrap_events: bool = False
    title_replace: List[TitleReplacement] = field(
        default_factory=lambda: compile_title_replacements(DEFAULT_TITLE_REPLACE)
    )
    custom_events: List[CustomEvent] = field(default_factory=list)
    excluded_events: List[Any] = field(default_factory=list)
    broadcast_events: bool = True
    calendars: List[SourceConfig] = field(default_factory=list)
    uniform_horizon: bool = False


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError("expected true or false")
    return value


def _as_count(value: Any) -> int:
    """Coerce to int, clamping negative values to 0."""
    if isinstance(value, bool):
        raise TypeError("expected a number")
    count = int(value)
    if count < 0:
        logger.warning(f"Clamping negative count {count} to 0")
        return 0
    return count


# Wire option key -> (attribute, coercion)
_BUILD_OPTIONS = {
    'maximumEntries': ('maximum_entries', _as_count),
    'maximumNumberOfDays': ('maximum_number_of_days', _as_count),
    'hidePrivate': ('hide_private', _as_bool),
    'hideOngoing': ('hide_ongoing', _as_bool),
    'sliceMultiDayEvents': ('slice_multi_day_events', _as_bool),
    'defaultSymbol': ('default_symbol', None),
    'defaultSymbolClassName': ('default_symbol_class_name', str),
    'defaultColor': ('default_color', str),
    'displayRepeatingCountTitle': ('display_repeating_count_title', _as_bool),
    'defaultRepeatingCountTitle': ('default_repeating_count_title', str),
    'pastDaysCount': ('past_days_count', _as_count),
    'maxTitleLength': ('max_title_length', _as_count),
    'wrapEvents': ('wrap_events', _as_bool),
    'excludedEvents': ('excluded_events', list),
    'broadcastEvents': ('broadcast_events', _as_bool),
    'uniformHorizon': ('uniform_horizon', _as_bool),
}


def load_config(data: Mapping[str, Any]) -> BuildConfig:
    """
    Build a BuildConfig from the module's camelCase option document.

    Unknown keys are ignored. Malformed calendars, title replacement rules
    and custom event rules are logged and skipped.

    Args:
        data: Option mapping

    Returns:
        BuildConfig

    Raises:
        ValueError: If data is not a mapping
    """
    if not isinstance(data, Mapping):
        raise ValueError("calendar configuration must be a JSON object")

    config = BuildConfig()

    for key, (attribute, coerce) in _BUILD_OPTIONS.items():
        if key not in data or data[key] is None:
            continue
        value = data[key]
        try:
            setattr(config, attribute, coerce(value) if coerce else value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid value for {key}: {value!r} ({e})")

    if 'titleReplace' in data:
        title_replace = data['titleReplace'] or {}
        if isinstance(title_replace, Mapping):
            config.title_replace = compile_title_replacements(title_replace)
        else:
            logger.warning("Ignoring titleReplace: expected an object")

    config.custom_events = compile_custom_events(data.get('customEvents') or [])

    calendars = []
    for entry in data.get('calendars') or []:
        try:
            calendars.append(SourceConfig.from_dict(entry))
        except (ValueError, AttributeError) as e:
            logger.warning(f"Skipping calendar configuration: {e}")
            continue
    config.calendars = calendars

    logger.info(
        f"Loaded configuration with {len(config.calendars)} calendars, "
        f"{len(config.title_replace)} title rules and "
        f"{len(config.custom_events)} custom event rules"
    )
    return config


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> BuildConfig:
    """
    Load configuration from environment variables.

    CALENDAR_CONFIG holds the JSON option document; MAXIMUM_ENTRIES and
    MAXIMUM_NUMBER_OF_DAYS override the corresponding options.

    Args:
        environ: Environment mapping (default: os.environ)

    Returns:
        BuildConfig

    Raises:
        ValueError: If CALENDAR_CONFIG is not valid JSON
    """
    environ = os.environ if environ is None else environ

    raw = environ.get('CALENDAR_CONFIG', '{}')
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"CALENDAR_CONFIG is not valid JSON: {e}")

    if isinstance(data, dict):
        if environ.get('MAXIMUM_ENTRIES'):
            data['maximumEntries'] = int(environ['MAXIMUM_ENTRIES'])
        if environ.get('MAXIMUM_NUMBER_OF_DAYS'):
            data['maximumNumberOfDays'] = int(environ['MAXIMUM_NUMBER_OF_DAYS'])

    return load_config(data)
