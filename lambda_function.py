"""AWS Lambda handler for the calendar event list."""
import json
import logging
import os
import time
from typing import Any, Dict, Optional

from processor.broadcast import broadcast_payload, presentation_payload
from processor.config import BuildConfig, load_config_from_env
from processor.event_list_builder import EventListBuilder
from processor.property_resolver import PropertyResolver
from storage.dynamodb_manager import DynamoDBEventStore
from storage.event_store import InMemoryEventStore

# Process-wide store when no table is configured; survives warm invocations
_memory_store: Optional[InMemoryEventStore] = None


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def get_store(config: BuildConfig, table_name: Optional[str]):
    """
    Select the snapshot store.

    Args:
        config: Build configuration
        table_name: DynamoDB table name; None selects the in-memory store

    Returns:
        DynamoDBEventStore or the process-wide InMemoryEventStore
    """
    global _memory_store

    if table_name:
        return DynamoDBEventStore(table_name=table_name, config=config)
    if _memory_store is None:
        _memory_store = InMemoryEventStore(config)
    return _memory_store


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Dispatches on the 'notification' field of the payload. Scheduled
    invocations carry none and rebuild the event list.

    Args:
        event: Notification payload or EventBridge event
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    table_name = os.environ.get('TABLE_NAME') or None
    log_level = os.environ.get('LOG_LEVEL', 'INFO')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    notification = (event or {}).get('notification') or 'REFRESH'
    logger.info(
        f"Lambda execution started",
        extra={'notification': notification, 'table_name': table_name}
    )

    try:
        config = load_config_from_env()
        resolver = PropertyResolver(config)
        builder = EventListBuilder(config)
        store = get_store(config, table_name)

        if notification == 'CALENDAR_EVENTS':
            url = event.get('url')
            if not store.replace_source(url, event.get('events') or []):
                return _response(404, {
                    'message': 'Unknown calendar',
                    'url': url
                })

            body: Dict[str, Any] = {'message': 'Calendar events stored', 'url': url}
            if config.broadcast_events:
                events = builder.build(store.snapshot().events_by_source)
                body['events'] = broadcast_payload(events, resolver, config)
            return _response(200, body)

        if notification == 'CALENDAR_ERROR':
            store.record_error(event.get('error_type'))
            return _response(200, {
                'message': 'Calendar error recorded',
                'error': event.get('error_type')
            })

        if notification == 'FETCH_ERROR':
            logger.error(f"Calendar Error. Could not fetch calendar: {event.get('url')}")
            return _response(200, {'message': 'Fetch error logged'})

        if notification == 'INCORRECT_URL':
            logger.error(f"Calendar Error. Incorrect url: {event.get('url')}")
            return _response(200, {'message': 'Incorrect url logged'})

        if notification == 'ADD_CALENDARS':
            registrations = [
                resolver.fetch_request_for(source.url) for source in config.calendars
            ]
            return _response(200, {'calendars': registrations})

        if notification == 'REFRESH':
            result = builder.build_result(store.snapshot())
            duration = time.time() - start_time
            logger.info(
                f"Lambda execution completed successfully",
                extra={
                    'state': result.state.value,
                    'events': len(result.events),
                    'duration_seconds': round(duration, 2)
                }
            )
            return _response(200, {
                'state': result.state.value,
                'error': result.error,
                'events': presentation_payload(result.events, resolver, config),
                'duration_seconds': round(duration, 2)
            })

        logger.warning(f"Calendar received an unknown notification: {notification}")
        return _response(400, {
            'message': 'Unknown notification',
            'notification': notification
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Calendar event list failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
