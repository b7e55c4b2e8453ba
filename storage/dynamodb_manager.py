"""DynamoDB-backed store for the per-source raw event map."""
import json
import logging
import time
import zlib
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from processor.config import BuildConfig
from processor.models import CalendarSnapshot

logger = logging.getLogger(__name__)


class DynamoDBEventStore:
    """
    Store keeping one item per calendar source.

    Each source item holds the whole raw event list, so a write is a single
    put_item that replaces the previous list atomically. A status item
    tracks whether any data or error has been received.
    """

    STATUS_KEY = '#status'

    # DynamoDB items are capped at 400 KB; larger lists are stored compressed
    COMPRESS_THRESHOLD = 256 * 1024

    def __init__(self, table_name: str, config: BuildConfig):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table (hash key: source_id)
            config: Build configuration listing the known sources
        """
        self.table_name = table_name
        self.known_sources = {source.url for source in config.calendars}
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def snapshot(self) -> CalendarSnapshot:
        """
        Read all source items using Scan operations.

        Returns:
            CalendarSnapshot of the stored events and status

        Raises:
            ClientError: If the scan fails
        """
        try:
            response = self.table.scan()
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        events_by_source = {}
        loaded = False
        error = None

        for item in items:
            source_id = item.get('source_id')
            if source_id == self.STATUS_KEY:
                loaded = bool(item.get('loaded', False))
                error = item.get('error') or None
                continue

            records = self._item_to_records(item)
            if records is not None:
                events_by_source[source_id] = records

        logger.info(f"Retrieved events for {len(events_by_source)} sources from DynamoDB")
        return CalendarSnapshot(
            events_by_source=events_by_source,
            loaded=loaded or bool(events_by_source),
            error=error
        )

    def replace_source(self, source_id: str, records: Iterable[Mapping[str, Any]]) -> bool:
        """
        Replace all raw events of a source.

        Args:
            source_id: Source identifier
            records: Raw event records

        Returns:
            True if stored, False if the source is not configured

        Raises:
            ClientError: If the write fails
        """
        if source_id not in self.known_sources:
            logger.warning(f"Ignoring events for unconfigured source: {source_id}")
            return False

        records = list(records)
        item = self._records_to_item(source_id, records)
        try:
            self.table.put_item(Item=item)
            self._write_status(error=None)
        except ClientError as e:
            logger.error(
                f"Error writing {len(records)} events for {source_id} "
                f"({self._payload_size(item)} bytes): {e}"
            )
            raise

        logger.info(f"Stored {len(records)} events for {source_id}")
        return True

    def record_error(self, error_type: Optional[str]) -> None:
        """
        Record an ingestion failure; kept until fresh data arrives.

        Raises:
            ClientError: If the write fails
        """
        error = error_type or 'UNKNOWN_ERROR'
        try:
            self._write_status(error=error)
        except ClientError as e:
            logger.error(f"Error recording calendar error: {e}")
            raise
        logger.error(f"Calendar ingestion error recorded: {error}")

    def _write_status(self, error: Optional[str]) -> None:
        item: Dict[str, Any] = {
            'source_id': self.STATUS_KEY,
            'loaded': True,
            'updated_at': int(time.time())
        }
        if error:
            item['error'] = error
        self.table.put_item(Item=item)

    def _records_to_item(self, source_id: str, records: list) -> Dict[str, Any]:
        """
        Convert raw records to a DynamoDB item.

        Event lists above COMPRESS_THRESHOLD bytes of JSON are stored
        zlib-compressed in the events_gz binary attribute.

        Args:
            source_id: Source identifier
            records: Raw event records

        Returns:
            Item dictionary
        """
        data = json.dumps(records)
        size = len(data.encode('utf-8'))
        item: Dict[str, Any] = {
            'source_id': source_id,
            'updated_at': int(time.time())
        }

        if size > self.COMPRESS_THRESHOLD:
            item['events_gz'] = zlib.compress(data.encode('utf-8'))
            logger.warning(
                f"Compressed {size} bytes of events for {source_id} "
                f"to {len(item['events_gz'])} bytes"
            )
        else:
            item['events'] = data
        return item

    @staticmethod
    def _payload_size(item: Dict[str, Any]) -> int:
        if 'events_gz' in item:
            return len(item['events_gz'])
        return len(item.get('events', '').encode('utf-8'))

    def _item_to_records(self, item: dict) -> Optional[Tuple[Dict[str, Any], ...]]:
        """
        Decode the event list of a source item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Tuple of raw records, or None if the item is unreadable
        """
        try:
            if 'events_gz' in item:
                # boto3 returns binary attributes wrapped in Binary
                compressed = getattr(item['events_gz'], 'value', item['events_gz'])
                data = zlib.decompress(bytes(compressed)).decode('utf-8')
            else:
                data = item['events']
            records = json.loads(data)
            if not isinstance(records, list):
                raise ValueError("events attribute is not a list")
            return tuple(records)
        except (KeyError, ValueError, TypeError, zlib.error) as e:
            logger.warning(
                f"Failed to decode events for {item.get('source_id')}: {e}"
            )
            return None
