"""DynamoDB ledger store for booking records."""
import logging
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import (
    DEFAULT_SCHEMA,
    BookingRecord,
    ConfigurationError,
    LedgerSchema,
    ReconciliationPlan,
    StoredBooking,
    SyncResult,
)
from storage.base import LedgerStore

logger = logging.getLogger(__name__)


class DynamoDBLedgerStore(LedgerStore):
    """Booking ledger in a DynamoDB table keyed by uid."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str, schema: LedgerSchema = DEFAULT_SCHEMA):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        super().__init__(schema)
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBLedgerStore for table: {table_name}")

    def load_existing(self) -> Dict[str, StoredBooking]:
        """
        Retrieve all bookings using a paginated Scan.

        Returns:
            Dictionary mapping uid to StoredBooking; the location is the uid

        Raises:
            ConfigurationError: If the table does not exist
        """
        logger.info("Scanning DynamoDB table for all bookings")
        bookings = {}

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ResourceNotFoundException':
                raise ConfigurationError(f"DynamoDB table not found: {self.table_name}") from e
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        for item in items:
            record = self._item_to_record(item)
            if record:
                bookings[record.uid] = StoredBooking(record=record, location=record.uid)

        logger.info(f"Retrieved {len(bookings)} bookings from DynamoDB")
        return bookings

    def apply_plan(self, plan: ReconciliationPlan) -> SyncResult:
        errors: List[str] = []

        inserted = self.batch_write_records(plan.to_insert, errors)
        updated = self.batch_write_records([update.record for update in plan.to_update], errors)

        marked = 0
        for mark in plan.to_mark_absent:
            try:
                self.table.update_item(
                    Key={'uid': mark.location},
                    UpdateExpression='SET #status = :status, last_updated = :last_updated',
                    ConditionExpression='attribute_exists(uid)',
                    ExpressionAttributeNames={'#status': 'status'},
                    ExpressionAttributeValues={
                        ':status': mark.status,
                        ':last_updated': mark.last_updated
                    }
                )
                marked += 1
            except ClientError as e:
                msg = f"Error marking booking {mark.uid} absent: {e}"
                logger.error(msg)
                errors.append(msg)

        logger.info(
            f"Ledger write complete: {inserted} inserted, {updated} updated, "
            f"{marked} marked absent"
        )
        return SyncResult(inserted=inserted, updated=updated, marked_absent=marked, errors=errors)

    def batch_write_records(self, records: List[BookingRecord], errors: List[str]) -> int:
        """
        Write records in batches of 25 items.

        Args:
            records: BookingRecord objects to put
            errors: List collecting messages of failed batches

        Returns:
            Count of successfully written records
        """
        if not records:
            return 0

        logger.info(f"Writing {len(records)} bookings to DynamoDB")
        success_count = 0

        for i in range(0, len(records), self.BATCH_SIZE):
            batch = records[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer(overwrite_by_pkeys=['uid']) as writer:
                    for record in batch:
                        writer.put_item(Item=self._record_to_item(record))
                success_count += len(batch)

            except ClientError as e:
                msg = f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                logger.error(msg)
                errors.append(msg)
                continue

        return success_count

    def _item_to_record(self, item: dict) -> Optional[BookingRecord]:
        """
        Convert a DynamoDB item to a BookingRecord.

        Returns:
            BookingRecord or None for items without a usable uid
        """
        uid = str(item.get('uid', '')).strip()
        if not uid:
            logger.warning(f"Skipping DynamoDB item with missing uid: {item}")
            return None

        try:
            nights = int(item.get('nights', 0))
        except (TypeError, ValueError):
            nights = 0

        return BookingRecord(
            uid=uid,
            property_name=str(item.get('property_name', '')),
            status=str(item.get('status', '')),
            guest_info=str(item.get('guest_info', '')),
            check_in=str(item.get('check_in', '')),
            check_out=str(item.get('check_out', '')),
            nights=nights,
            last_updated=str(item.get('last_updated', ''))
        )

    def _record_to_item(self, record: BookingRecord) -> dict:
        return {
            'uid': record.uid,
            'property_name': record.property_name,
            'status': record.status,
            'guest_info': record.guest_info,
            'check_in': record.check_in,
            'check_out': record.check_out,
            'nights': record.nights,
            'last_updated': record.last_updated
        }
