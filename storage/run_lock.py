"""Run lock held as a lease item in the events table."""
import logging
import time
import uuid
from typing import Callable, Optional

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from storage.dynamodb_manager import LOCK_PREFIX, _is_conditional_failure

DEFAULT_LEASE_SECONDS = 900


class DynamoDBRunLock:
    """
    Lease lock shared by every process that writes to the events table.

    The lease is one item keyed ``lock#<name>`` that carries a random owner
    token and an epoch expiry. Acquiring is a conditional put that succeeds
    when no lease exists or the current one has expired, so a holder that
    dies without releasing blocks others for at most ``lease_seconds``.
    Only the owner that wrote the lease can delete it.
    """

    def __init__(
        self,
        table,
        name: str = 'scrape-run',
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the lease lock.

        Args:
            table: boto3 DynamoDB Table resource for the events table
            name: Lock name; processes sharing a name exclude each other
            lease_seconds: Lifetime of a lease that is never released
            clock: Callable returning epoch seconds
            logger: Logger to use (default: module logger)
        """
        self.table = table
        self.key = f"{LOCK_PREFIX}{name}"
        self.lease_seconds = lease_seconds
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._token = None

    def acquire(self) -> bool:
        """
        Try to take the lease without waiting.

        Returns:
            True if the lease is now held by this instance
        """
        now = int(self.clock())
        token = str(uuid.uuid4())
        try:
            self.table.put_item(
                Item={
                    'event_id': self.key,
                    'owner': token,
                    'expires_at': now + self.lease_seconds
                },
                ConditionExpression=(
                    Attr('event_id').not_exists() | Attr('expires_at').lt(now)
                )
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                self.logger.info(f"Lease {self.key} is held by another run")
                return False
            raise

        self._token = token
        self.logger.debug(f"Acquired lease {self.key}", extra={'expires_at': now + self.lease_seconds})
        return True

    def release(self) -> None:
        """Delete the lease if this instance still owns it."""
        token, self._token = self._token, None
        if token is None:
            return

        try:
            self.table.delete_item(
                Key={'event_id': self.key},
                ConditionExpression=Attr('owner').eq(token)
            )
        except ClientError as e:
            if not _is_conditional_failure(e):
                raise
            self.logger.warning(f"Lease {self.key} expired and was taken over before release")
