"""
Firestore Remote Transaction Service

Transactions live at users/{user_id}/transactions/{transaction_id}.

Two clients are used:
1. firestore.AsyncClient for reads and writes (awaitable, no thread hop)
2. firestore.Client for the real-time snapshot listener, whose callbacks
   arrive on a background thread and are marshaled onto the event loop
   through ChangeFeed.publish_threadsafe()

Transient failures (unavailable, deadline exceeded, quota) are retried
with exponential backoff before surfacing as RemoteUnavailableError.
"""

from typing import Optional
from uuid import UUID

import structlog
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.oauth2 import service_account
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgersync.config import FirestoreSettings, get_settings
from ledgersync.models.sync import ChangeEvent, ChangeType
from ledgersync.models.transaction import Transaction
from ledgersync.services.remote.codec import document_to_transaction, transaction_to_document
from ledgersync.services.remote.interface import (
    ChangeFeed,
    DocumentParseError,
    ListenerError,
    RemoteServiceError,
    RemoteTransactionService,
    RemoteUnavailableError,
)


# Firestore rejects write batches larger than this
MAX_BATCH_SIZE = 500

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ResourceExhausted,
    google_exceptions.Aborted,
)

_CHANGE_TYPES = {
    "ADDED": ChangeType.ADDED,
    "MODIFIED": ChangeType.MODIFIED,
    "REMOVED": ChangeType.REMOVED,
}

remote_retry = retry(
    retry=retry_if_exception_type(RemoteUnavailableError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _translate(error: Exception, action: str) -> RemoteServiceError:
    """Map Google client errors onto the remote service error hierarchy."""
    if isinstance(error, TRANSIENT_ERRORS):
        return RemoteUnavailableError(f"Failed to {action}: {error}")
    if isinstance(error, auth_exceptions.GoogleAuthError):
        return RemoteServiceError(f"Failed to {action}: not authenticated ({error})")
    return RemoteServiceError(f"Failed to {action}: {error}")


class FirestoreTransactionService(RemoteTransactionService):
    """Firestore implementation of the remote transaction service."""

    def __init__(
        self,
        settings: Optional[FirestoreSettings] = None,
        client: Optional[firestore.AsyncClient] = None,
        listen_client: Optional[firestore.Client] = None,
    ):
        self._settings = settings or get_settings().firestore
        self._client = client
        self._listen_client = listen_client
        self._logger = structlog.get_logger(__name__)

    def _credentials(self) -> Optional[service_account.Credentials]:
        if not self._settings.credentials_path:
            return None
        try:
            return service_account.Credentials.from_service_account_file(
                self._settings.credentials_path
            )
        except FileNotFoundError:
            raise RemoteServiceError(
                f"Firestore credentials file not found: {self._settings.credentials_path}"
            )

    def _get_client(self) -> firestore.AsyncClient:
        """Get or create the async client."""
        if self._client is None:
            try:
                self._client = firestore.AsyncClient(
                    project=self._settings.project_id,
                    credentials=self._credentials(),
                )
            except auth_exceptions.GoogleAuthError as e:
                raise RemoteServiceError(f"Failed to connect to Firestore: {e}")
        return self._client

    def _get_listen_client(self) -> firestore.Client:
        """Get or create the synchronous client used for snapshot listeners."""
        if self._listen_client is None:
            try:
                self._listen_client = firestore.Client(
                    project=self._settings.project_id,
                    credentials=self._credentials(),
                )
            except auth_exceptions.GoogleAuthError as e:
                raise ListenerError(f"Failed to connect to Firestore: {e}")
        return self._listen_client

    def _transactions(self, client, user_id: str):
        return (
            client.collection(self._settings.users_collection)
            .document(user_id)
            .collection(self._settings.transactions_collection)
        )

    @remote_retry
    async def upsert(self, transaction: Transaction, user_id: str) -> None:
        """Write the full document (set, not merge) so no partial record remains."""
        try:
            document = self._transactions(self._get_client(), user_id).document(str(transaction.id))
            await document.set(transaction_to_document(transaction))
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise _translate(e, f"save transaction {str(transaction.id)[:8]}")

    @remote_retry
    async def delete(self, transaction_id: UUID, user_id: str) -> None:
        try:
            document = self._transactions(self._get_client(), user_id).document(str(transaction_id))
            await document.delete()
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise _translate(e, f"delete transaction {str(transaction_id)[:8]}")

    @remote_retry
    async def fetch_all(self, user_id: str) -> list[Transaction]:
        """Read every document, skipping the ones that fail to parse."""
        transactions = []
        try:
            query = self._transactions(self._get_client(), user_id).order_by(
                "date", direction=firestore.Query.DESCENDING
            )
            async for snapshot in query.stream():
                try:
                    transactions.append(
                        document_to_transaction(snapshot.to_dict(), snapshot.id, user_id)
                    )
                except DocumentParseError as e:
                    self._logger.warning(
                        "remote_document_skipped",
                        document_id=snapshot.id,
                        error=str(e),
                    )
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise _translate(e, "fetch transactions")

        self._logger.info("remote_transactions_fetched", user_id=user_id, count=len(transactions))
        return transactions

    async def subscribe(self, user_id: str) -> ChangeFeed:
        feed = ChangeFeed()

        def on_snapshot(documents, changes, read_time) -> None:
            events = []
            for change in changes:
                change_type = _CHANGE_TYPES.get(change.type.name)
                if change_type is None:
                    continue
                snapshot = change.document
                if change_type == ChangeType.REMOVED:
                    events.append(ChangeEvent.removed(snapshot.id))
                else:
                    events.append(ChangeEvent(
                        change_type=change_type,
                        document_id=snapshot.id,
                        data=snapshot.to_dict(),
                    ))
            feed.publish_threadsafe(events)

        try:
            query = self._transactions(self._get_listen_client(), user_id).order_by(
                "date", direction=firestore.Query.DESCENDING
            )
            watch = query.on_snapshot(on_snapshot)
        except ListenerError:
            raise
        except (
            RemoteServiceError,
            google_exceptions.GoogleAPIError,
            auth_exceptions.GoogleAuthError,
        ) as e:
            raise ListenerError(f"Failed to start change feed: {e}")

        feed.set_on_unsubscribe(watch.unsubscribe)
        self._logger.info("change_feed_subscribed", user_id=user_id)
        return feed

    @remote_retry
    async def clear_all(self, user_id: str) -> int:
        """Delete all documents in batches of at most MAX_BATCH_SIZE."""
        client = self._get_client()
        deleted = 0
        try:
            references = [
                snapshot.reference
                async for snapshot in self._transactions(client, user_id).stream()
            ]
            for start in range(0, len(references), MAX_BATCH_SIZE):
                batch = client.batch()
                for reference in references[start:start + MAX_BATCH_SIZE]:
                    batch.delete(reference)
                await batch.commit()
                deleted += len(references[start:start + MAX_BATCH_SIZE])
        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise _translate(e, "clear transactions")

        self._logger.info("remote_transactions_cleared", user_id=user_id, count=deleted)
        return deleted
