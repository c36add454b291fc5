"""Tests for GmailClient and FirestoreCredentialStore: Google clients are mocked."""

from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from birdwatch.core.credential_store import FirestoreCredentialStore
from birdwatch.core.errors import ProviderError
from birdwatch.core.gmail_client import GmailClient
from birdwatch.core.oauth_manager import Session

from tests.fakes import USER, make_record


def _http_error(status: int = 500) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "backend error"}}')


@pytest.fixture
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gmail(service: MagicMock) -> GmailClient:
    return GmailClient(Session(identity=USER, record=make_record(expires_in=3600)), service=service)


class TestGmailClient:
    def test_list_message_ids_keeps_provider_order(self, gmail, service) -> None:
        service.users().messages().list().execute.return_value = {
            "messages": [{"id": "new", "threadId": "t1"}, {"id": "old", "threadId": "t2"}]
        }
        assert gmail.list_message_ids() == ["new", "old"]

    def test_list_message_ids_empty_mailbox(self, gmail, service) -> None:
        service.users().messages().list().execute.return_value = {"resultSizeEstimate": 0}
        assert gmail.list_message_ids() == []

    def test_modify_labels_sends_add_label_ids(self, gmail, service) -> None:
        gmail.modify_labels("msg_1", ["STARRED"])
        service.users().messages().modify.assert_called_with(
            userId="me", id="msg_1", body={"addLabelIds": ["STARRED"]}
        )

    def test_watch_uses_topic_and_label_filter(self, gmail, service) -> None:
        gmail.watch("projects/p/topics/t", ["INBOX"])
        service.users().watch.assert_called_with(
            userId="me", body={"labelIds": ["INBOX"], "topicName": "projects/p/topics/t"}
        )

    def test_get_attachment_returns_data(self, gmail, service) -> None:
        service.users().messages().attachments().get().execute.return_value = {"size": 3, "data": "AAEC"}
        assert gmail.get_attachment("msg_1", "att_1") == "AAEC"

    def test_profile_email(self, gmail, service) -> None:
        service.users().getProfile().execute.return_value = {"emailAddress": USER, "messagesTotal": 3}
        assert gmail.get_profile_email() == USER

    def test_http_error_becomes_provider_error(self, gmail, service) -> None:
        service.users().messages().get().execute.side_effect = _http_error()
        with pytest.raises(ProviderError):
            gmail.get_message("msg_1")


class TestFirestoreCredentialStore:
    def _store(self):
        db = MagicMock()
        return FirestoreCredentialStore(project_id="demo", db=db), db

    def test_missing_document(self) -> None:
        store, db = self._store()
        db.collection().document().get.return_value = MagicMock(exists=False)
        assert store.get(USER) is None

    def test_reads_record_keyed_by_address(self) -> None:
        store, db = self._store()
        record = make_record(expires_in=3600)
        db.collection().document().get.return_value = MagicMock(exists=True, to_dict=lambda: record.to_dict())

        assert store.get(USER) == record
        db.collection.assert_called_with("oauth2Token")
        db.collection().document.assert_called_with(USER)

    def test_put_writes_provider_fields(self) -> None:
        store, db = self._store()
        record = make_record(expires_in=3600)

        store.put(record)

        db.collection().document.assert_called_with(USER)
        db.collection().document().set.assert_called_once_with(record.to_dict())

    def test_read_failure_is_provider_error(self) -> None:
        store, db = self._store()
        db.collection().document().get.side_effect = RuntimeError("unavailable")
        with pytest.raises(ProviderError):
            store.get(USER)
