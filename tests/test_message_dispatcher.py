import pytest
from conftest import document_event_data
from firebase_admin import exceptions as firebase_exceptions

from notification_dispatch.config import settings
from notification_dispatch.events import DocumentChange
from notification_dispatch.message_dispatcher import MessageDispatcher


@pytest.fixture
def dispatcher(users, notifications, reconciler):
    return MessageDispatcher(users, notifications, reconciler)


def message_change(content="hello", from_id="u1", to_id="u2", event_id="evt-1"):
    data = document_event_data("messages/m1", after={"fromId": from_id, "toId": to_id, "content": content})
    return DocumentChange.from_event_data(data, event_id=event_id, path_template=settings.message_document_path)


def test_long_message_to_two_devices(add_user, dispatcher, firebase_client, firestore_db):
    """A 150 character message reaches both devices and is stored truncated."""
    add_user("u1", username="alice")
    add_user("u2", username="bob", tokens=["t0", "t1"])

    report = dispatcher.on_message_created(message_change(content="m" * 150))

    assert len(firebase_client.sent) == 1
    tokens, payload = firebase_client.sent[0]
    assert tokens == ["t0", "t1"]
    assert payload.title == "New message from alice"
    assert payload.body == "m" * 97 + "..."
    assert report.success_count == 2
    assert firestore_db.data(settings.users_collection, "u2")["deviceTokens"] == ["t0", "t1"]

    records = firestore_db.documents(settings.notifications_collection)
    assert len(records) == 1
    record = records["evt-1_u2"]
    assert record["userID"] == "u2"
    assert record["message"] == "m" * 97 + "..."


def test_recipient_without_tokens(add_user, dispatcher, firebase_client, firestore_db):
    """No push is attempted, the in-app notification is still recorded."""
    add_user("u1")
    add_user("u2", tokens=[])

    assert dispatcher.on_message_created(message_change()) is None

    assert firebase_client.sent == []
    assert len(firestore_db.documents(settings.notifications_collection)) == 1


def test_invalid_first_token_is_pruned(add_user, dispatcher, firebase_client, firestore_db):
    add_user("u1")
    add_user("u2", tokens=["stale", "fresh"])
    firebase_client.failures["stale"] = firebase_exceptions.InvalidArgumentError("The registration token is not valid")

    dispatcher.on_message_created(message_change())

    assert firestore_db.data(settings.users_collection, "u2")["deviceTokens"] == ["fresh"]


def test_missing_recipient_aborts(add_user, dispatcher, firebase_client, firestore_db):
    add_user("u1")

    assert dispatcher.on_message_created(message_change(to_id="ghost")) is None

    assert firebase_client.sent == []
    assert firestore_db.documents(settings.notifications_collection) == {}


def test_missing_sender_aborts(add_user, dispatcher, firebase_client, firestore_db):
    add_user("u2", tokens=["t0"])

    assert dispatcher.on_message_created(message_change(from_id="ghost")) is None

    assert firebase_client.sent == []
    assert firestore_db.documents(settings.notifications_collection) == {}


def test_empty_snapshot_aborts(dispatcher, firestore_db):
    change = DocumentChange.from_event_data({}, event_id="evt-1")

    assert dispatcher.on_message_created(change) is None
    assert firestore_db.reads == []


def test_malformed_message_aborts(dispatcher, firestore_db):
    data = document_event_data("messages/m1", after={"content": "no recipient"})
    change = DocumentChange.from_event_data(data, event_id="evt-1")

    assert dispatcher.on_message_created(change) is None
    assert firestore_db.reads == []


def test_empty_content_gives_empty_body(add_user, dispatcher, firebase_client):
    add_user("u1")
    add_user("u2", tokens=["t0"])

    dispatcher.on_message_created(message_change(content=""))

    assert firebase_client.sent[0][1].body == ""


def test_redelivered_event_sends_once(add_user, dispatcher, firebase_client, firestore_db):
    add_user("u1")
    add_user("u2", tokens=["t0"])

    dispatcher.on_message_created(message_change(event_id="evt-7"))
    assert dispatcher.on_message_created(message_change(event_id="evt-7")) is None

    assert len(firebase_client.sent) == 1
    assert len(firestore_db.documents(settings.notifications_collection)) == 1


def test_empty_stored_token_is_pruned(add_user, dispatcher, firebase_client, firestore_db):
    """A blank token in the user record does not stop delivery to the others."""
    add_user("u1")
    add_user("u2", tokens=["", "t1"])

    report = dispatcher.on_message_created(message_change())

    assert firebase_client.sent[0][0] == ["t1"]
    assert report.success_count == 1
    assert firestore_db.data(settings.users_collection, "u2")["deviceTokens"] == ["t1"]
