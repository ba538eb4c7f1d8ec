from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import firestore

from visual_aids.services.visual_aids import VisualAidService
from visual_aids.storage.contracts import SERVER_TIMESTAMP, MalformedRecordError, OrderBy, RemoteUnavailableError
from visual_aids.storage.firestore_visual_aids_repo import FirestoreVisualAidRepository, UnconfiguredVisualAidRepository

DOCUMENT = {
  "teacherId": "teacher-a",
  "subject": "math",
  "topic": "fractions",
  "visualContent": "pie chart",
  "explanation": "halves",
  "language": "en",
  "gradeLevel": "4",
  "aiGenerated": True,
  "usageCount": 3,
  "ratingCount": 1,
  "averageRating": 4.0,
  "effectiveness": 4,
  "isPublic": True,
  "tags": ["math", "fractions"],
}


@pytest.fixture(autouse=True)
def mock_firestore_transactional():
  # Run the transactional body once, without retries.
  with patch("firebase_admin.firestore.transactional") as mock:
    mock.side_effect = lambda func: func
    yield mock


@pytest.fixture
def mock_client():
  return MagicMock()


@pytest.fixture
def repo(mock_client):
  return FirestoreVisualAidRepository(mock_client, collection="visual_aids")


def _snapshot(doc_id, data, exists=True):
  snapshot = MagicMock()
  snapshot.id = doc_id
  snapshot.exists = exists
  snapshot.to_dict.return_value = data
  return snapshot


@pytest.mark.anyio
async def test_create_translates_server_timestamp(repo, mock_client):
  mock_client.collection.return_value.add.return_value = (None, MagicMock(id="doc-9"))

  doc_id = await repo.create({"topic": "fractions", "generatedAt": SERVER_TIMESTAMP})

  assert doc_id == "doc-9"
  mock_client.collection.assert_called_with("visual_aids")
  payload = mock_client.collection.return_value.add.call_args.args[0]
  assert payload["topic"] == "fractions"
  assert payload["generatedAt"] is firestore.SERVER_TIMESTAMP


@pytest.mark.anyio
async def test_create_sdk_failure_becomes_remote_unavailable(repo, mock_client):
  mock_client.collection.return_value.add.side_effect = RuntimeError("deadline exceeded")

  with pytest.raises(RemoteUnavailableError) as excinfo:
    await repo.create({"topic": "fractions"})

  assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.anyio
async def test_get_returns_record_or_none(repo, mock_client):
  doc_ref = mock_client.collection.return_value.document.return_value
  doc_ref.get.return_value = _snapshot("doc-1", DOCUMENT)

  record = await repo.get("doc-1")
  assert record.id == "doc-1"
  assert record.usage_count == 3
  assert record.tags == ["math", "fractions"]

  doc_ref.get.return_value = _snapshot("doc-2", None, exists=False)
  assert await repo.get("doc-2") is None


@pytest.mark.anyio
async def test_get_malformed_document_raises(repo, mock_client):
  doc_ref = mock_client.collection.return_value.document.return_value
  doc_ref.get.return_value = _snapshot("doc-1", {"topic": 5})

  with pytest.raises(MalformedRecordError):
    await repo.get("doc-1")


@pytest.mark.anyio
async def test_invalid_document_id_becomes_remote_unavailable(repo, mock_client):
  mock_client.collection.return_value.document.side_effect = ValueError("A document must have an even number of path elements")

  with pytest.raises(RemoteUnavailableError):
    await repo.delete("")


@pytest.mark.anyio
async def test_query_applies_filters_order_and_limit_and_skips_malformed(repo, mock_client):
  query = mock_client.collection.return_value
  query.where.return_value = query
  query.order_by.return_value = query
  query.limit.return_value = query
  query.stream.return_value = [_snapshot("good", DOCUMENT), _snapshot("bad", {"subject": "math"})]

  records = await repo.query(filters={"subject": "math", "isPublic": True}, order_by=(OrderBy("usageCount", "desc"), OrderBy("averageRating", "asc")), limit=20)

  assert [record.id for record in records] == ["good"]
  filters = [call.kwargs["filter"] for call in query.where.call_args_list]
  assert [(f.field_path, f.op_string, f.value) for f in filters] == [("subject", "==", "math"), ("isPublic", "==", True)]
  assert query.order_by.call_args_list[0].args == ("usageCount",)
  assert query.order_by.call_args_list[0].kwargs == {"direction": firestore.Query.DESCENDING}
  assert query.order_by.call_args_list[1].kwargs == {"direction": firestore.Query.ASCENDING}
  query.limit.assert_called_once_with(20)


@pytest.mark.anyio
async def test_query_without_limit_does_not_limit(repo, mock_client):
  query = mock_client.collection.return_value
  query.where.return_value = query
  query.stream.return_value = []

  assert await repo.query(filters={"isPublic": True}) == []
  query.limit.assert_not_called()
  query.order_by.assert_not_called()


@pytest.mark.anyio
async def test_increment_uses_server_side_increment(repo, mock_client):
  doc_ref = mock_client.collection.return_value.document.return_value

  await repo.increment("doc-1", "usageCount", 1)

  payload = doc_ref.update.call_args.args[0]
  assert isinstance(payload["usageCount"], firestore.Increment)


@pytest.mark.anyio
async def test_update_in_transaction_writes_computed_fields(repo, mock_client):
  doc_ref = mock_client.collection.return_value.document.return_value
  doc_ref.get.return_value = _snapshot("doc-1", DOCUMENT)
  mock_transaction = MagicMock()
  mock_client.transaction.return_value = mock_transaction

  fields = await repo.update_in_transaction("doc-1", lambda record: {"ratingCount": record.rating_count + 1})

  assert fields == {"ratingCount": 2}
  doc_ref.get.assert_called_once_with(transaction=mock_transaction)
  mock_transaction.update.assert_called_once_with(doc_ref, {"ratingCount": 2})


@pytest.mark.anyio
async def test_update_in_transaction_missing_document_returns_none(repo, mock_client):
  doc_ref = mock_client.collection.return_value.document.return_value
  doc_ref.get.return_value = _snapshot("doc-1", None, exists=False)
  mock_transaction = MagicMock()
  mock_client.transaction.return_value = mock_transaction
  compute = MagicMock()

  assert await repo.update_in_transaction("doc-1", compute) is None
  compute.assert_not_called()
  mock_transaction.update.assert_not_called()


@pytest.mark.anyio
async def test_update_translates_sentinel(repo, mock_client):
  doc_ref = mock_client.collection.return_value.document.return_value

  await repo.update("doc-1", {"isPublic": True, "sharedAt": SERVER_TIMESTAMP})

  doc_ref.update.assert_called_once_with({"isPublic": True, "sharedAt": firestore.SERVER_TIMESTAMP})


@pytest.mark.anyio
async def test_unconfigured_repository_fails_every_call():
  repo = UnconfiguredVisualAidRepository()

  with pytest.raises(RemoteUnavailableError):
    await repo.create({})
  with pytest.raises(RemoteUnavailableError):
    await repo.query(filters={})
  with pytest.raises(RemoteUnavailableError):
    await repo.update_in_transaction("doc-1", lambda record: {})


@pytest.mark.anyio
async def test_analytics_totals_exclude_malformed_documents(repo, mock_client, local_store):
  query = mock_client.collection.return_value
  query.where.return_value = query
  query.stream.return_value = [_snapshot("good", DOCUMENT), _snapshot("bad", {"teacherId": "teacher-a", "usageCount": 40})]
  service = VisualAidService(remote=repo, local_store=local_store, cache_box="cache", queue_box="queue")

  analytics = await service.get_visual_aid_analytics("teacher-a")

  assert analytics.total_visual_aids == 1
  assert analytics.total_usage == 3
  assert analytics.subject_distribution == {"math": 1}
