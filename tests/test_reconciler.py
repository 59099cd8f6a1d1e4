"""Unit tests for batch commits and result reconciliation."""

import pytest

from conftest import FakeCommitter
from seedloader.errors import CommitError, ConfigurationError, TransportError
from seedloader.models.mapping import CommitApi, OperationType, StrategySpec
from seedloader.models.record import CommitResponse, CommitRow
from seedloader.services.reconciler import NO_ID_MESSAGE, NO_RESULT_MESSAGE, BatchCommitReconciler

UPSERT = StrategySpec(operation=OperationType.UPSERT, external_id_field="ExternalId", batch_size=2)


def _records(n: int):
    return [{"ExternalId": f"k{i}", "Name": f"N{i}"} for i in range(n)]


def test_every_submitted_record_is_accounted_for() -> None:
    """created + updated + failures == submitted for every batch."""
    def respond(entity_type, batch, strategy):
        # Nothing reported for index 3
        return CommitResponse(rows=[
            CommitRow(success=True, id="001a", created=True, index=0),
            CommitRow(success=False, index=1, errors=["DUPLICATE_VALUE: dup"]),
            CommitRow(success=True, id=None, index=2),
        ])

    strategy = StrategySpec(batch_size=4)
    result = BatchCommitReconciler(FakeCommitter(respond=respond)).commit(
        "Account", _records(4), strategy, "ExternalId"
    )

    assert len(result.created) + len(result.updated) + len(result.failures) == 4
    assert [o.business_key for o in result.created] == ["k0"]
    messages = {f.business_key: f.messages for f in result.failures}
    assert messages["k1"] == ["DUPLICATE_VALUE: dup"]
    assert messages["k2"] == [NO_ID_MESSAGE]
    assert messages["k3"] == [NO_RESULT_MESSAGE]


def test_batches_are_sequential_and_sized() -> None:
    """Records are committed in batches of at most batch_size."""
    committer = FakeCommitter()
    result = BatchCommitReconciler(committer).commit("Account", _records(5), UPSERT, "ExternalId")

    assert [len(c["batch"]) for c in committer.calls] == [2, 2, 1]
    assert result.ok_count == 5
    assert [o.index for o in result.created] == [0, 1, 2, 3, 4]


def test_upsert_results_are_matched_by_external_id_when_reordered() -> None:
    """Reversed platform answers still land on the right records."""
    def respond(entity_type, batch, strategy):
        rows = [
            CommitRow(success=True, id=f"id-{r['ExternalId']}", created=(i == 0), external_id=r["ExternalId"])
            for i, r in enumerate(batch)
        ]
        return CommitResponse(rows=list(reversed(rows)))

    result = BatchCommitReconciler(FakeCommitter(respond=respond)).commit(
        "Account", _records(2), UPSERT, "ExternalId"
    )

    assert result.identifier_map == {"k0": "id-k0", "k1": "id-k1"}
    assert [o.business_key for o in result.created] == ["k0"]
    assert [o.business_key for o in result.updated] == ["k1"]


def test_insert_marks_everything_created_and_update_everything_updated() -> None:
    """Only upserts use the platform's created flag."""
    records = _records(2)
    inserted = BatchCommitReconciler(FakeCommitter()).commit(
        "Account", records, StrategySpec(operation=OperationType.INSERT), "ExternalId"
    )
    updated = BatchCommitReconciler(FakeCommitter()).commit(
        "Account", records, StrategySpec(operation=OperationType.UPDATE), "ExternalId"
    )

    assert (len(inserted.created), len(inserted.updated)) == (2, 0)
    assert (len(updated.created), len(updated.updated)) == (0, 2)


def test_unplaceable_and_duplicate_rows_are_ignored() -> None:
    """Rows for unknown records or already-placed records do not count twice."""
    def respond(entity_type, batch, strategy):
        return CommitResponse(rows=[
            CommitRow(success=True, id="a", index=0),
            CommitRow(success=True, id="b", index=0),
            CommitRow(success=True, id="c", index=7),
            CommitRow(success=True, id="d", index=-1),
        ])

    result = BatchCommitReconciler(FakeCommitter(respond=respond)).commit(
        "Account", _records(2), StrategySpec(), "ExternalId"
    )

    assert result.identifier_map == {"k0": "a"}
    assert [f.business_key for f in result.failures] == ["k1"]


def test_commit_error_fails_the_whole_batch() -> None:
    """A rejected batch marks every record failed and carries on."""
    calls = []

    def respond(entity_type, batch, strategy):
        calls.append(len(batch))
        if len(calls) == 1:
            raise CommitError("rejected", errors=["INVALID_FIELD: bad"])
        return CommitResponse(rows=[CommitRow(success=True, id="x1", index=0, external_id="k2")])

    result = BatchCommitReconciler(FakeCommitter(respond=respond)).commit(
        "Account", _records(3), UPSERT, "ExternalId"
    )

    assert calls == [2, 1]
    assert [f.messages for f in result.failures] == [["INVALID_FIELD: bad"], ["INVALID_FIELD: bad"]]
    assert result.identifier_map == {"k2": "x1"}


def test_unexpected_exception_becomes_transport_error() -> None:
    """Errors outside the loader's hierarchy abort as TransportError."""
    def respond(entity_type, batch, strategy):
        raise RuntimeError("socket closed")

    with pytest.raises(TransportError):
        BatchCommitReconciler(FakeCommitter(respond=respond)).commit(
            "Account", _records(1), StrategySpec(), "ExternalId"
        )


def test_wrong_response_type_is_a_transport_error() -> None:
    """A collaborator must answer with a CommitResponse."""
    with pytest.raises(TransportError):
        BatchCommitReconciler(FakeCommitter(respond=lambda *a: [])).commit(
            "Account", _records(1), StrategySpec(), "ExternalId"
        )


def test_upsert_without_external_id_field_is_rejected() -> None:
    """Upserts need strategy.externalIdField before anything is sent."""
    committer = FakeCommitter()

    with pytest.raises(ConfigurationError):
        BatchCommitReconciler(committer).commit(
            "Account", _records(1), StrategySpec(operation=OperationType.UPSERT, api=CommitApi.BULK), "ExternalId"
        )

    assert committer.calls == []
