import pytest
from sqlalchemy.exc import NoResultFound

from import_hub.importer.errors import InvalidTransitionError
from import_hub.importer.mapping import compute_mapping_checksum
from import_hub.importer.pipeline import ImportScope, ImportSessionService, RecordCounts, SessionFilters
from import_hub.models import db
from import_hub.models.importer.schema import ImportSessionStatus, ImportType


@pytest.fixture
def service(app):
    return ImportSessionService()


def test_create_session_snapshots_mappings(service, customer_mappings):
    import_session = service.create_session(
        scope=ImportScope(tenant_id=3, is_live=True),
        session_name="  ",
        import_type="customers",
        mappings=customer_mappings,
        source_file="/tmp/customers.csv",
    )
    db.session.commit()

    assert import_session.status is ImportSessionStatus.PENDING
    assert import_session.session_name == "Untitled import"
    assert import_session.import_type is ImportType.CUSTOMER_DATA
    assert import_session.mapping_json[0]["target_field"] == "name"
    assert import_session.processing_metadata == {
        "mapping_checksum": compute_mapping_checksum(customer_mappings),
        "source_file": "/tmp/customers.csv",
    }


def test_lookups_are_scoped_to_tenant_and_environment(service, session_factory):
    import_session = session_factory(tenant_id=1, is_live=False)

    assert service.get_session(import_session.id, ImportScope(1, False)) is import_session
    assert service.get_session(import_session.id) is import_session
    with pytest.raises(NoResultFound):
        service.get_session(import_session.id, ImportScope(2, False))
    with pytest.raises(NoResultFound):
        service.get_session(import_session.id, ImportScope(1, True))
    with pytest.raises(NoResultFound):
        service.lock_session(9999)


def test_forward_lifecycle(service, session_factory):
    import_session = session_factory()

    service.mark_staged(import_session, total_rows=4)
    assert import_session.status is ImportSessionStatus.STAGED
    assert import_session.total_records == 4
    assert import_session.staging_completed_at is not None

    service.mark_processing(import_session, batch_size=25)
    assert import_session.status is ImportSessionStatus.PROCESSING
    assert import_session.batch_size == 25
    assert import_session.processing_started_at is not None

    service.transition(import_session, ImportSessionStatus.COMPLETED)
    assert import_session.processing_completed_at is not None


@pytest.mark.parametrize(
    "current, target",
    [
        (ImportSessionStatus.PENDING, ImportSessionStatus.PROCESSING),
        (ImportSessionStatus.STAGED, ImportSessionStatus.COMPLETED),
        (ImportSessionStatus.COMPLETED, ImportSessionStatus.PROCESSING),
        (ImportSessionStatus.CANCELLED, ImportSessionStatus.STAGED),
        (ImportSessionStatus.FAILED, ImportSessionStatus.CANCELLED),
    ],
)
def test_illegal_transitions(service, session_factory, current, target):
    import_session = session_factory(status=current)

    with pytest.raises(InvalidTransitionError) as excinfo:
        service.transition(import_session, target)

    assert excinfo.value.current == current.value
    assert excinfo.value.target == target.value
    assert import_session.status is current


def test_mark_failed_never_overwrites_terminal_status(service, session_factory):
    cancelled = session_factory(status=ImportSessionStatus.CANCELLED)
    staged = session_factory(status=ImportSessionStatus.STAGED)

    assert service.mark_failed(cancelled, "late failure") is False
    assert cancelled.status is ImportSessionStatus.CANCELLED
    assert cancelled.error_summary is None

    assert service.mark_failed(staged, "boom") is True
    assert staged.status is ImportSessionStatus.FAILED
    assert staged.error_summary == "boom"


def test_cancel_records_reason(service, session_factory):
    import_session = session_factory(status=ImportSessionStatus.STAGED)

    service.cancel(import_session, reason="Wrong file")

    assert import_session.status is ImportSessionStatus.CANCELLED
    assert import_session.processing_metadata["cancel_reason"] == "Wrong file"
    assert "cancelled_at" in import_session.processing_metadata


def test_count_records_reflects_staging_rows(service, session_factory):
    import_session = session_factory(rows=3)

    counts = service.count_records(import_session.id)

    assert counts == RecordCounts(pending=3)
    assert counts.total == 3
    assert counts.processed == 0


@pytest.mark.parametrize(
    "counts, batch_failed, expected",
    [
        (RecordCounts(success=10), False, ImportSessionStatus.COMPLETED),
        (RecordCounts(success=8, failed=1, skipped=1), False, ImportSessionStatus.COMPLETED_WITH_ERRORS),
        (RecordCounts(success=4, pending=6), False, ImportSessionStatus.PROCESSING),
        (RecordCounts(success=4, pending=6), True, ImportSessionStatus.FAILED),
        (RecordCounts(success=9, duplicate=1), True, ImportSessionStatus.COMPLETED),
    ],
)
def test_complete_if_drained(service, session_factory, counts, batch_failed, expected):
    import_session = session_factory(status=ImportSessionStatus.PROCESSING)

    status = service.complete_if_drained(import_session, counts, batch_failed=batch_failed, error="engine down")

    assert status is expected
    assert import_session.processed_records == counts.processed
    assert import_session.total_records == counts.total
    if expected is ImportSessionStatus.FAILED:
        assert import_session.error_summary == "engine down"


def test_settle_keeps_terminal_status(service, session_factory):
    import_session = session_factory(status=ImportSessionStatus.CANCELLED)

    status = service.complete_if_drained(import_session, RecordCounts(success=2), batch_failed=True)

    assert status is ImportSessionStatus.CANCELLED
    assert import_session.successful_records == 2


def test_reopen_for_reprocess_only_from_completed_with_errors(service, session_factory):
    completed = session_factory(status=ImportSessionStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError):
        service.reopen_for_reprocess(completed, reset_row_ids=[1])

    partial = session_factory(status=ImportSessionStatus.COMPLETED_WITH_ERRORS)
    partial.error_summary = "2 rows failed"
    service.reopen_for_reprocess(partial, reset_row_ids=[4, 5])

    assert partial.status is ImportSessionStatus.PROCESSING
    assert partial.error_summary is None
    assert partial.processing_completed_at is None
    assert partial.processing_metadata["reprocess"] == {"staging_record_ids": [4, 5]}
    assert partial.processing_metadata["reprocess_history"][0]["rows_reset"] == 2


def test_list_sessions_filters_and_paginates(service, session_factory):
    for index in range(5):
        session_factory(session_name=f"Customers {index}", status=ImportSessionStatus.COMPLETED)
    session_factory(session_name="Schemes", import_type=ImportType.SCHEME_DATA, status=ImportSessionStatus.FAILED)
    session_factory(session_name="Other tenant", tenant_id=2)

    scope = ImportScope(1, False)
    everything, total = service.list_sessions(scope, SessionFilters(page=1, page_size=4))
    assert total == 6
    assert len(everything) == 4

    second_page, _ = service.list_sessions(scope, SessionFilters(page=2, page_size=4))
    assert len(second_page) == 2

    failed, failed_total = service.list_sessions(
        scope, SessionFilters.coerce(statuses=["FAILED"], import_types=["schemes"])
    )
    assert failed_total == 1
    assert failed[0].session_name == "Schemes"


def test_session_filters_coerce():
    filters = SessionFilters.coerce(page="0", page_size="1000", statuses=["processing", ""], max_page_size=100)

    assert filters.page == 1
    assert filters.page_size == 100
    assert filters.statuses == (ImportSessionStatus.PROCESSING,)

    with pytest.raises(ValueError, match="Unsupported status filter 'paused'"):
        SessionFilters.coerce(statuses=["paused"])
