import pytest

from assessment_engine.components.attempts.errors import (
    ConstraintViolationError,
    MaxAttemptsExceededError,
    NotNullViolationError,
    PersistenceError,
    UniqueViolationError,
    classify_integrity_error,
    is_max_attempts_error,
)
from assessment_engine.components.attempts.fallback import (
    AdoptInProgress,
    Fail,
    Ok,
    OpenContext,
    Retry,
    is_local_attempt_id,
    local_attempt_id,
)
from assessment_engine.components.attempts.repository import deserialize_answers
from assessment_engine.components.attempts.service import AttemptLifecycleManager
from assessment_engine.models.attempt import AttemptStatus


STUDENT = "student-1"
ASSESSMENT = "assessment-1"


@pytest.mark.asyncio
async def test_primary_start_success(fake_store):
    handle = await AttemptLifecycleManager(fake_store).open(STUDENT, ASSESSMENT)
    assert handle.durable is True
    assert handle.strategy == "primary"
    assert handle.attempt_id in fake_store.rows
    assert fake_store.calls == {"start_attempt": 1}


@pytest.mark.asyncio
async def test_adopts_in_progress_attempt_without_duplicate_row(store_factory):
    store = store_factory(failures={"start_attempt": PersistenceError("rpc missing")})
    store.seed(STUDENT, ASSESSMENT, status=AttemptStatus.COMPLETED, attempt_id="old")
    existing = store.seed(STUDENT, ASSESSMENT, attempt_id="current")

    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)

    assert handle.attempt_id == existing
    assert handle.strategy == "adopt_in_progress"
    assert store.calls.get("insert_attempt", 0) == 0
    assert len(store.rows) == 2


@pytest.mark.asyncio
async def test_max_attempts_adopts_latest_of_any_status(store_factory):
    store = store_factory(failures={"start_attempt": MaxAttemptsExceededError()})
    latest = store.seed(STUDENT, ASSESSMENT, status=AttemptStatus.COMPLETED, attempt_id="done")

    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)

    assert handle.attempt_id == latest
    assert handle.strategy == "adopt_latest"
    assert store.calls.get("insert_attempt", 0) == 0


@pytest.mark.asyncio
async def test_direct_insert_when_nothing_to_adopt(store_factory):
    store = store_factory(failures={"start_attempt": PersistenceError("rpc missing")})
    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)
    assert handle.strategy == "direct_insert"
    assert store.rows[handle.attempt_id].attempt_number == 1


@pytest.mark.asyncio
async def test_not_null_violation_retries_with_client_id(store_factory):
    store = store_factory(
        failures={
            "start_attempt": PersistenceError("rpc missing"),
            "insert_attempt": [NotNullViolationError('null value in column "id"')],
        }
    )
    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)
    assert handle.strategy == "client_id_insert"
    assert handle.durable is True
    assert store.calls["insert_attempt"] == 2
    assert not handle.attempt_id.startswith("attempt-")


@pytest.mark.asyncio
async def test_unique_conflict_adopts_existing_row(store_factory):
    store = store_factory(
        failures={
            "start_attempt": PersistenceError("rpc missing"),
            "find_attempt": [PersistenceError("flaky read")],
            "insert_attempt": UniqueViolationError("duplicate key"),
        }
    )
    existing = store.seed(STUDENT, ASSESSMENT, attempt_id="existing")

    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)

    assert handle.attempt_id == existing
    assert handle.strategy == "adopt_existing"
    assert store.calls["insert_attempt"] == 1


@pytest.mark.asyncio
async def test_unreachable_store_falls_back_to_local_id(down_store):
    handle = await AttemptLifecycleManager(down_store).open(STUDENT, ASSESSMENT)
    assert handle.durable is False
    assert handle.strategy == "local"
    assert is_local_attempt_id(handle.attempt_id)
    # Fail short-circuits: nothing after the primary start is tried.
    assert down_store.calls == {"start_attempt": 1}


@pytest.mark.asyncio
async def test_every_tier_failing_falls_back_to_local_id(store_factory):
    store = store_factory(
        failures={
            "start_attempt": PersistenceError("rpc missing"),
            "insert_attempt": ConstraintViolationError("check constraint"),
        }
    )
    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)
    assert handle.durable is False
    assert store.calls["insert_attempt"] == 2


@pytest.mark.asyncio
async def test_unexpected_store_exception_does_not_escape(store_factory):
    store = store_factory(failures={"start_attempt": KeyError("boom")})
    handle = await AttemptLifecycleManager(store).open(STUDENT, ASSESSMENT)
    assert handle.durable is False


@pytest.mark.asyncio
async def test_strategy_outcomes_are_independently_testable(fake_store):
    ctx = OpenContext(student_id=STUDENT, assessment_id=ASSESSMENT)
    assert isinstance(await AdoptInProgress().attempt(fake_store, ctx), Retry)
    attempt_id = fake_store.seed(STUDENT, ASSESSMENT)
    assert await AdoptInProgress().attempt(fake_store, ctx) == Ok(attempt_id)


@pytest.mark.asyncio
async def test_adopt_in_progress_fails_when_store_is_down(down_store):
    ctx = OpenContext(student_id=STUDENT, assessment_id=ASSESSMENT)
    assert isinstance(await AdoptInProgress().attempt(down_store, ctx), Fail)


def test_local_attempt_id_format():
    attempt_id = local_attempt_id()
    prefix, millis, suffix = attempt_id.split("_")
    assert prefix == "temp"
    assert millis.isdigit()
    assert len(suffix) == 9


def test_integrity_error_classification():
    class DriverError(Exception):
        def __init__(self, message, sqlstate):
            super().__init__(message)
            self.sqlstate = sqlstate

    class Wrapped(Exception):
        def __init__(self, orig):
            super().__init__(str(orig))
            self.orig = orig

    assert isinstance(classify_integrity_error(Wrapped(DriverError("x", "23505"))), UniqueViolationError)
    assert isinstance(classify_integrity_error(Wrapped(DriverError("x", "23502"))), NotNullViolationError)
    assert isinstance(
        classify_integrity_error(Exception("UNIQUE constraint failed: assessment_attempts.id")), UniqueViolationError
    )
    assert isinstance(
        classify_integrity_error(Exception("NOT NULL constraint failed: assessment_attempts.id")),
        NotNullViolationError,
    )
    assert type(classify_integrity_error(Exception("CHECK constraint failed"))) is ConstraintViolationError
    assert is_max_attempts_error(Exception("ERROR: Maximum attempts exceeded for assessment"))


def test_deserialize_answers_tolerates_corrupt_payloads():
    assert deserialize_answers('{"q1": "A"}') == {"q1": "A"}
    assert deserialize_answers("{not json") == {}
    assert deserialize_answers("[1, 2]") == {}
    assert deserialize_answers(42) == {}
    assert deserialize_answers(None) == {}


class TestComplete:
    @pytest.mark.asyncio
    async def test_primary_completion_and_result_row(self, fake_store):
        manager = AttemptLifecycleManager(fake_store)
        handle = await manager.open(STUDENT, ASSESSMENT)

        stored = await manager.complete(handle, 80, {"q1": "A"}, 120, total_points=5)

        assert stored is True
        row = fake_store.rows[handle.attempt_id]
        assert row.status == AttemptStatus.COMPLETED
        assert row.score == 80
        assert row.time_spent_seconds == 120
        assert fake_store.calls.get("update_attempt_fields", 0) == 0
        assert fake_store.results[0].total_points == 5
        assert fake_store.results[0].student_id == STUDENT

    @pytest.mark.asyncio
    async def test_falls_back_to_field_update(self, store_factory):
        store = store_factory(failures={"complete_attempt": PersistenceError("rpc missing")})
        manager = AttemptLifecycleManager(store)
        handle = await manager.open(STUDENT, ASSESSMENT)

        assert await manager.complete(handle, 50, {}, 10) is True
        row = store.rows[handle.attempt_id]
        assert row.status == AttemptStatus.COMPLETED
        assert row.score == 50
        assert store.calls["update_attempt_fields"] == 1

    @pytest.mark.asyncio
    async def test_both_paths_failing_returns_false(self, store_factory):
        store = store_factory(
            failures={
                "complete_attempt": PersistenceError("down"),
                "update_attempt_fields": PersistenceError("down"),
            }
        )
        manager = AttemptLifecycleManager(store)
        handle = await manager.open(STUDENT, ASSESSMENT)
        assert await manager.complete(handle, 50, {}, 10, total_points=2) is False
        assert store.calls.get("save_result", 0) == 0

    @pytest.mark.asyncio
    async def test_non_durable_handle_is_still_attempted(self, down_store):
        manager = AttemptLifecycleManager(down_store)
        handle = await manager.open(STUDENT, ASSESSMENT)
        assert await manager.complete(handle, 0, {}, 0) is False
        assert down_store.calls["complete_attempt"] == 1
        assert down_store.calls["update_attempt_fields"] == 1

    @pytest.mark.asyncio
    async def test_result_row_failure_does_not_change_outcome(self, store_factory):
        store = store_factory(failures={"save_result": PersistenceError("no table")})
        manager = AttemptLifecycleManager(store)
        handle = await manager.open(STUDENT, ASSESSMENT)
        assert await manager.complete(handle, 100, {}, 5, total_points=1) is True
