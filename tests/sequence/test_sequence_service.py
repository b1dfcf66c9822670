"""
Document sequence tests.

Verifies:
- Prefix formatting and per-(tenant, type) counters
- Counters survive only when the caller's transaction survives
- Contention retries with bounded backoff, then SEQUENCE_EXHAUSTED
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from ledger_kernel.exceptions import SequenceExhaustedError
from ledger_kernel.services.sequence_service import (
    DEFAULT_PREFIXES,
    RetryPolicy,
    SequenceService,
    default_prefix,
    is_lock_contention,
)


def _locked_error() -> OperationalError:
    return OperationalError("SELECT ...", {}, Exception("database is locked"))


class TestFormatting:
    def test_first_invoice_number(self, sequence_service, tenant_id):
        assert sequence_service.next_sequence(tenant_id, "invoice") == "JE-INV-000001"
        assert sequence_service.next_sequence(tenant_id, "invoice") == "JE-INV-000002"

    def test_default_prefix_for_unknown_type(self, sequence_service, tenant_id):
        assert default_prefix("credit_note") == "JE-CRE-"
        assert sequence_service.next_sequence(tenant_id, "credit_note") == "JE-CRE-000001"

    def test_configured_prefixes_cover_document_types(self, sequence_service):
        for document_type, prefix in DEFAULT_PREFIXES.items():
            assert sequence_service.prefix_for(document_type) == prefix

    def test_padding_is_a_minimum_width(self, session, tenant_id):
        service = SequenceService(session, padding=2)
        assert service.format_number("X-", 7) == "X-07"
        assert service.format_number("X-", 1234) == "X-1234"


class TestCounters:
    def test_types_are_independent(self, sequence_service, tenant_id):
        sequence_service.next_sequence(tenant_id, "invoice")
        sequence_service.next_sequence(tenant_id, "invoice")

        assert sequence_service.next_sequence(tenant_id, "bill") == "JE-BIL-000001"
        assert sequence_service.current_value(tenant_id, "invoice") == 2

    def test_tenants_are_independent(self, sequence_service, tenant_id, other_tenant_id):
        sequence_service.next_sequence(tenant_id, "invoice")
        assert sequence_service.next_sequence(other_tenant_id, "invoice") == "JE-INV-000001"

    def test_peek_does_not_allocate(self, sequence_service, tenant_id):
        assert sequence_service.peek_next(tenant_id, "invoice") == "JE-INV-000001"
        assert sequence_service.current_value(tenant_id, "invoice") is None

        sequence_service.next_sequence(tenant_id, "invoice")
        assert sequence_service.peek_next(tenant_id, "invoice") == "JE-INV-000002"
        assert sequence_service.peek_next(tenant_id, "invoice") == "JE-INV-000002"

    def test_rolled_back_allocation_is_returned(self, session, sequence_service, tenant_id):
        sequence_service.next_sequence(tenant_id, "invoice")

        savepoint = session.begin_nested()
        assert sequence_service.next_sequence(tenant_id, "invoice") == "JE-INV-000002"
        savepoint.rollback()

        assert sequence_service.next_sequence(tenant_id, "invoice") == "JE-INV-000002"

    def test_configure_prefix_keeps_counter(self, sequence_service, tenant_id):
        sequence_service.next_sequence(tenant_id, "invoice")
        sequence_service.configure_prefix(tenant_id, "invoice", "INV/")

        assert sequence_service.next_sequence(tenant_id, "invoice") == "INV/000002"

    def test_configure_prefix_before_first_use(self, sequence_service, tenant_id):
        sequence_service.configure_prefix(tenant_id, "bill", "B-")
        assert sequence_service.next_sequence(tenant_id, "bill") == "B-000001"

    def test_empty_prefix_rejected(self, sequence_service, tenant_id):
        with pytest.raises(ValueError):
            sequence_service.configure_prefix(tenant_id, "bill", "")


class TestRetryPolicy:
    def test_backoff_is_exponential_and_capped(self):
        policy = RetryPolicy(max_attempts=6, base_delay_seconds=0.1, max_delay_seconds=0.5)
        assert [policy.delay_for(n) for n in range(1, 6)] == [0.1, 0.2, 0.4, 0.5, 0.5]

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay_seconds=-1)

    def test_lock_contention_detection(self):
        assert is_lock_contention(_locked_error())
        assert not is_lock_contention(
            OperationalError("SELECT ...", {}, Exception("no such table: x"))
        )


class TestContentionRetry:
    def test_retries_then_succeeds(self, session, monkeypatch, captured_logs):
        delays: list[float] = []
        service = SequenceService(
            session,
            retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.01),
            sleep=delays.append,
        )
        real_allocate = service._allocate
        failures = iter([_locked_error(), _locked_error()])

        def flaky(tenant_id, document_type):
            error = next(failures, None)
            if error is not None:
                raise error
            return real_allocate(tenant_id, document_type)

        monkeypatch.setattr(service, "_allocate", flaky)

        assert service.next_sequence(uuid4(), "invoice") == "JE-INV-000001"
        assert delays == [0.01, 0.02]
        retries = [r for r in captured_logs() if r["message"] == "sequence_contention_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_exhaustion(self, session, monkeypatch):
        service = SequenceService(
            session,
            retry_policy=RetryPolicy(max_attempts=2, base_delay_seconds=0),
            sleep=lambda _: None,
        )

        def always_locked(tenant_id, document_type):
            raise _locked_error()

        monkeypatch.setattr(service, "_allocate", always_locked)

        with pytest.raises(SequenceExhaustedError) as exc_info:
            service.next_sequence(uuid4(), "invoice")
        assert exc_info.value.code == "SEQUENCE_EXHAUSTED"
        assert exc_info.value.attempts == 2

    def test_non_contention_errors_propagate(self, session, monkeypatch):
        service = SequenceService(session, sleep=lambda _: None)

        def broken(tenant_id, document_type):
            raise OperationalError("SELECT ...", {}, Exception("disk I/O error"))

        monkeypatch.setattr(service, "_allocate", broken)

        with pytest.raises(OperationalError):
            service.next_sequence(uuid4(), "invoice")
