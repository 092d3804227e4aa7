"""
Tests for error aggregation.
"""

from ..error_tracker import (
    ErrorSeverity, ErrorTracker, RemoteStoreError, StatePersistenceError, TransientRemoteError
)


class TestErrorTracker:

    def test_report_in_order(self):
        tracker = ErrorTracker()
        tracker.report("item failed", source_id='a', severity=ErrorSeverity.WARNING)
        tracker.report_exception(StatePersistenceError("disk full"), severity=ErrorSeverity.CRITICAL)

        assert len(tracker.errors) == 2
        assert tracker.errors[1].severity == ErrorSeverity.CRITICAL
        assert tracker.errors[1].message == "disk full"
        assert tracker.has_critical_errors()

    def test_report_exception_keeps_status(self):
        tracker = ErrorTracker()
        tracker.report_exception(TransientRemoteError("busy", source_id='a', status=503), severity=ErrorSeverity.WARNING)

        error = tracker.errors[0]
        assert error.source_id == 'a'
        assert error.details == {'status': 503}
        assert not tracker.has_critical_errors()

    def test_generate_report(self):
        tracker = ErrorTracker()
        tracker.report("one", severity=ErrorSeverity.WARNING)
        tracker.report("two", severity=ErrorSeverity.WARNING)
        tracker.report_exception(RemoteStoreError("bad", status=400))

        report = tracker.generate_report()

        assert report['total_errors'] == 3
        assert report['warning_count'] == 2
        assert report['error_count'] == 1
        assert report['critical_count'] == 0
        assert report['errors'][2]['severity'] == 'ERROR'

    def test_transient_is_a_remote_store_error(self):
        assert issubclass(TransientRemoteError, RemoteStoreError)
