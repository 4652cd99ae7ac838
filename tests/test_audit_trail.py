"""
Tests for the per-applicant audit trail and the system audit log.

These tests prove:
- Every successful mutation appends exactly one entry, oldest first
- Refused operations leave the trail untouched
- The system audit log mirrors mutations, survives deletion, and never blocks them
"""
import pytest
from sqlalchemy.exc import OperationalError

from recruitflow.errors import ConflictError, InvalidTransitionError, NotFoundError
from recruitflow.models.actor import Actor
from recruitflow.models.enums import AuditAction
from recruitflow.services.lifecycle import ApplicantLifecycle
from recruitflow.services.system_audit import SystemAuditWriter


class TestApplicantTrail:
    """Test the trail embedded in each applicant."""

    def test_created_entry_starts_the_trail(self, lifecycle, sample_applicant):
        trail = lifecycle.get_audit(sample_applicant.id)

        assert len(trail) == 1
        assert trail[0].action == AuditAction.CREATED
        assert trail[0].performed_by == "admin"
        assert trail[0].meta == {"name": "Asha Rao", "uniqueCode": "C1", "stage": "Physical"}

    def test_each_mutation_appends_exactly_one_entry(self, lifecycle, actor, sample_applicant):
        lifecycle.update(sample_applicant.id, {"notes": "strong runner"}, actor)
        lifecycle.promote(sample_applicant.id, Actor(username="panel_lead"))
        lifecycle.update(sample_applicant.id, {"scores": {"GD": 18}, "college": "NIT"}, actor)

        trail = lifecycle.get_audit(sample_applicant.id)

        assert [e.action for e in trail] == [
            AuditAction.CREATED,
            AuditAction.UPDATED,
            AuditAction.PROMOTED,
            AuditAction.UPDATED,
        ]
        assert trail[2].performed_by == "panel_lead"
        assert trail[2].meta == {"from": "Physical", "to": "GD"}
        assert trail[3].meta["updatedFields"] == ["college", "scores"]
        assert trail[3].meta["stage"] == "GD"

    def test_trail_is_chronological(self, lifecycle, actor, sample_applicant):
        for note in ("a", "b", "c"):
            lifecycle.update(sample_applicant.id, {"notes": note}, actor)

        timestamps = [e.timestamp for e in lifecycle.get_audit(sample_applicant.id)]
        assert timestamps == sorted(timestamps)

    def test_existing_entries_are_never_rewritten(self, lifecycle, actor, sample_applicant):
        first = lifecycle.get_audit(sample_applicant.id)

        lifecycle.update(sample_applicant.id, {"name": "Asha R."}, actor)
        lifecycle.promote(sample_applicant.id, actor)

        after = lifecycle.get_audit(sample_applicant.id)
        assert after[:len(first)] == first

    def test_refusals_do_not_touch_the_trail(self, lifecycle, actor, sample_applicant):
        lifecycle.create({"name": "Bina", "uniqueCode": "C2"}, actor)
        final = lifecycle.create({"name": "Dev", "uniqueCode": "F1", "currentStage": "Final Merit"}, actor)

        with pytest.raises(ConflictError):
            lifecycle.update(sample_applicant.id, {"uniqueCode": "C2"}, actor)
        with pytest.raises(InvalidTransitionError):
            lifecycle.promote(final.id, actor)

        assert len(lifecycle.get_audit(sample_applicant.id)) == 1
        assert len(lifecycle.get_audit(final.id)) == 1

    def test_unknown_principal_is_recorded_as_empty(self, lifecycle):
        applicant = lifecycle.create({"name": "Ravi", "uniqueCode": "R1"}, Actor())
        assert lifecycle.get_audit(applicant.id)[0].performed_by == ""

    def test_entries_are_immutable(self, lifecycle, sample_applicant):
        entry = lifecycle.get_audit(sample_applicant.id)[0]
        with pytest.raises(Exception):
            entry.action = AuditAction.DELETED

    def test_audit_of_missing_applicant(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.get_audit(12345)


class TestSystemAuditLog:
    """Test the record-independent mirror."""

    def test_mutations_are_mirrored(self, lifecycle, actor, sample_applicant, system_events):
        lifecycle.update(sample_applicant.id, {"notes": "x"}, actor)
        lifecycle.promote(sample_applicant.id, actor)

        events = system_events()
        assert [e.action for e in events] == ["CREATED", "UPDATED", "PROMOTED"]
        assert all(e.entity_type == "applicant" for e in events)
        assert all(e.entity_id == str(sample_applicant.id) for e in events)
        assert all(e.performed_by == "admin" and e.ip == "10.0.0.7" for e in events)
        assert events[2].meta == {"from": "Physical", "to": "GD"}

    def test_delete_leaves_a_terminal_entry(self, lifecycle, actor, sample_applicant, system_events):
        applicant_id = sample_applicant.id

        lifecycle.delete(applicant_id, actor)

        deleted = system_events("DELETED")
        assert len(deleted) == 1
        assert deleted[0].entity_id == str(applicant_id)
        assert deleted[0].meta == {"name": "Asha Rao", "uniqueCode": "C1", "stage": "Physical"}
        # History of the deleted applicant survives in the system log
        assert [e.action for e in system_events() if e.entity_id == str(applicant_id)] == ["CREATED", "DELETED"]

    def test_reads_are_not_mirrored(self, lifecycle, sample_applicant, system_events):
        lifecycle.search("asha")
        lifecycle.get(sample_applicant.id)
        lifecycle.get_audit(sample_applicant.id)

        assert [e.action for e in system_events()] == ["CREATED"]

    def test_failed_write_never_blocks_the_mutation(self, db_session, actor, caplog):
        def broken_session():
            raise OperationalError("INSERT INTO system_audit_events", {}, Exception("disk full"))

        lifecycle = ApplicantLifecycle(db_session, system_audit=SystemAuditWriter(broken_session))

        applicant = lifecycle.create({"name": "Ravi", "uniqueCode": "R1"}, actor)
        promoted = lifecycle.promote(applicant.id, actor)

        assert promoted.current_stage == "GD"
        assert "Could not dispatch system audit event" in caplog.text

    def test_failed_commit_is_rolled_back_and_logged(self, db_session, session_factory, actor, caplog):
        class FailingSession:
            def __init__(self):
                self.inner = session_factory()
                self.rolled_back = False

            def add(self, obj):
                self.inner.add(obj)

            def commit(self):
                raise OperationalError("COMMIT", {}, Exception("database is locked"))

            def rollback(self):
                self.rolled_back = True
                self.inner.rollback()

            def close(self):
                self.inner.close()

        sessions = []

        def factory():
            sessions.append(FailingSession())
            return sessions[-1]

        lifecycle = ApplicantLifecycle(db_session, system_audit=SystemAuditWriter(factory))
        applicant = lifecycle.create({"name": "Ravi", "uniqueCode": "R1"}, actor)

        assert lifecycle.get(applicant.id).name == "Ravi"
        assert sessions[0].rolled_back
        assert "System audit write failed" in caplog.text

    def test_dispatch_defers_the_write(self, db_session, session_factory, actor, system_events):
        queued = []
        writer = SystemAuditWriter(session_factory, dispatch=lambda fn, event: queued.append((fn, event)))
        lifecycle = ApplicantLifecycle(db_session, system_audit=writer)

        lifecycle.create({"name": "Ravi", "uniqueCode": "R1"}, actor)
        assert system_events() == []

        for fn, event in queued:
            fn(event)
        assert [e.action for e in system_events()] == ["CREATED"]
