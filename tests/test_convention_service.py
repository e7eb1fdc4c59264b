from datetime import date, timedelta

import pytest

from pfmp.config import settings
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.exceptions import (
    AccessDenied, ConventionLocked, CorrectionNotAllowed, EmptySignature, IdentityMismatch,
    InvalidTransition, ReminderCooldown, UneditableField
)
from pfmp.modules.conventions.models import AuditAction, AuditLogEntry, ConventionStatus, Role, SignatureMethod
from pfmp.modules.conventions.services.convention_service import ConventionService, is_minor
from pfmp.modules.conventions.services.signature_coordinator import SignaturePayload
from pfmp.modules.mission_orders.models import MissionOrder, MissionOrderStatus
from pfmp.modules.notifications.models import Notification

from factories import (
    EMAILS, blank_signature, drawn_signature, identity, make_convention, parent_confirmation, submission_data
)

STRANGER = Identity(email="inconnu@ailleurs.fr")


@pytest.fixture
def service(session):
    return ConventionService(session)


def years_ago(years):
    return date.today() - timedelta(days=int(years * 365.25) + 2)


def trail(session, convention_id):
    return [
        row.action for row in
        session.query(AuditLogEntry).filter_by(convention_id=convention_id).order_by(AuditLogEntry.id)
    ]


def rejected_after_parent(session, coordinator):
    convention = make_convention(session, est_mineur=True)
    coordinator.sign(convention.id, Role.PARENT, SignatureMethod.CANVAS,
                     SignaturePayload(image=drawn_signature(), confirmed_identity=parent_confirmation()),
                     identity("parent"))
    return coordinator.reject(convention.id, identity("teacher"), "Horaires à revoir")


def test_is_minor():
    assert is_minor(date(2008, 6, 1), date(2026, 5, 31))
    assert not is_minor(date(2008, 6, 1), date(2026, 6, 1))
    assert not is_minor(None, date(2026, 6, 1))


def test_submit_normalizes_profile(session, service):
    convention = service.submit(
        submission_data(student_birth_date=years_ago(16)), identity("student"), drawn_signature(), ip="10.0.0.9"
    )

    assert convention.status is ConventionStatus.SUBMITTED
    assert convention.est_mineur is True
    assert convention.student_address == {"street": "12 avenue des Lilas", "postal_code": "69003", "city": "Lyon"}
    assert convention.company_address["postal_code"] == "69001"
    assert convention.schedule == {"monday": {"morning_start": "08:00", "morning_end": "12:00"}}
    assert convention.legal_representatives[0]["email"] == EMAILS["parent"]
    assert convention.legal_rep_email == EMAILS["parent"]
    assert convention.signed_roles == {Role.STUDENT}
    assert len(convention.certificate_hash) == 12
    assert trail(session, convention.id) == [AuditAction.CREATED, AuditAction.SIGNED]


def test_submit_adult_goes_straight_to_teacher(session, service):
    convention = service.submit(
        submission_data(student_birth_date=years_ago(19)), identity("student"), drawn_signature()
    )
    assert convention.est_mineur is False
    recipients = {n.recipient_email for n in session.query(Notification).all()}
    assert recipients == {EMAILS["student"], EMAILS["teacher"]}


def test_submit_with_representatives_list(service):
    data = submission_data(
        student_birth_date=years_ago(16),
        legalRepresentatives=[
            {"firstName": "Jean", "lastName": "Martin", "email": "jean.martin@famille.fr"},
            {"firstName": "Claire", "lastName": "Martin", "email": EMAILS["parent"]},
        ],
    )
    convention = service.submit(data, identity("student"), drawn_signature())
    assert len(convention.legal_representatives) == 2
    assert convention.legal_rep_email == "jean.martin@famille.fr"


def test_submit_refusals(service):
    with pytest.raises(IdentityMismatch):
        service.submit(submission_data(), identity("teacher"), drawn_signature())
    with pytest.raises(EmptySignature):
        service.submit(submission_data(), identity("student"), blank_signature())
    with pytest.raises(UneditableField):
        service.submit(submission_data(end_date=date(2025, 1, 1)), identity("student"), drawn_signature())


def test_access_limited_to_parties(session, service):
    convention = make_convention(session)
    assert service.get(convention.id, identity("tutor")).id == convention.id
    assert service.get(convention.id, identity("admin", privileged=True)).id == convention.id
    with pytest.raises(AccessDenied):
        service.get(convention.id, STRANGER)


def test_list_for(session, service):
    mine = make_convention(session)
    make_convention(session, teacher_email="autre.prof@lycee.fr", student_email="autre@eleve.lycee.fr",
                    legal_rep_email=None, company_rep_email="x@y.fr", tutor_email="t@y.fr",
                    school_head_email="h@lycee.fr")

    assert [c.id for c in service.list_for(identity("teacher"))] == [mine.id]
    assert len(service.list_for(identity("admin", privileged=True))) == 2
    assert service.list_for(STRANGER) == []


def test_free_text_editable_after_validation(session, service):
    convention = make_convention(session, est_mineur=False, status=ConventionStatus.VALIDATED_HEAD)
    updated = service.update_fields(convention.id, {"activities": "Accueil et caisse"}, identity("tutor"))
    assert updated.activities == "Accueil et caisse"


def test_canonical_fields_locked_after_validation(session, service):
    convention = make_convention(session, est_mineur=False, status=ConventionStatus.VALIDATED_HEAD)
    with pytest.raises(ConventionLocked):
        service.update_fields(convention.id, {"company_name": "Autre"}, identity("admin", privileged=True))


def test_canonical_fields_editable_before_validation(session, service):
    convention = make_convention(session)
    updated = service.update_fields(
        convention.id, {"schedule": {"Mardi": {"matin_debut": "09:00", "matin_fin": "12:00"}}}, identity("teacher")
    )
    assert updated.schedule == {"tuesday": {"morning_start": "09:00", "morning_end": "12:00"}}


def test_party_emails_never_editable(session, service):
    convention = make_convention(session)
    with pytest.raises(UneditableField):
        service.update_fields(convention.id, {"teacher_email": "moi@lycee.fr"}, identity("teacher"))
    with pytest.raises(UneditableField):
        service.update_fields(convention.id, {"est_mineur": False}, identity("teacher"))


def test_email_correction_requires_bounce(session, service):
    convention = make_convention(session)
    with pytest.raises(CorrectionNotAllowed):
        service.correct_email(convention.id, Role.PARENT, "claire@famille.fr", identity("teacher"))


def test_email_correction_keeps_signatures(session, service, coordinator):
    convention = make_convention(session, est_mineur=False)
    coordinator.sign(convention.id, Role.TEACHER, SignatureMethod.CANVAS,
                     SignaturePayload(image=drawn_signature()), identity("teacher"))
    service.mark_email_invalid(convention.id, Role.PARENT)

    updated = service.correct_email(convention.id, Role.PARENT, "claire@famille.fr", identity("teacher"))

    assert updated.legal_rep_email == "claire@famille.fr"
    assert updated.legal_representatives[0]["email"] == "claire@famille.fr"
    assert updated.invalid_emails == []
    assert updated.signed_roles == {Role.TEACHER}
    assert trail(session, convention.id)[-1] is AuditAction.EMAIL_CORRECTED


def test_resubmit_reset_starts_new_cycle(session, service, coordinator, monkeypatch):
    monkeypatch.setattr(settings, "RESUBMIT_SIGNATURE_POLICY", "reset")
    convention = rejected_after_parent(session, coordinator)

    resubmitted = service.resubmit(
        convention.id, identity("student"), {"activities": "Horaires corrigés"}, drawn_signature()
    )

    assert resubmitted.status is ConventionStatus.SUBMITTED
    assert resubmitted.cycle == 2
    assert resubmitted.signatures_from_cycle == 2
    assert resubmitted.signed_roles == {Role.STUDENT}
    assert len(resubmitted.signature_rows) == 2
    assert trail(session, convention.id)[-2:] == [AuditAction.RESUBMITTED, AuditAction.SIGNED]

    outcome = coordinator.sign(convention.id, Role.PARENT, SignatureMethod.CANVAS,
                               SignaturePayload(image=drawn_signature(), confirmed_identity=parent_confirmation()),
                               identity("parent"))
    assert outcome.status is ConventionStatus.SIGNED_PARENT


def test_resubmit_reset_requires_student_signature(session, service, coordinator, monkeypatch):
    monkeypatch.setattr(settings, "RESUBMIT_SIGNATURE_POLICY", "reset")
    convention = rejected_after_parent(session, coordinator)
    with pytest.raises(EmptySignature):
        service.resubmit(convention.id, identity("student"))


def test_resubmit_carry_over_keeps_signatures(session, service, coordinator, monkeypatch):
    monkeypatch.setattr(settings, "RESUBMIT_SIGNATURE_POLICY", "carry_over")
    convention = rejected_after_parent(session, coordinator)

    resubmitted = service.resubmit(convention.id, identity("student"))

    assert resubmitted.status is ConventionStatus.SIGNED_PARENT
    assert resubmitted.cycle == 2
    assert resubmitted.signatures_from_cycle == 1
    assert resubmitted.signed_roles == {Role.PARENT}


def test_resubmit_refusals(session, service, coordinator):
    pending = make_convention(session)
    with pytest.raises(InvalidTransition):
        service.resubmit(pending.id, identity("student"), student_image=drawn_signature())
    rejected = rejected_after_parent(session, coordinator)
    with pytest.raises(IdentityMismatch):
        service.resubmit(rejected.id, identity("parent"), student_image=drawn_signature())


def test_reminder_goes_to_pending_signers_with_cooldown(session, service):
    convention = make_convention(session, est_mineur=False, status=ConventionStatus.VALIDATED_TEACHER)

    assert service.send_reminder(convention.id, identity("teacher")) == [Role.COMPANY_HEAD, Role.TUTOR]
    reminders = session.query(Notification).filter(Notification.title.like("Relance%")).all()
    assert {n.recipient_email for n in reminders} == {EMAILS["company"], EMAILS["tutor"]}

    with pytest.raises(ReminderCooldown):
        service.send_reminder(convention.id, identity("teacher"))


def test_reminder_for_one_role(session, service):
    convention = make_convention(session, est_mineur=False, status=ConventionStatus.VALIDATED_TEACHER)
    with pytest.raises(InvalidTransition):
        service.send_reminder(convention.id, identity("teacher"), Role.SCHOOL_HEAD)
    assert service.send_reminder(convention.id, identity("teacher"), Role.TUTOR) == [Role.TUTOR]


def test_reminder_with_nothing_pending(session, service):
    convention = make_convention(session, est_mineur=False, status=ConventionStatus.VALIDATED_HEAD)
    with pytest.raises(InvalidTransition):
        service.send_reminder(convention.id, identity("teacher"))


def test_tracking_teacher_gets_mission_order(session, service):
    convention = make_convention(session)
    tracker = "suivi.prof@lycee.fr"

    order = service.assign_tracking_teacher(
        convention.id, tracker, identity("head"), school_address={"street": "1 place du Lycée"}, distance_km=12.5
    )

    assert order.status is MissionOrderStatus.PENDING
    assert order.company_address == convention.company_address
    assert service.get(convention.id, Identity(email=tracker)).tracking_teacher_email == tracker
    assert session.query(Notification).filter_by(recipient_email=tracker).count() == 1

    again = service.assign_tracking_teacher(convention.id, tracker, identity("head"))
    assert again.id == order.id
    assert session.query(MissionOrder).count() == 1


def test_report_absence(session, service):
    convention = make_convention(session)
    updated = service.report_absence(
        convention.id, {"date": date(2025, 1, 8), "duration": 3.5, "reason": "Maladie"}, identity("tutor")
    )
    assert updated.absences[-1]["date"] == "2025-01-08"
    assert updated.absences[-1]["reported_by"] == EMAILS["tutor"]

    with pytest.raises(AccessDenied):
        service.report_absence(convention.id, {"date": "2025-01-09", "duration": 1}, identity("student"))
