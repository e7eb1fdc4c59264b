import base64
import io
import re
import smtplib
from datetime import date

from PIL import Image, ImageDraw

from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.models import Convention, ConventionStatus
from pfmp.modules.conventions.services.signature_coordinator import ConfirmedIdentity

EMAILS = {
    "student": "lea.martin@eleve.lycee.fr",
    "parent": "claire.martin@famille.fr",
    "teacher": "sophie.bernard@lycee.fr",
    "company": "marc.dupont@boulangerie.fr",
    "tutor": "julie.petit@boulangerie.fr",
    "head": "paul.durand@lycee.fr",
    "admin": "admin@pfmp.fr",
}

WEEK = {
    day: {"morning_start": "08:00", "morning_end": "12:00",
          "afternoon_start": "13:00", "afternoon_end": "16:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def _png_data_url(image):
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def drawn_signature():
    image = Image.new("RGBA", (240, 90), (255, 255, 255, 0))
    ImageDraw.Draw(image).line((10, 70, 120, 15, 230, 60), fill=(20, 20, 20, 255), width=3)
    return _png_data_url(image)


def blank_signature():
    return _png_data_url(Image.new("RGBA", (240, 90), (255, 255, 255, 0)))


def white_signature():
    return _png_data_url(Image.new("RGB", (240, 90), (255, 255, 255)))


def identity(key, privileged=False):
    return Identity(email=EMAILS[key], is_privileged=privileged, name=key.capitalize())


def parent_confirmation(email=None):
    return ConfirmedIdentity(name="Martin Claire", email=email or EMAILS["parent"], phone="0601020304")


def make_convention(session, est_mineur=True, status=ConventionStatus.SUBMITTED, **overrides):
    """A convention stored directly in ``status``, with no signature and an empty trail."""
    fields = dict(
        student_first_name="Léa",
        student_last_name="Martin",
        student_email=EMAILS["student"],
        student_birth_date=date(2009, 3, 14) if est_mineur else date(2003, 3, 14),
        student_class="2nde MRC",
        legal_rep_first_name="Claire",
        legal_rep_last_name="Martin",
        legal_rep_email=EMAILS["parent"],
        legal_rep_phone="0601020304",
        legal_representatives=[{
            "first_name": "Claire", "last_name": "Martin",
            "email": EMAILS["parent"], "phone": "0601020304",
        }],
        school_name="Lycée Jean Moulin",
        school_head_name="Durand Paul",
        school_head_email=EMAILS["head"],
        teacher_name="Bernard Sophie",
        teacher_email=EMAILS["teacher"],
        company_name="Boulangerie Dupont",
        company_address={"street": "3 rue du Four", "postal_code": "69001", "city": "Lyon"},
        company_rep_name="Dupont Marc",
        company_rep_email=EMAILS["company"],
        company_rep_function="Gérant",
        tutor_name="Petit Julie",
        tutor_email=EMAILS["tutor"],
        tutor_function="Boulangère",
        start_date=date(2025, 1, 6),
        end_date=date(2025, 1, 17),
        schedule=WEEK,
        absences=[],
        activities="Vente et mise en rayon",
        est_mineur=est_mineur,
        status=status,
        cycle=1,
        signatures_from_cycle=1,
    )
    fields.update(overrides)
    convention = Convention(**fields)
    session.add(convention)
    session.commit()
    return convention


def submission_data(**overrides):
    """Raw submission as posted by the wizard, legacy flat address included."""
    data = dict(
        student_first_name="Léa",
        student_last_name="Martin",
        student_email=EMAILS["student"],
        student_birth_date=date(2009, 3, 14),
        address="12 avenue des Lilas",
        postal_code="69003",
        city="Lyon",
        legal_rep_first_name="Claire",
        legal_rep_last_name="Martin",
        legal_rep_email=EMAILS["parent"],
        legal_rep_phone="0601020304",
        school_name="Lycée Jean Moulin",
        school_head_name="Durand Paul",
        school_head_email=EMAILS["head"],
        teacher_name="Bernard Sophie",
        teacher_email=EMAILS["teacher"],
        company_name="Boulangerie Dupont",
        company_address={"street": "3 rue du Four", "zipCode": "69001", "city": "Lyon"},
        company_rep_name="Dupont Marc",
        company_rep_email=EMAILS["company"],
        tutor_name="Petit Julie",
        tutor_email=EMAILS["tutor"],
        start_date=date(2025, 1, 6),
        end_date=date(2025, 1, 17),
        schedule={"Lundi": {"matin_debut": "08:00", "matin_fin": "12:00"}},
    )
    data.update(overrides)
    return data


class FakeMailer:
    is_configured = True

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to_addr, subject, body):
        if self.fail:
            raise smtplib.SMTPException("relay refused")
        self.sent.append((to_addr, subject, body))

    def last_code(self):
        return re.search(r"convention : (\d+)", self.sent[-1][2]).group(1)
