"""
Ingestion-side normalisation of profile data.

Submissions arrive with legacy flat address fields, a nested address object
or a single string, and with flat legal-representative fields or a list of
representatives. Everything is turned into one shape before storage so that
no read site has to branch on it.
"""
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, EmailStr

from pfmp.modules.conventions.services.calculations import WEEKDAYS


class Address(BaseModel):
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.street or self.postal_code or self.city)


class LegalRepresentative(BaseModel):
    first_name: Optional[str] = None
    last_name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    address: Optional[Address] = None


DAY_ALIASES = {
    "lundi": "monday",
    "mardi": "tuesday",
    "mercredi": "wednesday",
    "jeudi": "thursday",
    "vendredi": "friday",
    "samedi": "saturday",
    "dimanche": "sunday",
}

SLOT_ALIASES = {
    "matin_debut": "morning_start",
    "matin_fin": "morning_end",
    "apres_midi_debut": "afternoon_start",
    "apres_midi_fin": "afternoon_end",
}


def _first(data: Mapping, *keys) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _postal_code(value: Any) -> Optional[str]:
    # Postal codes sometimes arrive as numbers.
    return None if value is None else str(value)


def normalize_address(value: Any = None, flat: Optional[Mapping] = None) -> Optional[Address]:
    """Address from a nested object, a plain string or legacy flat fields."""
    if isinstance(value, Address):
        return value
    if isinstance(value, str):
        address = Address(street=value.strip() or None)
    elif isinstance(value, Mapping):
        address = Address(
            street=_first(value, "street", "address", "rue"),
            postal_code=_postal_code(
                _first(value, "postal_code", "postalCode", "zipCode", "zip_code", "code_postal")
            ),
            city=_first(value, "city", "ville"),
        )
    else:
        address = Address()

    if flat and address.is_empty():
        address = Address(
            street=_first(flat, "address", "street"),
            postal_code=_postal_code(_first(flat, "postal_code", "zip_code", "postalCode", "zipCode")),
            city=_first(flat, "city"),
        )
    return None if address.is_empty() else address


def normalize_legal_representatives(data: Mapping) -> List[LegalRepresentative]:
    representatives = data.get("legal_representatives") or data.get("legalRepresentatives")
    if representatives:
        result = []
        for rep in representatives:
            if isinstance(rep, LegalRepresentative):
                result.append(rep)
                continue
            result.append(LegalRepresentative(
                first_name=_first(rep, "first_name", "firstName", "prenom"),
                last_name=_first(rep, "last_name", "lastName", "nom"),
                email=_first(rep, "email"),
                phone=_first(rep, "phone", "tel"),
                role=_first(rep, "role"),
                address=normalize_address(rep.get("address")),
            ))
        return result

    last_name = _first(data, "legal_rep_last_name")
    if not last_name:
        return []
    return [LegalRepresentative(
        first_name=_first(data, "legal_rep_first_name"),
        last_name=last_name,
        email=_first(data, "legal_rep_email"),
        phone=_first(data, "legal_rep_phone"),
        role=_first(data, "legal_rep_role"),
        address=normalize_address(data.get("legal_rep_address")),
    )]


def normalize_schedule(schedule: Optional[Mapping]) -> Dict[str, Dict[str, str]]:
    """Weekday keys to English lowercase, slot keys to morning/afternoon start/end."""
    result = {}
    for day, slot in (schedule or {}).items():
        key = DAY_ALIASES.get(day.strip().lower(), day.strip().lower())
        if key not in WEEKDAYS or not slot:
            continue
        result[key] = {SLOT_ALIASES.get(k, k): v for k, v in slot.items() if v}
    return result


class ProfileNormalizer:

    @staticmethod
    def normalize(data: Mapping) -> Dict[str, Any]:
        """
        Canonical convention fields from a raw submission.

        Address objects are stored as plain dicts, the first legal
        representative is mirrored into the flat signing columns.
        """
        fields = dict(data)
        for flat_key in ("address", "postal_code", "city", "legal_rep_address", "legal_rep_role",
                         "legalRepresentatives"):
            fields.pop(flat_key, None)

        student_address = normalize_address(data.get("student_address"), flat=data)
        fields["student_address"] = student_address.model_dump() if student_address else None

        company_address = normalize_address(data.get("company_address"))
        fields["company_address"] = company_address.model_dump() if company_address else None

        representatives = normalize_legal_representatives(data)
        fields["legal_representatives"] = [rep.model_dump(mode="json") for rep in representatives]
        if representatives:
            first = representatives[0]
            fields["legal_rep_first_name"] = first.first_name
            fields["legal_rep_last_name"] = first.last_name
            fields["legal_rep_email"] = str(first.email) if first.email else None
            fields["legal_rep_phone"] = first.phone

        if "schedule" in data:
            fields["schedule"] = normalize_schedule(data.get("schedule"))
        return fields
