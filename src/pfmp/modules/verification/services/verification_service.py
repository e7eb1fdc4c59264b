"""
Tamper evidence for rendered conventions and attestations.

A minimal canonical subset of the document is serialised to JSON and signed
with HMAC-SHA256. The payload and its signature travel in the public
verification URL (encoded in the QR code of the rendered page); verifying a
URL checks the signature and then re-derives the payload from the stored
document to detect any later change.
"""
import base64
import binascii
import hashlib
import hmac
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import qrcode

from pfmp.clock import isoformat
from pfmp.config import settings
from pfmp.modules.conventions.exceptions import ConventionNotFound
from pfmp.modules.conventions.models.enums import Role

logger = logging.getLogger(__name__)

CONVENTION = "convention"
ATTESTATION = "attestation"
KINDS = (CONVENTION, ATTESTATION)

# Order and labels of the signatories block of the payload.
SIGNATORY_LABELS = (
    (Role.STUDENT, "Élève"),
    (Role.PARENT, "Représentant Légal"),
    (Role.TUTOR, "Tuteur"),
    (Role.TEACHER, "Enseignant Référent"),
    (Role.COMPANY_HEAD, "Représentant Entreprise"),
    (Role.SCHOOL_HEAD, "Chef d'Établissement"),
)


@dataclass(frozen=True)
class VerificationReference:
    url: str
    hash_display: str
    signature: str


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: str
    kind: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    convention_id: Optional[int] = None


def _iso_date(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def canonical_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class VerificationTokenService:

    def __init__(self, secret: Optional[str] = None, base_url: Optional[str] = None):
        self.secret = (secret or settings.DOCUMENT_SIGNING_SECRET).encode("utf-8")
        self.base_url = (base_url or settings.APP_BASE_URL).rstrip("/")

    @staticmethod
    def canonical_payload(convention, kind: str = CONVENTION) -> Dict[str, Any]:
        """
        Minimal field subset that proves authenticity.

        Free-text fields (activities, competences, derogation text) are left
        out so that editing them does not invalidate a printed document.
        """
        if kind not in KINDS:
            raise ValueError(f"Type de document inconnu : {kind}")
        payload = {
            "t": "c" if kind == CONVENTION else "a",
            "id": convention.id,
            "s": convention.student_full_name,
            "e": convention.company_name,
            "d": {"s": _iso_date(convention.start_date), "f": _iso_date(convention.end_date)},
        }
        if kind == CONVENTION:
            signatures = convention.signatures
            sigs = []
            for role, label in SIGNATORY_LABELS:
                row = signatures.get(role)
                if row is None:
                    continue
                name = convention.party_name(role)
                if role is Role.PARENT and not name:
                    name = label
                sigs.append({"n": name, "r": label, "d": isoformat(row.signed_at)})
            payload["st"] = convention.status.value
            payload["sigs"] = sigs
        else:
            attestation = convention.attestation
            payload.update({
                "h": attestation.total_days if attestation else None,
                "sn": attestation.signer_name if attestation else None,
                "sf": attestation.signer_function if attestation else None,
                "sd": isoformat(attestation.signed_at) if attestation else None,
            })
        return payload

    def compute_fingerprint(self, snapshot: Dict[str, Any]) -> str:
        """HMAC-SHA256 (hex) of the canonical JSON of ``snapshot``."""
        message = canonical_json(snapshot).encode("utf-8")
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    @staticmethod
    def hash_display(signature: str) -> str:
        return signature[:12].upper()

    def generate_verification_url(self, convention, kind: str = CONVENTION) -> VerificationReference:
        payload = self.canonical_payload(convention, kind)
        signature = self.compute_fingerprint(payload)
        data = _b64encode(canonical_json(payload).encode("utf-8"))
        url = f"{self.base_url}/verify?{urlencode({'data': data, 'sig': signature})}"
        return VerificationReference(url=url, hash_display=self.hash_display(signature), signature=signature)

    def verify_reference(self, data: str, sig: str, repository) -> VerificationResult:
        """
        Checks a verification URL against the stored document.

        The HMAC proves the payload was issued by this service; re-deriving it
        from the live document proves nothing canonical changed since.
        """
        try:
            payload = json.loads(_b64decode(data).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            return VerificationResult(valid=False, reason="Lien de vérification illisible")
        if not isinstance(payload, dict):
            return VerificationResult(valid=False, reason="Lien de vérification illisible")

        expected = self.compute_fingerprint(payload)
        if not hmac.compare_digest(expected, (sig or "").lower()):
            logger.warning("Verification signature mismatch for payload id=%s", payload.get("id"))
            return VerificationResult(valid=False, reason="Signature du lien invalide", payload=payload)

        kind = CONVENTION if payload.get("t") == "c" else ATTESTATION
        try:
            convention = repository.get(payload.get("id"))
        except ConventionNotFound:
            return VerificationResult(valid=False, reason="Document introuvable", kind=kind, payload=payload)

        live = self.compute_fingerprint(self.canonical_payload(convention, kind))
        if not hmac.compare_digest(live, expected):
            return VerificationResult(
                valid=False, reason="Le document a été modifié depuis son émission",
                kind=kind, payload=payload, convention_id=convention.id,
            )
        return VerificationResult(
            valid=True, reason="Document authentique", kind=kind, payload=payload, convention_id=convention.id
        )

    @staticmethod
    def qr_data_uri(url: str) -> str:
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=4,
            border=1,
        )
        qr.add_data(url)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")

    def render_context(self, convention, kind: str = CONVENTION, document: Optional[Dict] = None) -> Dict[str, Any]:
        """What the rendering layer needs: the document, the QR image and the short hash."""
        reference = self.generate_verification_url(convention, kind)
        return {
            "document": document if document is not None else {"id": convention.id},
            "qrCodeUrl": self.qr_data_uri(reference.url),
            "verificationUrl": reference.url,
            "hashDisplay": reference.hash_display,
        }

    @staticmethod
    def find_by_code(repository, code: str):
        """Convention matching a signature code, certificate hash or attestation hash."""
        if not code or not code.strip():
            return None
        return repository.find_by_code(code)
