import base64
import binascii
import io
import secrets
import string
from datetime import datetime
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from pfmp.modules.conventions.exceptions import EmptySignature

DATA_URL_PREFIX = "data:image/"


def generate_signature_code() -> str:
    """Human-readable code printed under a signature, e.g. ``KQZTRMWA-04817``."""
    letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(8))
    digits = "".join(secrets.choice(string.digits) for _ in range(5))
    return f"{letters}-{digits}"


def decode_data_url(data_url: str) -> Image.Image:
    header, _, encoded = (data_url or "").partition(",")
    if not header.startswith(DATA_URL_PREFIX) or ";base64" not in header or not encoded:
        raise EmptySignature("Format de signature invalide.")
    try:
        image = Image.open(io.BytesIO(base64.b64decode(encoded, validate=True)))
        image.load()
    except (binascii.Error, OSError, ValueError) as e:
        raise EmptySignature("Image de signature illisible.") from e
    return image


def is_blank_image(image: Image.Image) -> bool:
    """True when no pixel was drawn: fully transparent, or one flat colour."""
    rgba = image.convert("RGBA")
    if rgba.getextrema()[3][1] == 0:
        return True
    background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    low, high = Image.alpha_composite(background, rgba).convert("L").getextrema()
    return low == high


def require_drawn_signature(data_url: Optional[str]) -> str:
    """Returns ``data_url`` unchanged, or raises EmptySignature for an empty canvas."""
    if not data_url:
        raise EmptySignature()
    if is_blank_image(decode_data_url(data_url)):
        raise EmptySignature()
    return data_url


def to_data_url(image: Image.Image) -> str:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def certified_signature_image(signer_email: str, signed_at: datetime, name: Optional[str] = None) -> str:
    """Stamp used in place of a drawing when the signer authenticated by one-time code."""
    image = Image.new("RGBA", (420, 130), (255, 255, 255, 0))
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()
    blue = (30, 64, 175, 255)
    draw.rectangle((2, 2, 417, 127), outline=blue, width=2)
    draw.text((14, 12), "Signature Numérique Certifiée", fill=blue, font=font)
    draw.text((14, 40), name or signer_email, fill=(17, 24, 39, 255), font=font)
    draw.text((14, 62), signer_email, fill=(55, 65, 81, 255), font=font)
    draw.text((14, 84), "Code OTP validé le " + signed_at.strftime("%d/%m/%Y à %H:%M:%S UTC"),
              fill=(55, 65, 81, 255), font=font)
    return to_data_url(image)
