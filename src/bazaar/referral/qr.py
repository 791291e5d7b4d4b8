"""QR codes for sharing referral links."""

import base64
from io import BytesIO

import qrcode


def referral_qr_png(link: str) -> bytes:
    """Render a referral link as a QR code.

    Returns:
        PNG image bytes
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(link)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def referral_qr_data_uri(link: str) -> str:
    """QR code for a link as a ``data:image/png;base64,`` URI."""
    encoded = base64.b64encode(referral_qr_png(link)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
