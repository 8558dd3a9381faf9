import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M

QR_BOX_SIZE = 8
QR_BORDER = 2


def menu_url(origin: str, slug: str) -> str:
    """Public menu URL; this exact shape is printed on QR codes and shared links."""
    return f"{origin.rstrip('/')}/menu/{slug}"


def render_png(data: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=QR_BOX_SIZE, border=QR_BORDER)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_data_url(data: str) -> str:
    encoded = base64.b64encode(render_png(data)).decode()
    return f"data:image/png;base64,{encoded}"
