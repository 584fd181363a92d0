"""QR rendering of pairing tokens."""

import base64
import io

import qrcode
from qrcode.image.svg import SvgPathImage


def render_svg(payload: str) -> bytes:
    """Render the pairing token as an SVG document."""
    image = qrcode.make(payload, image_factory=SvgPathImage, box_size=10, border=2)
    return image.to_string()


def render_data_uri(payload: str) -> str:
    """SVG QR code as a ``data:`` URI for an ``<img>`` tag."""
    encoded = base64.b64encode(render_svg(payload)).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def render_terminal(payload: str) -> str:
    """Scannable ASCII rendering for logs and terminals."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(payload)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()
