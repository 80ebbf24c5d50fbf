"""
QR Rendering
Turns a provisioning URI into a scannable image
"""

import base64
import io

import qrcode
import qrcode.image.svg

MIME_TYPES = {
    'png': 'image/png',
    'svg': 'image/svg+xml',
}


def render(uri: str, size: int = 400, margin: int = 4, image_format: str = 'png') -> bytes:
    """
    Render a URI as a QR code image

    Args:
        uri: Text to encode, usually an otpauth:// URI
        size: Approximate image width in pixels
        margin: Quiet zone in modules
        image_format: 'png' or 'svg'

    Returns:
        Raw image bytes
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        border=margin,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    qr.box_size = max(1, size // (qr.modules_count + 2 * margin))

    if image_format == 'svg':
        img = qr.make_image(image_factory=qrcode.image.svg.SvgPathImage)
    else:
        img = qr.make_image(fill_color='black', back_color='white')

    buffer = io.BytesIO()
    img.save(buffer)
    return buffer.getvalue()


def to_data_uri(image: bytes, image_format: str = 'png') -> str:
    """Data URI ready for <img src="...">"""
    encoded = base64.b64encode(image).decode('utf-8')
    return f'data:{MIME_TYPES[image_format]};base64,{encoded}'
