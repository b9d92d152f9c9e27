import asyncio
from typing import Optional

import cv2
import numpy as np

from flowhook.logging_config import get_logger
from flowhook.services.ports import QRDecoder

logger = get_logger("qr_service")


def decode_qr_bytes(content: bytes) -> Optional[str]:
    """Decode the first QR code in an encoded image (jpeg/png/webp)."""
    if not content:
        return None
    buffer = np.frombuffer(content, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        logger.info("Media is not a decodable image", extra={"context": {"size": len(content)}})
        return None

    detector = cv2.QRCodeDetector()
    value, _points, _ = detector.detectAndDecode(image)
    if value:
        return value

    # Low-contrast photos often decode after grayscale + Otsu threshold.
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    value, _points, _ = detector.detectAndDecode(binary)
    return value or None


class OpenCvQRDecoder(QRDecoder):
    async def decode(self, content: bytes) -> Optional[str]:
        return await asyncio.to_thread(decode_qr_bytes, content)
