"""
IPFS pinning through Pinata

One multipart POST per upload, no retries. The returned CID is used as the
bid's image reference.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from billboard.config import ALLOWED_IMAGE_TYPES, MAX_UPLOAD_BYTES, Settings
from billboard.errors import (
    ConfigurationError,
    UpstreamFailure,
    UpstreamTimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class PinnedFile:
    cid: str
    ipfs_url: str
    gateway_url: str


def validate_upload(content_type: Optional[str], size: int, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    """Reject unsupported types and oversized files before anything is sent"""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Invalid file type. Allowed: {', '.join(ALLOWED_IMAGE_TYPES)}")
    if size > max_bytes:
        raise ValidationError(f"File too large. Max size: {max_bytes // (1024 * 1024)}MB")


class PinataClient:
    def __init__(self, jwt: Optional[str], upload_url: str, gateway: str, timeout: int = 30):
        self.jwt = jwt
        self.upload_url = upload_url
        self.gateway = gateway.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "PinataClient":
        return cls(settings.pinata_jwt, settings.pinata_upload_url, settings.ipfs_gateway,
                   timeout=settings.upstream_timeout)

    def pin_file(self, filename: str, content: bytes, content_type: str) -> PinnedFile:
        """
        Upload a file to public IPFS.

        Args:
            filename: Original file name, kept as the pin name
            content: File bytes
            content_type: MIME type sent with the file

        Returns:
            PinnedFile with the CID and its ipfs:// and gateway URLs
        """
        if not self.jwt:
            raise ConfigurationError("IPFS upload not configured", detail="PINATA_JWT not configured")

        try:
            r = requests.post(
                self.upload_url,
                headers={"Authorization": f"Bearer {self.jwt}"},
                files={"file": (filename, content, content_type)},
                data={"network": "public", "name": filename},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise UpstreamTimeoutError(detail=f"Pinata upload timed out: {e}") from e
        except requests.RequestException as e:
            raise UpstreamFailure(detail=f"Pinata upload failed: {e}") from e

        if r.status_code >= 400:
            raise UpstreamFailure(detail=f"Pinata upload returned {r.status_code}: {r.text[:500]}")

        try:
            cid = r.json()["data"]["cid"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamFailure(detail=f"Unexpected Pinata response: {r.text[:500]}") from e

        logger.info("Pinned %s (%d bytes) as %s", filename, len(content), cid)
        return PinnedFile(cid=cid, ipfs_url=f"ipfs://{cid}", gateway_url=f"{self.gateway}/{cid}")
