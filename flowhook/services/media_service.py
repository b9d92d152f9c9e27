import httpx

from flowhook.config import settings
from flowhook.logging_config import get_logger
from flowhook.models import Tenant
from flowhook.services.errors import MediaFetchError
from flowhook.services.ports import MediaFetcher, MediaPayload

logger = get_logger("media_service")


def graph_url(path: str) -> str:
    base = settings.graph_api_base_url.rstrip("/")
    return f"{base}/{settings.graph_api_version}/{path.lstrip('/')}"


class GraphMediaFetcher(MediaFetcher):
    """Two-step Graph API download: resolve the media id to a url, then fetch the bytes."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or settings.http_timeout_seconds

    async def fetch(self, tenant: Tenant, media_id: str) -> MediaPayload:
        if not tenant.api_key:
            raise MediaFetchError("Tenant has no API key configured")

        headers = {"Authorization": f"Bearer {tenant.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                meta_response = await client.get(graph_url(media_id), headers=headers)
                if meta_response.status_code != 200:
                    raise MediaFetchError(f"Media lookup failed with status {meta_response.status_code}")
                meta = meta_response.json()
                url = meta.get("url")
                if not url:
                    raise MediaFetchError("Media lookup returned no url")

                media_response = await client.get(url, headers=headers)
                if media_response.status_code != 200:
                    raise MediaFetchError(f"Media download failed with status {media_response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning(
                "Media download error",
                extra={"context": {"media_id": media_id, "error": str(exc)}},
            )
            raise MediaFetchError(f"Media download error: {exc}") from exc

        if not media_response.content:
            raise MediaFetchError("Media download returned no content")

        return MediaPayload(
            content=media_response.content,
            mime_type=meta.get("mime_type") or media_response.headers.get("content-type"),
            filename=meta.get("filename"),
        )
