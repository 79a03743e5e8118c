from __future__ import annotations

from pathlib import Path

import httpx

from qmedia.errors import GenerationError


class ResizeServiceClient:
    """Delegates resizing to a remote service: multipart upload in, image bytes out."""

    def __init__(self, base_url: str, quality: int = 90, timeout: float = 120.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.quality = quality
        self._http = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def resize(self, data: bytes, filename: str, size: int, heic: bool = False) -> bytes:
        params: dict[str, str | int] = {"size": size, "quality": self.quality}
        if heic:
            params["format"] = "heic"
        files = {"file": (Path(filename).name, data)}
        try:
            resp = self._http.post("/", params=params, files=files)
        except httpx.HTTPError as exc:
            raise GenerationError(f"resize service request failed: {exc}") from exc
        if resp.status_code != 200:
            raise GenerationError(f"resize service returned status code {resp.status_code}: {resp.text}")
        return resp.content

    def close(self) -> None:
        self._http.close()
