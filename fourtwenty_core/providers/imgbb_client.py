"""ImgBB 图床适配器。

桌面客户端在发起对话请求之前，先把本地图片上传到图床，拿到可公开访问的 URL，
再把 URL 作为 image_urls 交给中继。

接口约定：
- POST {imgbb_upload_url}，表单字段 key=<api_key>、image=<base64>
- 响应 JSON 的 data.display_url 即图片地址
"""

import base64
from pathlib import Path
from typing import Union

import httpx

from fourtwenty_core.config.settings import settings
from fourtwenty_core.domain.exceptions import ConfigurationError, UploadError


class ImgBBClient:
    """ImgBB 上传客户端。"""

    name = "imgbb"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def upload(self, path: Union[str, Path]) -> str:
        """上传单张图片，返回 display_url。"""

        api_key = getattr(self._settings, "imgbb_api_key", None)
        if not api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="ImgBB API key not configured")
        file_path = Path(path)
        try:
            encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")
        except OSError as e:
            raise UploadError(code="UPLOAD_ERROR", message=f"Failed to read {file_path.name}: {e}")
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    self._settings.imgbb_upload_url,
                    data={"key": api_key, "image": encoded},
                )
        except httpx.HTTPError as e:
            raise UploadError(code="UPLOAD_ERROR", message=str(e) or type(e).__name__)
        if resp.status_code >= 400:
            raise UploadError(
                code="UPLOAD_ERROR",
                message=f"Failed to upload {file_path.name}",
                upstream_status=resp.status_code,
            )
        try:
            return resp.json()["data"]["display_url"]
        except (ValueError, KeyError, TypeError) as e:
            raise UploadError(code="UPLOAD_ERROR", message=f"Unexpected upload response: {e}")
