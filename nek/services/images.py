import logging
import uuid

from supabase import create_client

from nek.core.config import MAX_UPLOAD_MB, SUPABASE_BUCKET, SUPABASE_SERVICE_KEY, SUPABASE_URL
from nek.core.errors import BusinessRuleError, ServiceUnavailableError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def check_upload(content_type: str, size: int):
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise BusinessRuleError("Only JPEG, PNG or WEBP images can be uploaded.")
    if size == 0:
        raise BusinessRuleError("No file provided")
    if size > MAX_UPLOAD_MB * 1024 * 1024:
        raise BusinessRuleError(f"File is too large. Max size is {MAX_UPLOAD_MB}MB.")


def upload_image(host, data: bytes, content_type: str) -> str:
    check_upload(content_type, len(data))
    return host.upload(data, content_type)


class SupabaseImageHost:
    """Stores product images in a Supabase Storage bucket and returns public URLs."""

    def __init__(self, url=SUPABASE_URL, key=SUPABASE_SERVICE_KEY, bucket=SUPABASE_BUCKET):
        self.url = url
        self.key = key
        self.bucket = bucket
        self._client = None

    def get_client(self):
        if self._client is None:
            if not self.url or not self.key:
                raise ServiceUnavailableError("Image hosting not configured")
            self._client = create_client(self.url, self.key)
        return self._client

    def upload(self, data: bytes, content_type: str) -> str:
        path = f"products/{uuid.uuid4().hex}.{ALLOWED_CONTENT_TYPES[content_type]}"
        storage = self.get_client().storage.from_(self.bucket)
        storage.upload(path, data, {"content-type": content_type})
        logger.info("Uploaded product image %s", path)
        return storage.get_public_url(path)


image_host = SupabaseImageHost()


def get_image_host():
    return image_host
