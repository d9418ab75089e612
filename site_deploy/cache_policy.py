"""Cache-Control selection per uploaded file."""

import posixpath

IMMUTABLE = "public, max-age=31536000, immutable"
# HTML references hashed asset URLs, so it must never outlive a deploy
REVALIDATE = "public, max-age=0, must-revalidate"
MEDIUM_TTL = "public, max-age=86400"

REVALIDATE_EXTENSIONS = {".html", ".htm", ".xml", ".txt"}


class CachePolicySelector:
    """Map a relative path to a Cache-Control directive.

    Rules, first match wins:

    1. anything under the immutable asset directory is cached forever
    2. html/xml/txt always revalidate
    3. other assets are cached forever when filenames are content-hashed,
       otherwise for a day
    """

    def __init__(self, immutable_dir: str = "_next/static", assets_hashed: bool = False):
        self.immutable_prefix = immutable_dir.strip("/") + "/"
        self.assets_hashed = assets_hashed

    def is_immutable_path(self, relative_path: str) -> bool:
        path = str(relative_path).replace("\\", "/").lstrip("/")
        return path.startswith(self.immutable_prefix)

    def select(self, relative_path: str) -> str:
        if self.is_immutable_path(relative_path):
            return IMMUTABLE

        _, ext = posixpath.splitext(str(relative_path).replace("\\", "/"))
        if ext.lower() in REVALIDATE_EXTENSIONS:
            return REVALIDATE

        return IMMUTABLE if self.assets_hashed else MEDIUM_TTL
