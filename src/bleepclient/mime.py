"""Content-Type lookup by file name."""

import mimetypes

DEFAULT_TYPE = "application/octet-stream"

# Types the platform table may lack or get wrong for object uploads.
_OVERRIDES = {
    ".json": "application/json",
    ".md": "text/markdown",
    ".yaml": "application/yaml",
    ".yml": "application/yaml",
}


def lookup(filename: str, default: str = DEFAULT_TYPE) -> str:
    """Return the Content-Type for ``filename`` based on its extension."""
    lowered = str(filename).lower()
    for ext, content_type in _OVERRIDES.items():
        if lowered.endswith(ext):
            return content_type
    content_type, _encoding = mimetypes.guess_type(lowered, strict=False)
    return content_type or default
