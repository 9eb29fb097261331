"""Metadata for crawlkit."""

__all__ = [
    "__title__",
    "__version__",
    "__description__",
    "__credits__",
    "__requires_python__",
]

__title__ = "crawlkit"
__version__ = "0.1.0"
__description__ = (
    "A resumable, subscriber-driven site crawler with a broken link checker."
)
__credits__ = [
    {"name": "Matthew D. Martin", "email": "matthewdeanmartin@users.noreply.github.com"}
]
__requires_python__ = ">=3.9"
