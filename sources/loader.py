"""Page list loader.

Loads the fixed list of documentation pages to index from YAML files.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from pipelines.models import Page

logger = logging.getLogger(__name__)

SOURCES_DIR = Path(__file__).parent
DEFAULT_PAGES_FILE = SOURCES_DIR / "pages.yaml"
TEST_PAGES_FILE = SOURCES_DIR / "pages-test.yaml"


class PageListError(ValueError):
    """The page list file is missing or malformed."""


def pages_from_data(data: Any) -> List[Page]:
    """Build pages from parsed YAML.

    Accepts either a bare list of ``{name, href}`` mappings or a mapping
    with a ``pages`` key holding that list.
    """
    if isinstance(data, dict):
        data = data.get('pages')
    if not isinstance(data, list):
        raise PageListError("Page list must be a list of {name, href} entries")

    pages = []
    seen = set()
    for entry in data:
        if not isinstance(entry, dict):
            raise PageListError(f"Invalid page entry: {entry!r}")
        try:
            page = Page(name=str(entry.get('name', '')).strip(), href=str(entry.get('href', '')).strip())
        except ValueError as e:
            raise PageListError(f"Invalid page entry {entry!r}: {e}") from e
        if page.href in seen:
            logger.warning(f"Duplicate page href ignored: {page.href}")
            continue
        seen.add(page.href)
        pages.append(page)
    return pages


def resolve_pages_file(pages_file: Optional[Path] = None, use_test_pages: bool = False) -> Path:
    if pages_file is not None:
        return Path(pages_file)
    return TEST_PAGES_FILE if use_test_pages else DEFAULT_PAGES_FILE


def load_pages(pages_file: Optional[Path] = None, use_test_pages: bool = False) -> List[Page]:
    """Load the page list.

    Args:
        pages_file: Explicit YAML file; overrides ``use_test_pages``
        use_test_pages: Select the short list used for test runs

    Returns:
        Pages in file order, duplicates removed
    """
    path = resolve_pages_file(pages_file, use_test_pages)
    if not path.exists():
        raise PageListError(f"Page list not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PageListError(f"Failed to parse page list {path}: {e}") from e

    pages = pages_from_data(data)
    logger.info(f"Loaded {len(pages)} pages from {path}")
    return pages


def page_name_map(pages: List[Page]) -> Dict[str, str]:
    return {page.href: page.name for page in pages}

