"""Sources package.

Provides the list of documentation pages to index.
"""

from .loader import (
    DEFAULT_PAGES_FILE,
    TEST_PAGES_FILE,
    PageListError,
    load_pages,
    page_name_map,
    pages_from_data,
)

__all__ = [
    'DEFAULT_PAGES_FILE',
    'TEST_PAGES_FILE',
    'PageListError',
    'load_pages',
    'page_name_map',
    'pages_from_data',
]
