"""Snapshot of a loaded product page handed to the extractor."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup


@dataclass
class LoadedPage:
    """
    Page content captured after navigation.

    Attributes:
        url: Final page URL
        title: Document title
        html: Rendered page source
        embedded_prices: Window-scoped price list read by script, None when absent
    """
    url: str
    title: str = ''
    html: str = ''
    embedded_prices: Optional[List[Dict[str, Any]]] = None
    _soup: Optional[BeautifulSoup] = field(default=None, init=False, repr=False, compare=False)

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.html or '', 'html.parser')
        return self._soup
