"""Filter, search and paging state of a results screen."""

from dataclasses import dataclass

from ..models import PER_PAGE_CHOICES, ErrorType, ResultFilter


@dataclass
class ClientViewState:
    """What the user is currently looking at.

    Any change to what is being listed sends the user back to page 1; only
    go_to_page moves within the current listing.
    """
    filter: str = ResultFilter.ALL.value
    search: str = ""
    page: int = 1
    per_page: int = 25
    error_type: str = ErrorType.ALL.value
    location: str = "all"

    def set_filter(self, value: str) -> None:
        self.filter = ResultFilter(value).value
        self.page = 1

    def set_search(self, value: str) -> None:
        self.search = value.strip()
        self.page = 1

    def set_per_page(self, value: int) -> None:
        if value not in PER_PAGE_CHOICES:
            raise ValueError(f"per_page must be one of {PER_PAGE_CHOICES}, got {value}")
        self.per_page = value
        self.page = 1

    def set_error_type(self, value: str) -> None:
        self.error_type = ErrorType(value).value
        self.page = 1

    def set_location(self, value: str) -> None:
        self.location = value or "all"
        self.page = 1

    def go_to_page(self, page: int) -> None:
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        self.page = page

    def query(self) -> dict:
        """Keyword arguments for a get_results call."""
        return {
            "filter": self.filter,
            "search": self.search,
            "page": self.page,
            "per_page": self.per_page,
            "error_type": self.error_type,
            "location": self.location,
        }
