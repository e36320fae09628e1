"""CSV export of scan results."""

import csv
import io
from typing import Iterable

from .models import ResultRecord

CSV_HEADER = [
    "ID",
    "Found On",
    "Page Title",
    "Original URL",
    "Link Type",
    "Status Code",
    "Suggested URL",
    "Reason",
    "Fixed",
]


def results_to_csv(results: Iterable[ResultRecord]) -> str:
    """Render result rows as CSV text, header first.

    The suggested URL column holds the applied URL for fixed rows and the
    user's edit, when there is one, for the rest.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for record in results:
        writer.writerow([
            record.id,
            record.found_on_url or "",
            record.found_on_page_title or "",
            record.original_url,
            record.link_type,
            record.status_code,
            record.replacement_url or "",
            record.reason,
            "Yes" if record.is_fixed else "No",
        ])
    return buffer.getvalue()
