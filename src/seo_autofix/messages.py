"""User-facing strings for the admin screens."""

ERROR = "An error occurred. Please try again."
SCAN_IN_PROGRESS = "A scan is already in progress. Please wait for it to finish."
STARTING_SCAN = "Starting scan..."
SCAN_COMPLETE = "Scan complete!"
SCAN_STOPPED = "Scan stopped."
BATCH_TIMEOUT = "The scan server did not respond in time. Please restart the scan."

CONFIRM_SCAN = {
    "broken_links": (
        "This will scan your entire website for broken links. "
        "This may take several minutes. Continue?"
    ),
    "image_seo": (
        "This will scan your media library for images with missing or weak alt text. "
        "This may take several minutes. Continue?"
    ),
}
CONFIRM_DELETE = "Are you sure you want to delete this entry?"
CONFIRM_APPLY_FIXES = "Apply fixes to the selected entries? This will modify your content."
CONFIRM_REVERT = "Revert every fix applied in this session?"

SELECT_AT_LEAST_ONE = "Please select at least one entry to fix"
SELECT_TO_DELETE = "Please select at least one entry to delete"
NO_SESSION_SELECTED = "No fix session selected"
NO_SCAN_TO_EXPORT = "No scan results to export"
NO_SCAN_OPEN = "No scan selected"
CANCELLED = "Cancelled"
SCAN_ALREADY_COMPLETED = "This scan has already completed."
UPDATE_FAILED = "Failed to update URL"
DELETE_FAILED = "Failed to delete entry"
APPLY_FAILED = "Failed to apply fixes"
BULK_DELETE_FAILED = "Failed to delete entries"
REVERT_FAILED = "Failed to revert fixes"


def fix_summary(fixed_count: int, failed_count: int) -> str:
    return f"Fixed: {fixed_count}\nFailed: {failed_count}"


def confirm_bulk_delete(count: int) -> str:
    return f"Are you sure you want to delete {count} selected entries?"


def revert_summary(reverted_count: int) -> str:
    return f"Reverted {reverted_count} fix(es)"


def deleted_summary(deleted_count: int) -> str:
    return f"Deleted {deleted_count} link(s)"
