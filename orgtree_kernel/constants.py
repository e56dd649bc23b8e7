"""
Org-Tree Kernel — Default Constants

Module-level defaults. Runtime values are injected through
TreeConstants when the engine is constructed.
"""

# --- Bulk import ---
# How a bulk row's manager column is resolved: "name" | "id" | "auto"
DEFAULT_MANAGER_MATCH: str = "name"

# --- History ---
# Maximum number of undo entries kept. 0 = unlimited.
DEFAULT_HISTORY_LIMIT: int = 0

# --- Search ---
DEFAULT_FUZZY_CUTOFF: float = 0.6

# --- Diagnostics ---
WIDE_SPAN_THRESHOLD: int = 12
DEEP_ORG_THRESHOLD: int = 8

# --- Bulk input columns ---
CSV_REQUIRED_COLUMNS = ("name", "title")
CSV_OPTIONAL_COLUMNS = ("manager", "lob", "division", "dept", "email", "id")
CSV_COLUMN_ALIASES = {
    "managername": "manager",
    "manager_name": "manager",
    "department": "dept",
}
