# File: mirtargetlink/page_selectors.py
# Remote page contract for miRTargetLink 2.0. These ids are owned by the
# remote application; keep them in one place so a page redesign is a
# one-file change.

SEARCH_INPUT = "input.form-control"
SEARCH_SUBMIT = "button.btn.btn-info"

# Results pages resolve to one of these URL shapes.
RESULTS_URL_MARKERS = ("/network/", "/unidirectional_search/")

INTERACTION_TABLE = "#interactionTable"
NODE_TABLE = "#nodeTable"
LOADING_PLACEHOLDER = "Loading..."
# DataTables renders a single notice row when a table has no data.
EMPTY_TABLE_CELL = "td.dataTables_empty"

APPLY_CONFIG = "#updateConfig"

# control id -> selector
CONTROL_SELECTORS = {
    "weak-evidence": "#targetCheckboxWeak",
    "strong-evidence": "#targetCheckboxStrong",
    "predicted-evidence": "#targetCheckboxPredicted",
    "pathway-overlay": "#miRNAPathwaySwitch",
    "neighbor-expansion": "#neighboursSwitch",
    "layout": "#layoutSelect",
}


def table_body(table_selector: str) -> str:
    return f"{table_selector} tbody"


def table_rows(table_selector: str) -> str:
    return f"{table_selector} tbody tr"
