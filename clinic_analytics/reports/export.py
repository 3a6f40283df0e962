"""
Report Export

CSV rendering of report results for the dashboard's exportable tables.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from typing import Any, Dict, Tuple

import pandas as pd

# Reports whose result is a key -> count mapping, with the column names to use
MAPPING_REPORTS: Dict[str, Tuple[str, str]] = {
    'appointment-stats': ('status', 'count'),
}


def result_to_frame(report_type: str, data: Any) -> pd.DataFrame:
    """
    Flatten a serialised report result into a DataFrame.

    Lists of rows become one row each; mapping results become two columns;
    a single object becomes one row. List cells are joined with '; '.
    """
    if report_type in MAPPING_REPORTS and isinstance(data, dict):
        key_column, value_column = MAPPING_REPORTS[report_type]
        df = pd.DataFrame({key_column: list(data.keys()), value_column: list(data.values())})
    elif isinstance(data, list):
        df = pd.DataFrame(data)
    elif isinstance(data, dict):
        df = pd.DataFrame([data])
    else:
        df = pd.DataFrame()

    for column in df.columns:
        if df[column].map(lambda v: isinstance(v, list)).any():
            df[column] = df[column].map(lambda v: '; '.join(str(x) for x in v) if isinstance(v, list) else v)
    return df


def to_csv(report_type: str, data: Any) -> str:
    """Render a serialised report result as CSV text"""
    return result_to_frame(report_type, data).to_csv(index=False)
