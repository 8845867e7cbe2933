from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd

from sheetdash.data import ENABLED_YES
from sheetdash.store import DataSnapshot


def _enabled(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df
    named = df["name"].astype(str).str.strip() != ""
    return df[named & (df["enabled"].astype(str).str.strip() == ENABLED_YES)]


def category_options(categories: pd.DataFrame) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for row in _enabled(categories).to_dict(orient="records"):
        out.append({"value": row["code"] or row["name"], "label": row["name"]})
    return out


def staff_options(staff: pd.DataFrame) -> List[Dict[str, str]]:
    out: List[Dict[str, str]] = []
    for row in _enabled(staff).to_dict(orient="records"):
        out.append({"value": row["name"], "label": f"{row['name']} - {row['title']}"})
    return out


def organization_options(organizations: pd.DataFrame) -> List[Dict[str, str]]:
    return [{"value": name, "label": name} for name in _enabled(organizations)["name"].tolist()]


def compute_options(snapshot: DataSnapshot) -> Dict[str, Any]:
    return {
        "categories": category_options(snapshot.categories),
        "organizations": organization_options(snapshot.organizations),
        "staff": staff_options(snapshot.staff),
    }
