from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def breakdown_frame(rows: Sequence[Mapping[str, Any]], label_key: str = "answer_text") -> pd.DataFrame:
    frame = pd.DataFrame(list(rows))
    if frame.empty:
        return pd.DataFrame(columns=["label", "count", "percentage"])
    frame = frame.rename(columns={label_key: "label"})
    if "percentage" not in frame.columns:
        total = frame["count"].sum()
        frame["percentage"] = (frame["count"] * 100.0 / total).round(1) if total else 0.0
    frame["count"] = pd.to_numeric(frame["count"], errors="coerce").fillna(0).astype(int)
    frame["percentage"] = pd.to_numeric(frame["percentage"], errors="coerce").fillna(0.0)
    return frame[["label", "count", "percentage"]]


def breakdown_bar_chart(
    rows: Sequence[Mapping[str, Any]],
    title: str = "",
    label_key: str = "answer_text",
    color: str = "#8f0000",
) -> alt.Chart:
    """Horizontal bars in the order the rows arrive (baseline or ordinal order)."""
    frame = breakdown_frame(rows, label_key)
    order: List[str] = frame["label"].astype(str).tolist()
    chart = (
        alt.Chart(frame)
        .mark_bar(color=color)
        .encode(
            x=alt.X("percentage:Q", title="% of respondents", scale=alt.Scale(domain=[0, 100])),
            y=alt.Y("label:N", sort=order, title=None),
            tooltip=[
                alt.Tooltip("label:N", title="Answer"),
                alt.Tooltip("count:Q", title="Respondents"),
                alt.Tooltip("percentage:Q", title="%", format=".1f"),
            ],
        )
    )
    if title:
        chart = chart.properties(title=title)
    return chart


def breakdown_spec(
    rows: Sequence[Mapping[str, Any]],
    title: str = "",
    label_key: str = "answer_text",
    height: Optional[int] = None,
) -> Dict[str, Any]:
    chart = breakdown_bar_chart(rows, title=title, label_key=label_key)
    if height:
        chart = chart.properties(height=height)
    return to_vega_spec(chart)
