from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

BaselineOrder = Dict[str, List[str]]

# Display order for ordinal questions (answer text without the storage wrapper).
ORDINAL_ORDERS: Dict[str, List[str]] = {
    "ElR6d2": [
        "Less than 6 months",
        "6 months to 1 year",
        "1 to 2 years",
        "2 to 5 years",
        "More than 5 years (I'm a veteran!)",
        "Prefer not to say",
    ],
    "joRz61": [
        "Not applicable",
        "1-10 people",
        "11-50 people",
        "51-200 people",
        "201-500 people",
        "500+ people",
    ],
    "P9xr1x": [
        "Not applicable (personal use only)",
        "I implement what others choose",
        "I provide input but others decide",
        "I strongly influence the decision",
        "I make the final decision",
    ],
    "xDqzMk": [
        "None - I'm not a programmer",
        "Beginner - basic scripting or configuration",
        "Intermediate - comfortable with multiple languages",
        "Advanced - professional developer or architect",
        "Expert - deep technical expertise across technologies",
        "Prefer not to say",
    ],
    "qGrzbg": [
        "Less than a week",
        "1-2 weeks",
        "About a month",
        "2-3 months",
        "Around 6 months",
        "More than 6 months",
        "Still learning",
    ],
    "ZO7eJB": [
        "No, it is not applicable for my work",
        "No, and unlikely to in the future",
        "No, but I would like to",
        "Yes, for some production workloads",
        "Yes, extensively in production systems",
    ],
    "kG2v5Z": [
        "Simple flows (under 20 nodes, minimal tabs)",
        "Medium complexity (20-50 nodes, multiple tabs)",
        "Complex flows (50+ nodes, multiple tabs)",
        "Advanced flows (100+ nodes, multiple tabs)",
        "Enterprise-scale deployments (flows utilizing multiple Node-RED instances)",
    ],
    "ZO7eO5": ["1", "2-5", "6-10", "11-50", "51-200", "200-999", "1000+"],
}

ORDINAL_QUESTIONS = frozenset(ORDINAL_ORDERS)


def _wrapped(values: Iterable[str]) -> List[str]:
    return [f'["{v}"]' for v in values]


# Sidebar order for filter options (stored values). Decision influence reads
# most-influential first here, unlike its chart order.
FILTER_OPTION_ORDERS: Dict[str, List[str]] = {
    "ElR6d2": _wrapped(ORDINAL_ORDERS["ElR6d2"]),
    "joRz61": _wrapped(ORDINAL_ORDERS["joRz61"]),
    "vJvM01": _wrapped(["1-10", "11-50", "51-200", "201-1000", "1000+"]),
    "P9xr1x": _wrapped(reversed(ORDINAL_ORDERS["P9xr1x"])),
    "xDqzMk": _wrapped(ORDINAL_ORDERS["xDqzMk"]),
    "kG2v5Z": _wrapped(ORDINAL_ORDERS["kG2v5Z"]),
    "ZO7eJB": _wrapped(ORDINAL_ORDERS["ZO7eJB"]),
    "ZO7eO5": _wrapped(ORDINAL_ORDERS["ZO7eO5"]),
}


def sort_by_ordinal_order(
    rows: Sequence[Mapping[str, Any]],
    question_id: str,
    key: str = "category",
) -> List[Mapping[str, Any]]:
    """Rows in the question's ordinal order; unknown categories keep their order at the end."""
    order = ORDINAL_ORDERS.get(question_id)
    if not order:
        return list(rows)
    index = {item: i for i, item in enumerate(order)}
    return sorted(rows, key=lambda row: index.get(row.get(key), len(order)))


def _count(row: Mapping[str, Any]) -> float:
    try:
        return float(row.get("count") or 0)
    except (TypeError, ValueError):
        return 0.0


def apply_baseline_order(
    rows: Sequence[Mapping[str, Any]],
    baseline: Optional[Sequence[str]],
    key: str = "answer_text",
) -> List[Dict[str, Any]]:
    """Baseline items first (missing ones as zero-count rows), then new items by count desc."""
    if not baseline:
        return sorted((dict(r) for r in rows), key=_count, reverse=True)

    by_key = {r.get(key): dict(r) for r in rows}
    ordered = [by_key.get(item, {key: item, "count": 0, "percentage": 0}) for item in baseline]
    known = set(baseline)
    extra = sorted((dict(r) for r in rows if r.get(key) not in known), key=_count, reverse=True)
    return ordered + extra


def sort_filter_options_logically(question_id: str, options: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    order = FILTER_OPTION_ORDERS.get(question_id)
    if not order:
        return list(options)
    index = {value: i for i, value in enumerate(order)}

    def _key(option: Mapping[str, Any]):
        value = option.get("value")
        if value in index:
            return (0, index[value])
        return (1, -_count(option))

    return sorted(options, key=_key)


def baseline_from_rows(rows: Iterable[Mapping[str, Any]], key: str = "answer_text") -> List[str]:
    return [r[key] for r in rows if r.get(key) is not None]


def _percentage(value: Any) -> float:
    if isinstance(value, str):
        value = value.replace("%", "").strip()
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def baseline_from_themes(themes: Iterable[Mapping[str, Any]]) -> List[str]:
    ranked = sorted(themes, key=lambda t: _percentage(t.get("percentage")), reverse=True)
    return [t["theme_name"] for t in ranked if t.get("theme_name")]


def baseline_from_dashboard(rows: Sequence[Mapping[str, Any]]) -> BaselineOrder:
    """Resource orders for the quality, reach-gap and reach rankings."""
    def _by(column: str) -> List[str]:
        ranked = sorted(rows, key=lambda r: int(_percentage(r.get(column))), reverse=True)
        return [r["Resource"] for r in ranked if r.get("Resource")]

    return {
        "qualityRanking": _by("Quality %"),
        "reachGapOpp": _by("Reach Gap Opp"),
        "reachRanking": _by("Reach %"),
    }
