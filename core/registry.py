"""Static filter registry for the survey dashboard.

Maps filter categories to survey question ids, their legal option values and
human labels. Category keys double as URL parameter names, so they must stay
stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from core.continents import CONTINENT_OPTIONS


@dataclass(frozen=True)
class FilterOption:
    value: str
    label: str


@dataclass(frozen=True)
class FilterCategory:
    key: str
    question_id: str
    name: str
    description: str
    options: Tuple[FilterOption, ...] = ()
    is_multi_select: bool = False
    is_special_filter: bool = False


@dataclass(frozen=True)
class SegmentPreset:
    key: str
    name: str
    description: str
    filters: Dict[str, List[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class SegmentCriterion:
    question_id: str
    patterns: Tuple[str, ...]
    exact: bool = False


@dataclass(frozen=True)
class SegmentDefinition:
    key: str
    name: str
    criteria: Tuple[SegmentCriterion, ...]


def _opts(*pairs: Tuple[str, str]) -> Tuple[FilterOption, ...]:
    return tuple(FilterOption(value=v, label=l) for v, l in pairs)


def _wrapped(*labels: str) -> Tuple[FilterOption, ...]:
    # Single-select answers are stored as one-element JSON arrays.
    return tuple(FilterOption(value=f'["{l}"]', label=l) for l in labels)


def _plain(*labels: str) -> Tuple[FilterOption, ...]:
    return tuple(FilterOption(value=l, label=l) for l in labels)


# Multi-select questions the WHERE-clause compiler treats as JSON arrays.
MULTI_SELECT_FILTER_QUESTIONS = frozenset({"476OJ5", "VPeNQ6", "rO4YaX", "erJzEk", "NXjP0j"})

# Multi-select questions for breakdown charts (answers are unnested).
MULTI_SELECT_QUESTIONS = frozenset(
    {"VPeNQ6", "rO4YaX", "476OJ5", "kGozGZ", "089kZ6", "erJzEk", "8LBr6x", "Dp8ax5", "Ma4BjA", "NXjP0j"}
)

# Option loading also unnests industry, which is stored as a JSON array.
MULTI_SELECT_OPTION_QUESTIONS = MULTI_SELECT_QUESTIONS | {"2AWoaM"}

NUMERIC_QUESTIONS = frozenset({"qGrzG5", "QRZ4R1", "RoNgoj", "erJzrQ", "2AWpaV"})

COUNTRY_QUESTION_ID = "GpGjoO"
EXPERIENCE_QUESTION_ID = "ElR6d2"


_CATEGORIES: Tuple[FilterCategory, ...] = (
    FilterCategory(
        key="continent",
        question_id=COUNTRY_QUESTION_ID,
        name="Continent",
        description="Geographic region",
        options=_plain(*CONTINENT_OPTIONS),
        is_special_filter=True,
    ),
    FilterCategory(
        key="experience",
        question_id=EXPERIENCE_QUESTION_ID,
        name="Experience Level",
        description="How long have you been using Node-RED?",
        options=_wrapped(
            "Less than 6 months",
            "6 months to 1 year",
            "1 to 2 years",
            "2 to 5 years",
            "More than 5 years (I'm a veteran!)",
        ),
    ),
    FilterCategory(
        key="purpose",
        question_id="VPeNQ6",
        name="Primary Purpose",
        description="What best describes your primary use of Node-RED?",
        options=_opts(
            ("Hobbyist/Personal projects (home automation, learning, experiments)", "Hobbyist/Personal projects"),
            ("Professional developer (work projects, client solutions)", "Professional developer"),
            ("System architect/designer (design Node-RED-based solutions)", "System architect/designer"),
            ("Enterprise/Production user (business-critical systems)", "Enterprise/Production user"),
            ("Technical decision maker (evaluate tools for organization)", "Technical decision maker"),
            ("IT manager/director (manage infrastructure)", "IT manager/director"),
            ("Student or Educator (learning or teaching)", "Student or Educator"),
            ("Operations/Plant manager (oversee deployments)", "Operations/Plant manager"),
            ("Product/Platform Developer", "Product/Platform Developer"),
            ("Other", "Other"),
        ),
        is_multi_select=True,
    ),
    FilterCategory(
        key="orgSize",
        question_id="joRz61",
        name="Organization Size",
        description="What is the size of your organization?",
        options=_wrapped("1-10 people", "11-50 people", "51-200 people", "201-500 people", "500+ people"),
    ),
    FilterCategory(
        key="industry",
        question_id="2AWoaM",
        name="Industry",
        description="What industry do you primarily work in?",
        options=_plain(
            "Technology/Software",
            "Manufacturing/Industrial",
            "Automotive",
            "Energy/Utilities",
            "Healthcare",
            "Food",
            "Government/Public Sector",
            "Education",
            "Finance/Banking",
            "Other",
        ),
    ),
    FilterCategory(
        key="influence",
        question_id="P9xr1x",
        name="Decision Influence",
        description="How would you describe your role in technology decisions?",
        options=_wrapped(
            "I make the final decision",
            "I strongly influence the decision",
            "I provide input but others decide",
            "I implement decisions made by others",
            "Not applicable",
        ),
    ),
    FilterCategory(
        key="programming",
        question_id="xDqzMk",
        name="Programming Background",
        description="How would you rate your programming experience?",
        options=_wrapped(
            "No programming experience", "Beginner", "Some experience", "Intermediate", "Advanced", "Expert"
        ),
    ),
    FilterCategory(
        key="complexity",
        question_id="kG2v5Z",
        name="Flow Complexity",
        description="What is the typical complexity of your Node-RED flows?",
        options=_wrapped(
            "Simple flows (under 20 nodes, minimal tabs)",
            "Medium complexity (20-50 nodes, multiple tabs)",
            "Complex flows (50+ nodes, multiple tabs)",
            "Advanced flows (100+ nodes, multiple tabs)",
            "Enterprise-scale deployments (flows utilizing multiple Node-RED instances)",
        ),
    ),
    FilterCategory(
        key="production",
        question_id="ZO7eJB",
        name="Production Usage",
        description="Do you use Node-RED in production systems?",
        options=_wrapped(
            "Yes, extensively in production systems",
            "Yes, in some production systems",
            "No, but I would like to use it in production",
            "No, unlikely to use in production",
            "Not applicable",
        ),
    ),
    FilterCategory(
        key="instances",
        question_id="ZO7eO5",
        name="Number of Instances",
        description="How many Node-RED instances do you typically manage?",
        options=_opts(
            ('["1"]', "1 instance"),
            ('["2-5"]', "2-5 instances"),
            ('["6-10"]', "6-10 instances"),
            ('["11-50"]', "11-50 instances"),
            ('["51-200"]', "51-200 instances"),
            ('["200-999"]', "200-999 instances"),
            ('["1000+"]', "1000+ instances"),
        ),
    ),
    FilterCategory(
        key="useCases",
        question_id="rO4YaX",
        name="Use Cases",
        description="What do you use Node-RED for?",
        options=_plain(
            "Home/Personal",
            "Industrial/Business",
            "Data & Integration",
            "Education & Prototyping",
            "Specialized Applications",
        ),
        is_multi_select=True,
    ),
    FilterCategory(
        key="environment",
        question_id="476OJ5",
        name="Run Environment",
        description="Where do you primarily run Node-RED?",
        options=_wrapped(
            "My laptop or desktop computer",
            "Raspberry Pi or similar single-board computer",
            "Cloud server (VPS, AWS, Google Cloud, etc.)",
            "Industrial PC or edge device",
            "On-premises servers",
            "Edge devices",
            "Home automation systems",
            "Other",
        ),
        is_multi_select=True,
    ),
    FilterCategory(
        key="emailDomain",
        question_id="2AWolV",
        name="Email Domain Type",
        description="Type of email domain used",
        options=_plain("Personal Email", "Work Email"),
    ),
)

FILTER_DEFINITIONS: Dict[str, FilterCategory] = {c.key: c for c in _CATEGORIES}
QUESTION_TO_FILTER: Dict[str, str] = {c.question_id: c.key for c in _CATEGORIES}


_PROFESSIONAL_PURPOSES = [
    "Professional developer (work projects, client solutions)",
    "System architect/designer (design Node-RED-based solutions)",
    "IT manager/director (manage infrastructure)",
    "Technical decision maker (evaluate tools for organization)",
    "Enterprise/Production user (business-critical systems)",
    "Operations/Plant manager (oversee deployments)",
    "Product/Platform Developer",
    "Other",
]

SEGMENT_PRESETS: Dict[str, SegmentPreset] = {
    p.key: p
    for p in (
        SegmentPreset(
            key="manufacturing-icp",
            name="L-Size Companies",
            description="Enterprise users (500+ employees) in professional/technical roles",
            filters={"purpose": list(_PROFESSIONAL_PURPOSES), "orgSize": ['["500+ people"]']},
        ),
        SegmentPreset(
            key="hobby-segment",
            name="Hobbyists",
            description="Hobbyists and personal project users",
            filters={"purpose": ["Hobbyist/Personal projects (home automation, learning, experiments)"]},
        ),
        SegmentPreset(
            key="m-size-comp-segment",
            name="M-Size Companies",
            description="Medium-sized companies (51-500 employees) with professional/technical roles",
            filters={"purpose": list(_PROFESSIONAL_PURPOSES), "orgSize": ['["51-200 people"]', '["201-500 people"]']},
        ),
        SegmentPreset(
            key="s-size-comp-segment",
            name="S-Size Companies",
            description="Small-sized companies (1-50 employees) with professional/technical roles",
            filters={"purpose": list(_PROFESSIONAL_PURPOSES), "orgSize": ['["1-10 people"]', '["11-50 people"]']},
        ),
    )
}


_PRODUCTION_YES = SegmentCriterion("ZO7eJB", ("Yes", "production"))
_DECIDERS = SegmentCriterion(
    "P9xr1x", ('["I strongly influence the decision"]', '["I make the final decision"]'), exact=True
)
_EXPERIENCED = SegmentCriterion("ElR6d2", ("1-2 years", "2-5 years", "5+ years", "More than 5"))

SEGMENT_DEFINITIONS: Dict[str, SegmentDefinition] = {
    s.key: s
    for s in (
        SegmentDefinition(
            key="enterprise_production_champions",
            name="Enterprise Production Champions",
            criteria=(
                _PRODUCTION_YES,
                SegmentCriterion("joRz61", ("500+", "Large enterprise")),
                _DECIDERS,
                SegmentCriterion("ElR6d2", ("2-5 years", "5+ years", "More than 5")),
            ),
        ),
        SegmentDefinition(
            key="industrial_automation",
            name="Industrial Automation Professionals",
            criteria=(
                SegmentCriterion("VPeNQ6", ("Industrial automation", "IoT", "Manufacturing")),
                _PRODUCTION_YES,
                _EXPERIENCED,
            ),
        ),
        SegmentDefinition(
            key="professional_builders",
            name="Professional Solution Builders",
            criteria=(
                SegmentCriterion("VPeNQ6", ("Professional developer", "System architect", "Enterprise user")),
                _PRODUCTION_YES,
                SegmentCriterion("xDqzMk", ("Intermediate", "Advanced", "Expert")),
                SegmentCriterion("kG2v5Z", ("20-49 nodes", "50+ nodes", "100+ nodes", "Enterprise")),
            ),
        ),
        SegmentDefinition(
            key="decision_influencers",
            name="Technical Decision Influencers",
            criteria=(_DECIDERS, SegmentCriterion("joRz61", ("51-500", "500+")), _EXPERIENCED),
        ),
        SegmentDefinition(
            key="emerging_adopters",
            name="Emerging Enterprise Adopters",
            criteria=(
                SegmentCriterion("ZO7eJB", ("No, but I would like to",)),
                SegmentCriterion("joRz61", ("51-500", "500+")),
                _DECIDERS,
                _EXPERIENCED,
            ),
        ),
        SegmentDefinition(
            key="smb_leaders",
            name="SMB Automation Leaders",
            criteria=(
                SegmentCriterion("joRz61", ("1-10", "11-50")),
                _DECIDERS,
                SegmentCriterion("ZO7eJB", ("Yes", "production", "No, but I would like to")),
            ),
        ),
    )
}


def get_filter_label(category_key: str) -> str:
    category = FILTER_DEFINITIONS.get(category_key)
    return category.name if category else category_key


def get_filter_options(category_key: str) -> List[FilterOption]:
    category = FILTER_DEFINITIONS.get(category_key)
    return list(category.options) if category else []


def get_all_filter_categories() -> List[str]:
    return list(FILTER_DEFINITIONS)


def get_preset(preset_key: str) -> Optional[SegmentPreset]:
    return SEGMENT_PRESETS.get(preset_key)


def get_question_metadata() -> Dict[str, str]:
    """Question id -> human filter name, for every registered category."""
    return {c.question_id: c.name for c in FILTER_DEFINITIONS.values()}


def is_multi_select_filter(question_id: str) -> bool:
    return question_id in MULTI_SELECT_FILTER_QUESTIONS
