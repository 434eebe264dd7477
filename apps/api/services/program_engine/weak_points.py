"""
Weak Point Analysis

Identifies what a program should prioritize, in a fixed order:

1. Injury-driven stability work (priority 1-2), from keywords in the
   injury text. Always listed first.
2. Strength-ratio imbalances (priority 1-3), from deadlift/squat,
   bench/squat and overhead-press/bench. A ratio is evaluated only when
   both lifts are present with confidence of at least an estimated 1RM.
3. Push/pull balance (priority 4), only when nothing above fired.
4. Goal specialization (priority 6) for hypertrophy and strength goals.

The result is never empty.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .constants import (
    BALANCE_CATEGORY,
    BALANCE_EXERCISES,
    BALANCE_PRIORITY,
    HIGH_SEVERITY_FACTOR,
    INJURY_KEYWORD_CATEGORIES,
    RATIO_CORRECTIVE_EXERCISES,
    REASSESSMENT_WEEKS,
    SPECIALIZATION_BY_GOAL,
    SPECIALIZATION_PRIORITY,
    STRENGTH_RATIO_STANDARDS,
    WeakPointSource,
)
from .profile import UserProfile

_SOURCE_ORDER = {source: index for index, source in enumerate(WeakPointSource)}


def _keyword_pattern(keywords: List[str]) -> re.Pattern:
    """Whole-word alternation; `stem*` matches any word starting with stem."""
    parts = []
    for keyword in keywords:
        if keyword.endswith("*"):
            parts.append(re.escape(keyword[:-1]) + r"\w*")
        else:
            parts.append(re.escape(keyword) + "s?")
    return re.compile(r"\b(?:" + "|".join(parts) + r")\b")


_INJURY_PATTERNS = {
    key: _keyword_pattern(keywords)
    for key, (keywords, _, _, _) in INJURY_KEYWORD_CATEGORIES.items()
}


@dataclass
class WeakPoint:
    """One prioritized finding."""
    category: str
    priority: int
    rationale: str
    recommended_exercises: List[str]
    source: WeakPointSource
    severity: Optional[str] = None  # 'high' | 'moderate' for ratio findings
    ratio: Optional[float] = None
    threshold: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            "category": self.category,
            "priority": self.priority,
            "rationale": self.rationale,
            "recommended_exercises": list(self.recommended_exercises),
            "source": self.source.value,
            "severity": self.severity,
            "ratio": self.ratio,
            "threshold": self.threshold,
        }


@dataclass
class WeakPointAnalysis:
    """Ordered findings plus when to re-test."""
    weak_points: List[WeakPoint] = field(default_factory=list)
    reassessment_weeks: int = REASSESSMENT_WEEKS["none"]

    @property
    def top(self) -> WeakPoint:
        return self.weak_points[0]


def _injury_findings(injuries: Optional[str]) -> List[WeakPoint]:
    if not injuries or not injuries.strip():
        return []
    text = injuries.lower()
    findings = []
    for key, (_, priority, category, exercises) in INJURY_KEYWORD_CATEGORIES.items():
        match = _INJURY_PATTERNS[key].search(text)
        if match is None:
            continue
        findings.append(WeakPoint(
            category=category,
            priority=priority,
            rationale=(
                f"Reported {key} issue ('{match.group(0)}') calls for stability work and "
                f"conservative loading of movements that stress the area."
            ),
            recommended_exercises=list(exercises),
            source=WeakPointSource.INJURY,
        ))
    return findings


def _ratio_findings(profile: UserProfile) -> List[WeakPoint]:
    findings = []
    for name, (numerator, denominator, minimum, category) in STRENGTH_RATIO_STANDARDS.items():
        top = profile.estimate(numerator)
        bottom = profile.estimate(denominator)
        if top is None or bottom is None:
            continue
        if not (top.is_reliable() and bottom.is_reliable()):
            continue

        ratio = top.value / bottom.value
        if ratio >= minimum:
            continue

        severity = "high" if ratio < minimum * HIGH_SEVERITY_FACTOR else "moderate"
        findings.append(WeakPoint(
            category=category,
            priority=1 if severity == "high" else 2,
            rationale=(
                f"{numerator.value.replace('_', ' ').title()} to "
                f"{denominator.value.replace('_', ' ')} ratio is {ratio:.2f}, "
                f"below the {minimum:.2f} standard."
            ),
            recommended_exercises=list(RATIO_CORRECTIVE_EXERCISES[category]),
            source=WeakPointSource.STRENGTH_RATIO,
            severity=severity,
            ratio=round(ratio, 2),
            threshold=minimum,
        ))

    # Most severe first; ratio priorities occupy 1-3
    findings.sort(key=lambda wp: wp.ratio / wp.threshold)
    for index, finding in enumerate(findings):
        finding.priority = min(max(finding.priority, index + 1), 3)
    return findings


def _balance_finding() -> WeakPoint:
    return WeakPoint(
        category=BALANCE_CATEGORY,
        priority=BALANCE_PRIORITY,
        rationale=(
            "No specific imbalance detected; keep pulling volume at least equal to "
            "pressing volume for shoulder health and posture."
        ),
        recommended_exercises=list(BALANCE_EXERCISES),
        source=WeakPointSource.BALANCE,
    )


def _specialization_finding(profile: UserProfile) -> Optional[WeakPoint]:
    if profile.goal is None or profile.goal not in SPECIALIZATION_BY_GOAL:
        return None
    category, rationale, exercises = SPECIALIZATION_BY_GOAL[profile.goal]
    return WeakPoint(
        category=category,
        priority=SPECIALIZATION_PRIORITY,
        rationale=rationale,
        recommended_exercises=list(exercises),
        source=WeakPointSource.SPECIALIZATION,
    )


def _reassessment_weeks(findings: List[WeakPoint]) -> int:
    severities = {wp.severity for wp in findings if wp.severity}
    if "high" in severities:
        return REASSESSMENT_WEEKS["high"]
    if "moderate" in severities:
        return REASSESSMENT_WEEKS["moderate"]
    return REASSESSMENT_WEEKS["none"]


def analyze_weak_points(profile: UserProfile) -> WeakPointAnalysis:
    """Run the full analysis. Output always has at least one entry."""
    findings = _injury_findings(profile.injuries) + _ratio_findings(profile)
    if not findings:
        findings.append(_balance_finding())

    specialization = _specialization_finding(profile)
    if specialization is not None:
        findings.append(specialization)

    findings.sort(key=lambda wp: (_SOURCE_ORDER[wp.source], wp.priority))
    return WeakPointAnalysis(
        weak_points=findings,
        reassessment_weeks=_reassessment_weeks(findings),
    )
