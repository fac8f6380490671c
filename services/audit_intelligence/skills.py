"""
Skill Taxonomy
==============

Tagged skill categories and the lookup tables used to score an auditor's
proficiency against the skills an audit context requires.

Version: 0.1.0
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from shared.models import AuditContext, ComplexityLevel, ExpertiseProfile


class SkillCategory(str, Enum):
    """Kind of skill an audit context can require."""

    RISK = "risk"
    INDUSTRY = "industry"
    COMPLEXITY = "complexity"
    TECHNICAL = "technical"


class SkillCriticality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# (proficiency when the auditor has the skill, proficiency otherwise)
PROFICIENCY_TABLE: dict[SkillCategory, tuple[float, float]] = {
    SkillCategory.RISK: (90.0, 60.0),
    SkillCategory.INDUSTRY: (85.0, 50.0),
    SkillCategory.COMPLEXITY: (80.0, 60.0),
    SkillCategory.TECHNICAL: (80.0, 65.0),
}

COMPLEXITY_REQUIRED_LEVEL: dict[ComplexityLevel, float] = {
    ComplexityLevel.SIMPLE: 60.0,
    ComplexityLevel.MODERATE: 75.0,
    ComplexityLevel.COMPLEX: 85.0,
    ComplexityLevel.HIGHLY_COMPLEX: 95.0,
}

DEFAULT_REQUIRED_LEVEL = 75.0
HIGH_RISK_SCORE = 20.0

ADVANCED_ANALYTICS = "advanced_analytical_skills"
TIME_MANAGEMENT = "time_management"


@dataclass(frozen=True)
class RequiredSkill:
    """A skill demanded by an audit context."""

    category: SkillCategory
    tag: str

    @property
    def name(self) -> str:
        if self.category == SkillCategory.RISK:
            return f"{self.tag}_risk_assessment"
        if self.category == SkillCategory.INDUSTRY:
            return f"{self.tag}_industry_knowledge"
        if self.category == SkillCategory.COMPLEXITY:
            return f"{self.tag}_complexity_handling"
        return self.tag


def extract_required_skills(context: AuditContext) -> list[RequiredSkill]:
    """Skills needed for the context, risk and industry first."""
    skills = [
        RequiredSkill(SkillCategory.RISK, context.risk_category),
        RequiredSkill(
            SkillCategory.INDUSTRY,
            context.organizational_context.industry_type,
        ),
        RequiredSkill(SkillCategory.COMPLEXITY, context.complexity_level.value),
    ]

    if context.quality_requirements.review_requirements == "expert":
        skills.append(RequiredSkill(SkillCategory.TECHNICAL, ADVANCED_ANALYTICS))

    if context.is_critical:
        skills.append(RequiredSkill(SkillCategory.TECHNICAL, TIME_MANAGEMENT))

    return skills


def auditor_proficiency(profile: ExpertiseProfile, skill: RequiredSkill) -> float:
    """Heuristic 0-100 proficiency of an auditor in a required skill."""
    matched, unmatched = PROFICIENCY_TABLE[skill.category]

    if skill.category == SkillCategory.RISK:
        has_skill = skill.tag in profile.risk_specializations
    elif skill.category == SkillCategory.INDUSTRY:
        has_skill = skill.tag in profile.industry_experience
    elif skill.category == SkillCategory.COMPLEXITY:
        has_skill = profile.complexity_handling >= ComplexityLevel(skill.tag)
    else:
        has_skill = skill.tag in profile.technical_skills

    return matched if has_skill else unmatched


def required_level(skill: RequiredSkill, context: AuditContext) -> float:
    """Proficiency the context demands for a skill."""
    if skill.category == SkillCategory.RISK:
        return 85.0 if context.inherent_risk >= HIGH_RISK_SCORE else 70.0
    if skill.category == SkillCategory.COMPLEXITY:
        return COMPLEXITY_REQUIRED_LEVEL[context.complexity_level]
    return DEFAULT_REQUIRED_LEVEL


def skill_criticality(skill: RequiredSkill, context: AuditContext) -> SkillCriticality:
    if skill.category == SkillCategory.RISK and context.inherent_risk >= HIGH_RISK_SCORE:
        return SkillCriticality.CRITICAL
    if skill.category == SkillCategory.COMPLEXITY and context.is_highly_complex:
        return SkillCriticality.HIGH
    if skill.tag == TIME_MANAGEMENT and context.is_critical:
        return SkillCriticality.HIGH
    return SkillCriticality.MEDIUM
