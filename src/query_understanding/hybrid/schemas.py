"""Pydantic schemas for the JSON the generation backend returns."""

from datetime import date
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from query_understanding.extractors import FUTURE_YEARS_ALLOWED, MIN_GRADUATION_YEAR, expand_two_digit_year
from query_understanding.models import ExtractedEntities, Intent, clamp_confidence


ENTITY_KEYS = (
    "graduation_year", "graduationYear", "year", "years",
    "location", "city",
    "branch", "department",
    "skills", "skill",
    "services", "service",
    "name", "person_name", "personName",
    "organization_name", "organizationName", "organization", "company",
)


def _as_list(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v is not None and v != ""]
    return [value]


def _as_text(value: Any) -> Optional[str]:
    """First non-empty string of a scalar-or-list value."""
    for item in _as_list(value):
        text = str(item).strip()
        if text and text.lower() not in ("null", "none", "n/a", "unknown"):
            return text
    return None


class GeneratedEntities(BaseModel):
    """Entity slots as produced by the model."""
    model_config = ConfigDict(extra="ignore")

    graduation_year: List[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("graduation_year", "graduationYear", "year", "years"),
    )
    location: Optional[str] = Field(None, validation_alias=AliasChoices("location", "city"))
    branch: Optional[str] = Field(None, validation_alias=AliasChoices("branch", "department"))
    skills: List[str] = Field(default_factory=list, validation_alias=AliasChoices("skills", "skill"))
    services: List[str] = Field(default_factory=list, validation_alias=AliasChoices("services", "service"))
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "person_name", "personName"))
    organization_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("organization_name", "organizationName", "organization", "company"),
    )

    @field_validator("graduation_year", mode="before")
    @classmethod
    def parse_years(cls, value: Any) -> List[int]:
        latest = date.today().year + FUTURE_YEARS_ALLOWED
        years = []
        for item in _as_list(value):
            digits = str(item).strip().lstrip("'")
            if not digits.isdigit() or len(digits) not in (2, 4):
                continue
            year = int(digits)
            if len(digits) == 2:
                year = expand_two_digit_year(year)
            if MIN_GRADUATION_YEAR <= year <= latest:
                years.append(year)
        return years

    @field_validator("skills", "services", mode="before")
    @classmethod
    def parse_terms(cls, value: Any) -> List[str]:
        terms = []
        for item in _as_list(value):
            text = str(item).strip()
            if text:
                terms.append(text)
        return terms

    @field_validator("location", "branch", "name", "organization_name", mode="before")
    @classmethod
    def parse_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    def to_entities(self) -> ExtractedEntities:
        return ExtractedEntities(
            graduation_year=tuple(sorted(set(self.graduation_year))),
            location=self.location,
            branch=self.branch,
            skills=tuple(dict.fromkeys(self.skills)),
            services=tuple(dict.fromkeys(self.services)),
            name=self.name,
            organization_name=self.organization_name,
        )


class GeneratedQuery(BaseModel):
    """Top-level reply: intent, entities, confidence."""
    model_config = ConfigDict(extra="ignore")

    intent: Optional[str] = None
    confidence: Optional[float] = None
    entities: GeneratedEntities = Field(default_factory=GeneratedEntities)

    @model_validator(mode="before")
    @classmethod
    def lift_flat_entities(cls, data: Any) -> Any:
        """Accept entities at the top level as well as under "entities"."""
        if isinstance(data, dict) and not isinstance(data.get("entities"), dict):
            flat = {key: data[key] for key in ENTITY_KEYS if key in data}
            data = {k: v for k, v in data.items() if k not in flat}
            data["entities"] = flat
        return data

    @field_validator("intent", mode="before")
    @classmethod
    def parse_intent(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def parse_confidence(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            return clamp_confidence(float(value))
        except (TypeError, ValueError):
            return None

    @property
    def parsed_intent(self) -> Optional[Intent]:
        return Intent.parse(self.intent)
