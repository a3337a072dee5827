"""
Pydantic models for the scraped inputs.

Field names are snake_case in Python; the camelCase names produced by the
scraping and enrichment jobs are accepted as aliases.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

_DATETIME = TypeAdapter(datetime)


class BanStatus(str, Enum):
    """Solid fuel fire ban status for a fire-ban area."""
    BANNED = "BANNED"
    NOT_BANNED = "NOT_BANNED"
    UNKNOWN = "UNKNOWN"


class ClosureStatus(str, Enum):
    """Closure status of a notice, or the rolled-up status of a forest (NONE)."""
    NONE = "NONE"
    NOTICE = "NOTICE"
    PARTIAL = "PARTIAL"
    CLOSED = "CLOSED"


class ImpactLevel(str, Enum):
    """Severity of a closure's effect on one activity."""
    NONE = "NONE"
    ADVISORY = "ADVISORY"
    RESTRICTED = "RESTRICTED"
    CLOSED = "CLOSED"
    UNKNOWN = "UNKNOWN"


class ImpactConfidence(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ImpactSource(str, Enum):
    LLM = "LLM"
    RULES = "RULES"


class InputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FireBanArea(InputModel):
    """One fire-ban area and the forests it lists."""
    area_name: str
    area_url: str = ""
    status: BanStatus = BanStatus.UNKNOWN
    status_text: Optional[str] = None
    forests: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("forests", "forestNames", "forest_names"),
    )


class FacilityDefinition(InputModel):
    key: str
    label: str = ""


class FacilityDirectoryEntry(InputModel):
    forest_name: str
    forest_url: Optional[str] = None
    facilities: Dict[str, bool] = Field(default_factory=dict)


class FacilityDirectory(InputModel):
    """Facility directory: filter definitions plus per-forest booleans."""
    filters: List[FacilityDefinition] = Field(default_factory=list)
    forests: List[FacilityDirectoryEntry] = Field(default_factory=list)

    def facilities_by_forest_name(self) -> Dict[str, Dict[str, bool]]:
        """Directory entries keyed by forest name; repeated names are OR-ed."""
        merged: Dict[str, Dict[str, bool]] = {}
        for entry in self.forests:
            existing = merged.setdefault(entry.forest_name, {})
            for key, value in entry.facilities.items():
                existing[key] = existing.get(key, False) or bool(value)
        return merged


class StructuredImpact(InputModel):
    """Per-activity impact judgement for a closure notice."""
    source: ImpactSource = ImpactSource.LLM
    confidence: ImpactConfidence = ImpactConfidence.LOW
    camping_impact: ImpactLevel = ImpactLevel.UNKNOWN
    access_2wd_impact: ImpactLevel = Field(
        ImpactLevel.UNKNOWN,
        validation_alias=AliasChoices("access2wdImpact", "access_2wd_impact"),
    )
    access_4wd_impact: ImpactLevel = Field(
        ImpactLevel.UNKNOWN,
        validation_alias=AliasChoices("access4wdImpact", "access_4wd_impact"),
    )
    rationale: Optional[str] = None


class ClosureNotice(InputModel):
    """A closure or advisory notice, before or after impact classification."""
    id: str
    title: str
    forest_name_hint: Optional[str] = None
    status: ClosureStatus = ClosureStatus.NOTICE
    listed_at: Optional[datetime] = None
    until_at: Optional[datetime] = None
    detail_text: Optional[str] = None
    structured_impact: Optional[StructuredImpact] = None

    @field_validator("listed_at", "until_at", mode="before")
    @classmethod
    def _parse_optional_datetime(cls, value: Any) -> Optional[datetime]:
        """Blank or unparseable dates count as absent rather than failing the run."""
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str) and not value.strip():
            return None
        try:
            return _DATETIME.validate_python(value)
        except ValidationError:
            logger.warning(f"Ignoring unparseable closure date: {value!r}")
            return None

    def is_active(self, now: datetime) -> bool:
        """False if the notice is listed in the future or expired in the past."""
        now = _as_utc(now)
        if self.listed_at is not None and _as_utc(self.listed_at) > now:
            return False
        if self.until_at is not None and _as_utc(self.until_at) < now:
            return False
        return True


class ReconciliationInput(InputModel):
    """Everything the scraping job hands over for one run."""
    areas: List[FireBanArea] = Field(default_factory=list)
    directory: FacilityDirectory = Field(default_factory=FacilityDirectory)
    closures: List[ClosureNotice] = Field(default_factory=list)

    def forest_names(self) -> List[str]:
        """Unique fire-ban forest names in first-seen order."""
        return list(dict.fromkeys(name for area in self.areas for name in area.forests))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
