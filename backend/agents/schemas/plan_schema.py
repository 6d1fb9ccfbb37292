"""
Plan Schemas - outputs of the analyze and plan phases

These are the contracts the reasoning model must fill in. The bridge
function to_model_refs() is the only way planner models reach providers.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from integrations.types import ModelRef, MonetizationPlan, PropertyRef


class Feature(BaseModel):
    name: str = Field(..., description="Short feature name")
    description: str = Field("", description="What the feature does")


class AnalysisResult(BaseModel):
    """Structured understanding of the user's request"""
    app_name: str = Field(..., description="PascalCase app name without spaces")
    description: str = Field("", description="One-paragraph app summary")
    features: List[Feature] = Field(default_factory=list)
    core_flow: str = Field("", description="Primary user journey")
    deferred: List[str] = Field(default_factory=list, description="Ideas left out of the first version")

    @field_validator("app_name")
    @classmethod
    def app_name_not_blank(cls, v: str) -> str:
        cleaned = "".join(ch for ch in v if ch.isalnum())
        if not cleaned:
            raise ValueError("app_name must contain letters or digits")
        return cleaned


class Palette(BaseModel):
    primary: str = ""
    secondary: str = ""
    accent: str = ""
    background: str = ""
    surface: str = ""


class DesignSystem(BaseModel):
    navigation: str = ""
    palette: Palette = Field(default_factory=Palette)
    font_design: str = ""
    corner_radius: int = 12
    density: str = ""
    surfaces: str = ""
    app_mood: str = ""


class FilePlan(BaseModel):
    """One source unit the coding agent must produce"""
    path: str = Field(..., description="Path relative to the app source root")
    type_name: str = Field("", description="Primary type the file declares")
    purpose: str = ""
    components: str = ""
    data_access: str = ""
    depends_on: List[str] = Field(default_factory=list)


class PropertyPlan(BaseModel):
    name: str
    type: str
    default_value: Optional[str] = None


class ModelPlan(BaseModel):
    name: str
    storage: str = ""
    properties: List[PropertyPlan] = Field(default_factory=list)


class Permission(BaseModel):
    key: str
    description: str = ""
    framework: str = ""


class BackendNeeds(BaseModel):
    auth: bool = False
    auth_methods: List[str] = Field(default_factory=list, description="email, apple, google, anonymous, phone")
    db: bool = False
    storage: bool = False
    realtime: bool = False

    def needs_backend(self) -> bool:
        return self.auth or self.db or self.storage or self.realtime


class PlannerResult(BaseModel):
    """Build plan: files, models and the integrations they need"""
    design: DesignSystem = Field(default_factory=DesignSystem)
    files: List[FilePlan] = Field(..., description="Source units to generate")
    models: List[ModelPlan] = Field(default_factory=list)
    permissions: List[Permission] = Field(default_factory=list)
    integrations: List[str] = Field(default_factory=list, description="Provider ids, e.g. supabase")
    backend: BackendNeeds = Field(default_factory=BackendNeeds)
    monetization: Optional[MonetizationPlan] = None
    rule_keys: List[str] = Field(default_factory=list)
    build_order: List[str] = Field(default_factory=list)

    @field_validator("files")
    @classmethod
    def files_not_empty(cls, v: List[FilePlan]) -> List[FilePlan]:
        if not v:
            raise ValueError("plan must contain at least one file")
        return v


def to_model_refs(models: List[ModelPlan]) -> List[ModelRef]:
    """Convert planner models into provider-facing ModelRefs."""
    return [
        ModelRef(
            name=m.name,
            storage=m.storage,
            properties=[PropertyRef(name=p.name, type=p.type, default_value=p.default_value) for p in m.properties],
        )
        for m in models
    ]


__all__ = [
    "Feature",
    "AnalysisResult",
    "Palette",
    "DesignSystem",
    "FilePlan",
    "PropertyPlan",
    "ModelPlan",
    "Permission",
    "BackendNeeds",
    "PlannerResult",
    "to_model_refs",
]
