"""
Integration Types

Shared records for the provider registry: descriptors, stored configs,
status summaries, and the ModelRef/PropertyRef bridge that carries planned
data models into providers without exposing planner internals.
"""
import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

ProviderID = str


class ProviderDescriptor(BaseModel):
    """Static, read-only metadata for one provider"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Display name")
    description: str = Field(..., description="One-line summary")
    package: str = Field(..., description="Client SDK package reference")
    mcp_command: str = Field(..., description="Executable that serves the provider's tools")
    mcp_args: List[str] = Field(default_factory=list)
    docs_mcp_package: Optional[str] = Field(None, description="Optional documentation tool server package")


class IntegrationConfig(BaseModel):
    """Stored credentials and identifiers for one provider in one app"""
    provider: ProviderID
    project_url: str = ""
    project_ref: str = ""
    anon_key: str = Field("", repr=False)
    pat: str = Field("", repr=False)
    validated_at: Optional[str] = None


class IntegrationStatus(BaseModel):
    """Configuration summary safe to show to users"""
    provider: ProviderID
    app_name: str
    configured: bool = False
    project_url: str = ""
    has_anon_key: bool = False
    has_pat: bool = False
    validated_at: Optional[str] = None

    @classmethod
    def from_config(cls, app_name: str, config: Optional[IntegrationConfig], provider: ProviderID) -> "IntegrationStatus":
        if config is None:
            return cls(provider=provider, app_name=app_name)
        return cls(
            provider=provider,
            app_name=app_name,
            configured=bool(config.project_url or config.project_ref or config.pat),
            project_url=config.project_url,
            has_anon_key=bool(config.anon_key),
            has_pat=bool(config.pat),
            validated_at=config.validated_at,
        )


class PropertyRef(BaseModel):
    """One property of a planned data model"""
    name: str
    type: str
    default_value: Optional[str] = None


class ModelRef(BaseModel):
    """A planned data model as seen by providers"""
    name: str
    storage: str = ""
    properties: List[PropertyRef] = Field(default_factory=list)


class ProductPlan(BaseModel):
    """A purchasable product in a monetization plan"""
    identifier: str
    type: str = Field("subscription", description="subscription, consumable or non_consumable")
    display_name: str = ""
    duration: str = Field("", description="P1W, P1M, P1Y ... for subscriptions")


class MonetizationPlan(BaseModel):
    """Billing layout requested by the planner"""
    entitlement: str = "premium"
    products: List[ProductPlan] = Field(default_factory=list)


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def camel_to_snake(name: str) -> str:
    """TodoItem -> todo_item, URLCache -> url_cache"""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def model_table_name(model: ModelRef) -> str:
    """Table name for a model: snake_case, naively pluralized."""
    snake = camel_to_snake(model.name)
    if snake.endswith("s"):
        return snake
    if snake.endswith("y") and len(snake) > 1 and snake[-2] not in "aeiou":
        return snake[:-1] + "ies"
    return snake + "s"


__all__ = [
    "ProviderID",
    "ProviderDescriptor",
    "IntegrationConfig",
    "IntegrationStatus",
    "PropertyRef",
    "ModelRef",
    "ProductPlan",
    "MonetizationPlan",
    "camel_to_snake",
    "model_table_name",
]
