"""
Provider Contract

Responsibilities:
- Define the Provider base class (identity + descriptor)
- Define the four optional capabilities a provider may implement:
  setup/lifecycle, prompt contribution, tool server, provisioning
- Define the request/response records each capability exchanges
- Offer as_capability() so callers can query support without errors

A provider opts into a capability by subclassing it. Callers never assume
support: as_capability() returns None for an unsupported capability.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from integrations.types import (
    IntegrationConfig,
    ModelRef,
    MonetizationPlan,
    ProviderDescriptor,
    ProviderID,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Provider(ABC):
    """Base class every registered provider derives from"""

    @property
    @abstractmethod
    def id(self) -> ProviderID:
        ...

    @property
    @abstractmethod
    def descriptor(self) -> ProviderDescriptor:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"


# ---------------------------------------------------------------------------
# Setup / lifecycle
# ---------------------------------------------------------------------------

class SetupRequest(BaseModel):
    """Credentials supplied by the user during setup"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    app_name: str
    store: Any = Field(..., description="IntegrationStore the config is written to")
    project_url: str = ""
    project_ref: str = ""
    anon_key: str = Field("", repr=False)
    pat: str = Field("", repr=False)
    read_only: bool = Field(False, description="Validate only, do not persist")


class ProviderStatus(BaseModel):
    """Whether a provider is configured for an app"""
    configured: bool = False
    project_url: str = ""
    has_anon_key: bool = False
    has_pat: bool = False
    validated_at: Optional[str] = None


class SetupCapable(ABC):
    """Interactive configuration and lifecycle management"""

    @abstractmethod
    def setup(self, request: SetupRequest) -> IntegrationConfig:
        ...

    @abstractmethod
    def remove(self, store: Any, app_name: str) -> None:
        ...

    @abstractmethod
    def status(self, store: Any, app_name: str) -> ProviderStatus:
        ...

    @abstractmethod
    def cli_available(self) -> bool:
        ...


# ---------------------------------------------------------------------------
# Prompt contribution
# ---------------------------------------------------------------------------

class PromptRequest(BaseModel):
    """Inputs a provider may use to shape the build prompts"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    app_name: str
    models: List[ModelRef] = Field(default_factory=list)
    auth_methods: List[str] = Field(default_factory=list)
    store: Any = Field(None, description="Read-only access to stored configs")
    backend_provisioned: bool = False
    monetization: Optional[MonetizationPlan] = None


class PromptContribution(BaseModel):
    """Text blocks a provider adds to the system and user prompts"""
    system_block: str = ""
    user_block: str = ""
    backend_provisioned: bool = False


class PromptCapable(ABC):

    @abstractmethod
    def prompt_contribution(self, request: PromptRequest) -> PromptContribution:
        ...


# ---------------------------------------------------------------------------
# Tool server
# ---------------------------------------------------------------------------

class MCPRequest(BaseModel):
    pat: str = Field("", repr=False)
    project_ref: str = ""
    project_url: str = ""


class MCPServerConfig(BaseModel):
    """How to launch a provider's tool server. env holds secrets."""
    name: str
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict, repr=False)

    def to_mcp_entry(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"command": self.command, "args": list(self.args)}
        if self.env:
            entry["env"] = dict(self.env)
        return entry


class MCPCapable(ABC):

    @abstractmethod
    def mcp_server(self, request: MCPRequest) -> MCPServerConfig:
        ...

    @abstractmethod
    def mcp_tools(self) -> List[str]:
        """Fully-qualified tool names the agent may call"""
        ...

    def agent_tools(self) -> List[str]:
        """Extra built-in agent tools this provider needs"""
        return []


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------

class ProvisionRequest(BaseModel):
    """Everything a provider needs to create backend resources"""
    pat: str = Field("", repr=False)
    project_ref: str = ""
    project_url: str = ""
    app_name: str
    bundle_id: str = ""
    models: List[ModelRef] = Field(default_factory=list)
    auth_methods: List[str] = Field(default_factory=list)
    needs_auth: bool = False
    needs_db: bool = False
    needs_storage: bool = False
    needs_realtime: bool = False
    monetization: Optional[MonetizationPlan] = None
    deadline: Optional[float] = Field(None, description="time.monotonic() value after which work stops")

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded"""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def request_timeout(self, ceiling: float) -> float:
        """Per-request timeout that never outlives the deadline"""
        remaining = self.remaining()
        if remaining is None:
            return ceiling
        return max(0.1, min(ceiling, remaining))


class ProvisionResult(BaseModel):
    backend_provisioned: bool = False
    needs_apple_sign_in: bool = False
    tables_created: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def merge(self, other: "ProvisionResult") -> None:
        self.backend_provisioned = self.backend_provisioned or other.backend_provisioned
        self.needs_apple_sign_in = self.needs_apple_sign_in or other.needs_apple_sign_in
        self.tables_created.extend(other.tables_created)
        self.warnings.extend(other.warnings)


class ProvisionCapable(ABC):

    @abstractmethod
    def provision(self, request: ProvisionRequest) -> ProvisionResult:
        ...


def call_with_retries(
    call: Callable[[], T],
    request: ProvisionRequest,
    retries: int,
    retryable: Callable[[Exception], bool],
    label: str = "",
) -> T:
    """
    Run one provisioning request, repeating it after retryable failures.

    The same call is attempted at most retries + 1 times. No retry starts
    once the request deadline has passed.

    Raises:
        The last error when it is not retryable or attempts are exhausted
    """
    attempt = 0
    while True:
        try:
            return call()
        except Exception as e:
            if not retryable(e) or attempt >= retries or request.expired():
                raise
            attempt += 1
            logger.info(f"[Provision] {label or 'request'} failed ({e}), retry {attempt}/{retries}")


# ---------------------------------------------------------------------------
# Capability queries
# ---------------------------------------------------------------------------

C = TypeVar("C")


def as_capability(provider: Provider, capability: Type[C]) -> Optional[C]:
    """Return the provider viewed as the capability, or None if unsupported."""
    if isinstance(provider, capability):
        return provider
    return None


def supported_capabilities(provider: Provider) -> List[str]:
    names = []
    for cap in (SetupCapable, PromptCapable, MCPCapable, ProvisionCapable):
        if isinstance(provider, cap):
            names.append(cap.__name__)
    return names


class SetupUI(ABC):
    """Callbacks used when a planned provider has no stored config"""

    @abstractmethod
    def prompt_setup(self, descriptor: ProviderDescriptor) -> bool:
        """Ask the user whether to configure the provider now"""
        ...

    @abstractmethod
    def collect(self, descriptor: ProviderDescriptor, app_name: str, store: Any) -> Optional[SetupRequest]:
        """Gather credentials; None means the user skipped"""
        ...

    def info(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass


class NonInteractiveSetupUI(SetupUI):
    """SetupUI for unattended runs: never configures anything"""

    def __init__(self, on_warning: Optional[Callable[[str], None]] = None):
        self.on_warning = on_warning

    def prompt_setup(self, descriptor: ProviderDescriptor) -> bool:
        return False

    def collect(self, descriptor: ProviderDescriptor, app_name: str, store: Any) -> Optional[SetupRequest]:
        return None

    def warning(self, message: str) -> None:
        if self.on_warning:
            self.on_warning(message)


__all__ = [
    "Provider",
    "SetupRequest",
    "ProviderStatus",
    "SetupCapable",
    "PromptRequest",
    "PromptContribution",
    "PromptCapable",
    "MCPRequest",
    "MCPServerConfig",
    "MCPCapable",
    "ProvisionRequest",
    "ProvisionResult",
    "ProvisionCapable",
    "call_with_retries",
    "as_capability",
    "supported_capabilities",
    "SetupUI",
    "NonInteractiveSetupUI",
]
