"""
Configuration for the AppForge backend
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def require_gemini_api_key() -> str:
    """Return the Gemini API key, failing loudly when it is missing."""
    key = os.getenv("GEMINI_API_KEY")
    if not key:
        raise ValueError("GEMINI_API_KEY not found in environment variables")
    return key


# Paths
BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.getenv("APPFORGE_DATA_DIR", str(BASE_DIR / ".appforge")))
PROJECTS_DIR = Path(os.getenv("APPFORGE_PROJECTS_DIR", str(BASE_DIR / "generated")))

# AI Configuration - Using Gemini through langchain
AI_MODEL = os.getenv("AI_MODEL", "gemini-2.0-flash")
AI_TEMPERATURE = _float_env("AI_TEMPERATURE", 0.2)
AI_REQUEST_TIMEOUT = _int_env("AI_REQUEST_TIMEOUT", 60)
AI_MAX_RETRIES = _int_env("AI_MAX_RETRIES", 2)

# Coding agent (external CLI that writes source files)
CODING_AGENT_COMMAND = os.getenv("CODING_AGENT_COMMAND", "claude")
CODING_AGENT_MODEL = os.getenv("CODING_AGENT_MODEL", "")
CODING_AGENT_TIMEOUT = _int_env("CODING_AGENT_TIMEOUT", 1800)

# Compiler invocation; {app_name} is substituted before running
BUILD_COMMAND = os.getenv(
    "BUILD_COMMAND",
    "xcodebuild -scheme {app_name} -destination generic/platform=iOS\\ Simulator build",
)
BUILD_TIMEOUT = _int_env("BUILD_TIMEOUT", 600)

# Pipeline limits
MAX_PHASE_RETRIES = _int_env("MAX_PHASE_RETRIES", 2)
MAX_FIX_ITERATIONS = _int_env("MAX_FIX_ITERATIONS", 6)
MAX_RECOVERY_PASSES = _int_env("MAX_RECOVERY_PASSES", 3)
COMPILE_RETRIES = _int_env("COMPILE_RETRIES", 1)

# Structural heuristic: this many "not found" diagnostics near the top of one unit
STRUCTURAL_WINDOW_LINES = _int_env("STRUCTURAL_WINDOW_LINES", 20)
STRUCTURAL_THRESHOLD = _int_env("STRUCTURAL_THRESHOLD", 3)

# Integrations
PROVISION_TIMEOUT_SECONDS = _float_env("PROVISION_TIMEOUT_SECONDS", 120.0)
PROMPT_CONTRIBUTION_TIMEOUT = _float_env("PROMPT_CONTRIBUTION_TIMEOUT", 5.0)
PROVIDER_HTTP_TIMEOUT = _float_env("PROVIDER_HTTP_TIMEOUT", 30.0)
# Extra attempts for a failed provisioning request (same request, deadline permitting)
PROVIDER_HTTP_RETRIES = _int_env("PROVIDER_HTTP_RETRIES", 2)

# Server Configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _int_env("PORT", 3000)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000").split(",")
    if origin.strip()
]
