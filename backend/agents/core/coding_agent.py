"""
Coding Agent - external code-writing collaborator

Responsibilities:
- Run the coding agent CLI in a project directory with a prompt,
  an appended system prompt, an allowlist of tools and a tool-server config
- Parse its JSON result (text, session id, cost, token usage)
- Write the tool-server config file the CLI reads (.mcp.json)

The agent is opaque: it reads and writes files in the project directory
and returns a summary. Secrets in tool-server env are written only to the
config file (mode 0600) and never logged.
"""
import json
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from config import CODING_AGENT_COMMAND, CODING_AGENT_MODEL, CODING_AGENT_TIMEOUT
from integrations.contract import MCPServerConfig

logger = logging.getLogger(__name__)

MCP_CONFIG_FILE = ".mcp.json"

# Built-in tools every generation pass may use
BASE_TOOLS = ["Read", "Write", "Edit", "Glob", "Grep", "Bash"]


class CodingAgentError(Exception):
    """Raised when the coding agent cannot run or reports an error"""
    pass


class AgentRequest(BaseModel):
    prompt: str
    system_prompt: str = ""
    project_dir: str
    allowed_tools: List[str] = Field(default_factory=list)
    mcp_config_path: Optional[str] = None
    session_id: Optional[str] = None
    max_turns: int = 60


class AgentResponse(BaseModel):
    result: str = ""
    session_id: Optional[str] = None
    total_cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    is_error: bool = False


class CodingAgent(ABC):

    @abstractmethod
    def run(self, request: AgentRequest) -> AgentResponse:
        """
        Raises:
            CodingAgentError: If the agent could not complete the request
        """
        ...


class CLICodingAgent(CodingAgent):
    """
    Runs the coding agent CLI as a subprocess (prompt via stdin).
    """

    def __init__(self, command: str = CODING_AGENT_COMMAND, model: str = CODING_AGENT_MODEL,
                 timeout: int = CODING_AGENT_TIMEOUT):
        self.command = command
        self.model = model
        self.timeout = timeout

    def build_args(self, request: AgentRequest) -> List[str]:
        args = [self.command, "-p", "--max-turns", str(request.max_turns), "--output-format", "json"]
        if request.system_prompt:
            args += ["--append-system-prompt", request.system_prompt]
        if request.session_id:
            args += ["--resume", request.session_id]
        if self.model:
            args += ["--model", self.model]
        if request.mcp_config_path:
            args += ["--mcp-config", request.mcp_config_path]
        for tool in request.allowed_tools:
            args += ["--allowedTools", tool]
        return args

    def run(self, request: AgentRequest) -> AgentResponse:
        args = self.build_args(request)
        logger.info(
            f"[CodingAgent] Running in {request.project_dir} "
            f"(tools={len(request.allowed_tools)}, resume={bool(request.session_id)})"
        )
        env = {k: v for k, v in os.environ.items() if k != "CLAUDECODE"}
        try:
            proc = subprocess.run(
                args,
                cwd=request.project_dir,
                input=request.prompt,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise CodingAgentError(f"Coding agent timed out after {self.timeout} seconds") from e
        except OSError as e:
            raise CodingAgentError(f"Coding agent could not start: {e}") from e

        if proc.returncode != 0:
            raise CodingAgentError(f"Coding agent exited with {proc.returncode}: {proc.stderr[-500:]}")
        response = parse_agent_output(proc.stdout)
        if response.is_error:
            raise CodingAgentError(f"Coding agent reported an error: {response.result[:500]}")
        return response


def parse_agent_output(stdout: str) -> AgentResponse:
    """JSON result object when available, plain text otherwise"""
    text = stdout.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return AgentResponse(result=text)
    if not isinstance(data, dict):
        return AgentResponse(result=text)
    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    return AgentResponse(
        result=str(data.get("result", "")),
        session_id=data.get("session_id"),
        total_cost_usd=float(data.get("total_cost_usd") or 0.0),
        input_tokens=int(usage.get("input_tokens") or 0),
        output_tokens=int(usage.get("output_tokens") or 0),
        is_error=bool(data.get("is_error", False)),
    )


def write_mcp_config(project_dir: Path, servers: List[MCPServerConfig]) -> Optional[Path]:
    """
    Write <project>/.mcp.json for the given tool servers.

    Returns:
        The file path, or None when there are no servers
    """
    if not servers:
        return None
    path = Path(project_dir) / MCP_CONFIG_FILE
    document = {"mcpServers": {s.name: s.to_mcp_entry() for s in servers}}
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
    os.chmod(path, 0o600)
    logger.info(f"[CodingAgent] Wrote tool config for {[s.name for s in servers]}")
    return path


__all__ = [
    "CodingAgent",
    "CLICodingAgent",
    "CodingAgentError",
    "AgentRequest",
    "AgentResponse",
    "parse_agent_output",
    "write_mcp_config",
    "BASE_TOOLS",
    "MCP_CONFIG_FILE",
]
