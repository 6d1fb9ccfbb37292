"""
Executor - drives the coding agent

Responsibilities:
- Generation pass: write every planned unit
- Edit pass: change an existing project as requested
- Completion pass: rewrite only missing or invalid units
- Repair: regenerate or patch units for the build-fix loop (UnitFixer)

One agent session is kept per project so that later passes resume with
the context of earlier ones.
"""
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from agents.core.coding_agent import AgentRequest, AgentResponse, CodingAgent
from agents.core.error_fixer import UnitFixer
from agents.core.prompts import completion_prompt, edit_prompt, repair_prompt
from agents.schemas import Diagnostic, DiagnosticTier

logger = logging.getLogger(__name__)


class Executor(UnitFixer):
    """
    Executor - sends prompts to the coding agent for one project
    """

    def __init__(
        self,
        agent: CodingAgent,
        project_dir: Path,
        app_name: str,
        system_prompt: str = "",
        allowed_tools: Optional[List[str]] = None,
        mcp_config_path: Optional[Path] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.agent = agent
        self.project_dir = Path(project_dir)
        self.app_name = app_name
        self.system_prompt = system_prompt
        self.allowed_tools = allowed_tools or []
        self.mcp_config_path = mcp_config_path
        self.progress_callback = progress_callback
        self.session_id: Optional[str] = None
        self.total_cost_usd = 0.0
        self.input_tokens = 0
        self.output_tokens = 0
        self.requests = 0
        self.execution_log: List[str] = []

    def _log(self, msg: str) -> None:
        self.execution_log.append(msg)
        if self.progress_callback:
            self.progress_callback(msg)
        logger.info(f"[Executor] {msg}")

    def _run(self, prompt: str) -> AgentResponse:
        response = self.agent.run(AgentRequest(
            prompt=prompt,
            system_prompt=self.system_prompt,
            project_dir=str(self.project_dir),
            allowed_tools=self.allowed_tools,
            mcp_config_path=str(self.mcp_config_path) if self.mcp_config_path else None,
            session_id=self.session_id,
        ))
        if response.session_id:
            self.session_id = response.session_id
        self.total_cost_usd += response.total_cost_usd
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens
        self.requests += 1
        return response

    def generate(self, user_prompt: str) -> AgentResponse:
        """
        Generation pass over the whole plan

        Raises:
            CodingAgentError: If the agent fails
        """
        self._log("Generating source files...")
        response = self._run(user_prompt)
        self._log("✓ Generation pass finished")
        return response

    def edit(self, request: str, hints: Optional[List[str]] = None) -> AgentResponse:
        """
        Edit pass over an existing project

        Raises:
            CodingAgentError: If the agent fails
        """
        self._log("Applying requested changes...")
        response = self._run(edit_prompt(self.app_name, request, hints))
        self._log("✓ Edit pass finished")
        return response

    def complete(self, unresolved: Dict[str, str]) -> AgentResponse:
        """
        Rewrite only the given units

        Args:
            unresolved: planned path -> reason it failed verification
        """
        self._log(f"Completing {len(unresolved)} unit(s): {', '.join(sorted(unresolved))}")
        return self._run(completion_prompt(self.app_name, unresolved))

    # UnitFixer

    def regenerate(self, units: List[str], diagnostics: Dict[str, List[Diagnostic]]) -> None:
        self._log(f"Regenerating {len(units)} unit(s)")
        self._run(repair_prompt(DiagnosticTier.STRUCTURAL, dict(diagnostics), regenerate=True))

    def patch(self, tier: DiagnosticTier, diagnostics: Dict[Optional[str], List[Diagnostic]]) -> None:
        count = sum(len(v) for v in diagnostics.values())
        self._log(f"Patching {count} {tier.name.lower()} diagnostic(s)")
        self._run(repair_prompt(tier, diagnostics))


__all__ = ["Executor"]
