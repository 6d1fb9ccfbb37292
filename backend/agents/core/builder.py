"""
Builder - compiler invocation

Responsibilities:
- Run the configured build command in the project directory
- Capture combined output and exit status
- Report when the compiler could not be run at all (BuildError)

Diagnostics are extracted from the output by agents.core.diagnostics;
the builder itself does not interpret compiler errors.
"""
import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel

from config import BUILD_COMMAND, BUILD_TIMEOUT

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Raised when the compiler cannot be run (missing tool, timeout, bad directory)"""
    pass


class CompileOutput(BaseModel):
    returncode: int
    output: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class Compiler(ABC):
    """Produces build output for the current state of a project"""

    @abstractmethod
    def compile(self) -> CompileOutput:
        """
        Raises:
            BuildError: If the build could not be started or finished
        """
        ...


class Builder(Compiler):
    """
    Builder - runs BUILD_COMMAND for one project
    """

    def __init__(
        self,
        project_dir: Path,
        app_name: str,
        command: str = BUILD_COMMAND,
        timeout: int = BUILD_TIMEOUT,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.project_dir = Path(project_dir)
        self.app_name = app_name
        self.command = command
        self.timeout = timeout
        self.progress_callback = progress_callback

    def _log(self, msg: str) -> None:
        if self.progress_callback:
            self.progress_callback(msg)
        logger.info(f"[Builder] {msg}")

    def build_argv(self) -> List[str]:
        return shlex.split(self.command.format(app_name=self.app_name))

    def compile(self) -> CompileOutput:
        if not self.project_dir.exists():
            raise BuildError(f"Project directory not found: {self.project_dir}")

        argv = self.build_argv()
        self._log(f"Running: {' '.join(argv)}")
        try:
            result = subprocess.run(
                argv,
                cwd=self.project_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise BuildError(f"Build timeout after {self.timeout} seconds") from e
        except OSError as e:
            raise BuildError(f"Build command could not start: {e}") from e

        output = (result.stdout or "") + "\n" + (result.stderr or "")
        if result.returncode == 0:
            self._log("✓ Build succeeded")
        else:
            self._log(f"✗ Build failed with exit code {result.returncode}")
        return CompileOutput(returncode=result.returncode, output=output)


__all__ = ["Builder", "BuildError", "Compiler", "CompileOutput"]
