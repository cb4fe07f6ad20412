"""Side-effecting host operations.

Every command kubestrap runs against the host goes through a
:class:`HostOperations` instance. The decision, configuration and verification
logic only see this interface, so tests drive them with an in-memory fake.
"""
import glob
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

import typer

from ..config import Config
from ..exceptions import OperationFailure
from ..utils import run_command

logger = logging.getLogger("kubestrap.operations")


class HostOperations:
    """Capability interface for everything that touches the host."""

    def which(self, binary: str) -> Optional[str]:
        """Path of an executable on PATH, or None."""
        raise NotImplementedError

    def exists(self, path) -> bool:
        raise NotImplementedError

    def glob(self, pattern: str) -> List[str]:
        raise NotImplementedError

    def remove_tree(self, path) -> None:
        raise NotImplementedError

    def query(self, cmd: List[str]) -> subprocess.CompletedProcess:
        """Run a read-only command. Never raises on a non-zero exit code."""
        raise NotImplementedError

    def apply(self, step: str, cmd: List[str], input: Optional[str] = None) -> None:
        """Run a mutating command.

        Raises:
            OperationFailure: If the command cannot run or exits non-zero
        """
        raise NotImplementedError

    def confirm(self, prompt: str) -> bool:
        raise NotImplementedError


class ShellOperations(HostOperations):
    """HostOperations backed by subprocess on the local machine."""

    def __init__(self, kubeconfig: Optional[str] = None):
        self.env = dict(os.environ)
        self.env["KUBECONFIG"] = kubeconfig or Config.ADMIN_KUBECONFIG

    def which(self, binary: str) -> Optional[str]:
        return shutil.which(binary)

    def exists(self, path) -> bool:
        return Path(path).exists()

    def glob(self, pattern: str) -> List[str]:
        return sorted(glob.glob(pattern))

    def remove_tree(self, path) -> None:
        logger.info(f"🧹 Removing {path}")
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise OperationFailure(f"remove {path}", str(e)) from e

    def query(self, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            return run_command(cmd, check=False, capture_output=True, env=self.env)
        except FileNotFoundError as e:
            return subprocess.CompletedProcess(cmd, 127, "", str(e))

    def apply(self, step: str, cmd: List[str], input: Optional[str] = None) -> None:
        logger.info(f"🔧 {step}")
        try:
            run_command(cmd, check=True, capture_output=True, input=input, env=self.env)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip() or f"exit code {e.returncode}"
            raise OperationFailure(step, detail) from e
        except FileNotFoundError as e:
            raise OperationFailure(step, str(e)) from e

    def confirm(self, prompt: str) -> bool:
        return typer.confirm(prompt, default=False)
