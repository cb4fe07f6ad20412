"""Utility functions and helpers for the kubestrap application."""
import ipaddress
import logging
import socket
import subprocess
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..config import Config
from ..exceptions import OperationFailure

logger = logging.getLogger("kubestrap.utils")


def run_command(
    cmd: List[str],
    *,
    check: bool = True,
    capture_output: bool = False,
    input: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    cmd_str = ' '.join(cmd)
    logger.debug(f"💻 Running: {cmd_str}")
    try:
        result = subprocess.run(
            cmd,
            check=check,
            text=True,
            input=input,
            env=env,
            cwd=cwd,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.PIPE if capture_output else None,
        )
        if capture_output:
            logger.debug(f"🟢 Output:\n{result.stdout}")
        return result
    except subprocess.CalledProcessError as e:
        msg = f"❌ Command failed: {cmd_str} (exit code: {e.returncode})"
        if capture_output:
            msg += f"\nStdout:\n{e.stdout}\nStderr:\n{e.stderr}"
        logger.error(msg)
        raise


class RetryError(Exception):
    """Raised when a predicate never held within its attempt budget."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"Condition not met after {attempts} attempts"
        if last_error is not None:
            message += f". Last error: {last_error}"
        super().__init__(message)


def retry_until(
    predicate: Callable[[], bool],
    attempts: Optional[int] = None,
    delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "condition",
) -> int:
    """Evaluate a predicate until it returns True.

    The predicate runs at most ``attempts`` times with ``delay`` seconds of
    sleep between evaluations (never after the last one). An exception raised
    by the predicate counts as a failed attempt.

    Args:
        predicate: Zero-argument callable returning truthy on success
        attempts: Maximum number of evaluations
        delay: Seconds to sleep between evaluations
        sleep: Sleep function, replaceable in tests
        description: Label used in log messages

    Returns:
        int: The 1-based attempt on which the predicate first held

    Raises:
        RetryError: If every attempt failed
    """
    if attempts is None:
        attempts = Config.RETRY_ATTEMPTS
    if delay is None:
        delay = Config.RETRY_DELAY
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            if predicate():
                return attempt
            last_error = None
        except Exception as e:
            last_error = e
            logger.debug(f"{description}: attempt {attempt} raised {e}")

        if attempt < attempts:
            if attempt % 15 == 0:
                logger.info(f"⏳ Still waiting for {description} ({attempt}/{attempts})...")
            sleep(delay)

    raise RetryError(attempts, last_error)


def primary_ip(probe_address: Optional[str] = None) -> str:
    """Return the source address of the route to a well-known external host.

    No packet is sent: connecting a UDP socket only selects the route.

    Raises:
        OperationFailure: If no route to the probe address exists
    """
    probe_address = probe_address or Config.ROUTE_PROBE_ADDRESS
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect((probe_address, 80))
        return s.getsockname()[0]
    except OSError as e:
        raise OperationFailure("discover primary IP address", str(e)) from e
    finally:
        s.close()


def url_host(host: str) -> str:
    """Host as it appears in a URL authority: IPv6 literals get brackets."""
    try:
        if ipaddress.ip_address(host).version == 6:
            return f"[{host}]"
    except ValueError:
        pass
    return host
