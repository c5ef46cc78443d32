"""
Firewall gate: opens and retracts the rules that expose the server on the LAN.

Only the Windows firewall is driven for real (through ``netsh``). Other
platforms get a no-op gate that keeps the same contract.
"""

import ctypes
import logging
import os
import subprocess
import sys
from enum import Enum
from typing import Callable

from pydantic import BaseModel

from config import FIREWALL_COMMAND_TIMEOUT, FIREWALL_RULE_PREFIX

logger = logging.getLogger(__name__)


class FirewallError(Exception):
    """A firewall command failed."""


class PrivilegeRequired(FirewallError):
    """Firewall changes need an elevated (administrator) process."""


class Direction(str, Enum):
    INBOUND = "in"
    OUTBOUND = "out"


class FirewallRule(BaseModel):
    name: str
    direction: Direction
    protocol: str  # "TCP" | "UDP"
    port: int


def rule_name(direction: Direction, protocol: str, port: int) -> str:
    label = "Inbound" if direction == Direction.INBOUND else "Outbound"
    return f"{FIREWALL_RULE_PREFIX} {label} {protocol} {port}"


def is_elevated() -> bool:
    """True when the process may modify the system firewall."""
    if sys.platform == "win32":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


class FirewallGate:
    """Idempotent rule management; subclasses supply the platform commands."""

    requires_elevation = False

    def check_privilege(self) -> None:
        """Raise PrivilegeRequired before any command would hit an OS error."""
        if self.requires_elevation and not is_elevated():
            raise PrivilegeRequired(
                "Administrator rights are required to manage the firewall"
            )

    def ensure_inbound_allowed(self, port: int, protocol: str = "TCP") -> FirewallRule:
        return self._ensure(Direction.INBOUND, protocol, port)

    def ensure_outbound_allowed(self, port: int, protocol: str = "TCP") -> FirewallRule:
        return self._ensure(Direction.OUTBOUND, protocol, port)

    def _ensure(self, direction: Direction, protocol: str, port: int) -> FirewallRule:
        rule = FirewallRule(
            name=rule_name(direction, protocol, port),
            direction=direction,
            protocol=protocol,
            port=port,
        )
        if self.rule_exists(rule.name):
            logger.debug(f"Firewall rule already present: {rule.name}")
            return rule
        self._add_rule(rule)
        logger.info(f"Firewall rule \"{rule.name}\" added")
        return rule

    def rule_exists(self, name: str) -> bool:
        raise NotImplementedError

    def retract_rule(self, name: str) -> None:
        """Remove a rule. A rule that is already absent counts as success."""
        raise NotImplementedError

    def _add_rule(self, rule: FirewallRule) -> None:
        raise NotImplementedError


class NetshFirewallGate(FirewallGate):
    """Windows Defender Firewall through ``netsh advfirewall``."""

    requires_elevation = True

    def __init__(
        self,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: float = FIREWALL_COMMAND_TIMEOUT,
    ) -> None:
        self._runner = runner
        self._timeout = timeout

    def _netsh(self, *args: str) -> subprocess.CompletedProcess:
        command = ["netsh", "advfirewall", "firewall", *args]
        try:
            return self._runner(
                command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise FirewallError(f"Could not run {' '.join(command[:4])}: {e}") from e

    def rule_exists(self, name: str) -> bool:
        return self._netsh("show", "rule", f"name={name}").returncode == 0

    def _add_rule(self, rule: FirewallRule) -> None:
        result = self._netsh(
            "add", "rule",
            f"name={rule.name}",
            f"dir={rule.direction.value}",
            "action=allow",
            f"protocol={rule.protocol}",
            f"localport={rule.port}",
        )
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise FirewallError(f"Could not add rule \"{rule.name}\": {detail}")

    def retract_rule(self, name: str) -> None:
        result = self._netsh("delete", "rule", f"name={name}")
        if result.returncode == 0:
            logger.info(f"Firewall rule \"{name}\" removed")
            return
        output = result.stdout or ""
        if result.returncode == 1 or "No rules match" in output:
            logger.debug(f"Firewall rule \"{name}\" not found, nothing to remove")
            return
        detail = (result.stderr or output).strip()
        raise FirewallError(f"Could not remove rule \"{name}\": {detail}")


class NoopFirewallGate(FirewallGate):
    """Stand-in for platforms whose firewall is left to the user."""

    def __init__(self) -> None:
        self._rules: set[str] = set()

    def rule_exists(self, name: str) -> bool:
        return name in self._rules

    def _add_rule(self, rule: FirewallRule) -> None:
        logger.debug(f"Firewall not managed on this platform, recording {rule.name}")
        self._rules.add(rule.name)

    def retract_rule(self, name: str) -> None:
        self._rules.discard(name)


def create_firewall_gate() -> FirewallGate:
    if sys.platform == "win32":
        return NetshFirewallGate()
    return NoopFirewallGate()
