"""Startup/shutdown sequencing of the server's firewall rules."""

import atexit
import logging
import threading

from config import API_PORT, DISCOVERY_PORT
from firewall.gate import FirewallError, FirewallGate, FirewallRule

logger = logging.getLogger(__name__)


class ShutdownGuard:
    """One-shot flag shared by every shutdown trigger."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False

    @property
    def claimed(self) -> bool:
        return self._claimed

    def claim(self) -> bool:
        """True for the first caller only."""
        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True


class FirewallLifecycle:
    """
    Opens the discovery and HTTP ports at startup and retracts the rules
    exactly once on shutdown, whichever trigger gets there first (lifespan
    shutdown after SIGINT/SIGTERM, or the atexit hook).
    """

    def __init__(
        self,
        gate: FirewallGate,
        http_port: int = API_PORT,
        discovery_port: int = DISCOVERY_PORT,
    ) -> None:
        self.gate = gate
        self.http_port = http_port
        self.discovery_port = discovery_port
        self._rules: list[FirewallRule] = []
        self._guard = ShutdownGuard()

    @property
    def rules(self) -> list[FirewallRule]:
        return list(self._rules)

    def open(self) -> list[FirewallRule]:
        """
        Ensure the rules exist. Raises PrivilegeRequired without elevation
        and FirewallError when a command fails.
        """
        self.gate.check_privilege()
        self._rules.append(self.gate.ensure_inbound_allowed(self.discovery_port, "UDP"))
        self._rules.append(self.gate.ensure_inbound_allowed(self.http_port, "TCP"))
        self._rules.append(self.gate.ensure_outbound_allowed(self.http_port, "TCP"))
        return self.rules

    def install_exit_hook(self) -> None:
        atexit.register(self.close)

    def close(self) -> bool:
        """Retract every rule opened at startup. Later calls are no-ops."""
        if not self._guard.claim():
            logger.debug("Firewall cleanup already done")
            return False

        if self._rules:
            logger.info("Removing firewall rules...")
        for rule in self._rules:
            try:
                self.gate.retract_rule(rule.name)
            except FirewallError as e:
                # Shutdown must still complete
                logger.error(f"Error removing firewall rule: {e}")
        return True
