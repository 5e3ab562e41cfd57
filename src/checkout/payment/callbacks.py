"""Gateway callback bridge — turns widget callbacks into checkout transitions.

One bridge is created per payment attempt. Its callbacks are bound methods
that look the session up through the machine when they fire, never a value
captured when the widget was opened. The first callback to fire wins; the
other one, and any callback for a superseded attempt, is logged and ignored.
"""

import structlog

from checkout.session.session import AttemptStatus

logger = structlog.get_logger(__name__)


class GatewayCallbackBridge:
    def __init__(self, machine, reference: str) -> None:
        self.machine = machine
        self.reference = reference

    @property
    def attempt_state(self) -> str | None:
        """State of this attempt, or None once a newer attempt replaced it."""
        session = self.machine.session
        if session.payment_reference != self.reference:
            return None
        return session.attempt_status

    def _is_current(self, callback: str) -> bool:
        # The stored session is authoritative; another request may have moved it on
        session = self.machine.refresh()
        state = self.attempt_state
        if state != AttemptStatus.AWAITING_USER.value or not session.awaiting_user:
            logger.info(
                "Ignoring gateway callback",
                callback=callback,
                session_key=str(session.session_key),
                reference=self.reference,
                attempt_status=state,
            )
            return False
        return True

    def on_close(self) -> None:
        if self._is_current("close"):
            self.machine.handle_gateway_close(self.reference)

    def on_success(self, reference: str | None = None) -> None:
        if reference and reference != self.reference:
            logger.warning(
                "Gateway reported a different reference",
                expected=self.reference,
                received=reference,
            )
            return
        if self._is_current("success"):
            self.machine.handle_gateway_success(self.reference)
