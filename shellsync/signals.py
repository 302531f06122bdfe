"""Deferred handling of SIGINT/SIGTERM/SIGQUIT around shell commands.

While interception is active, a signal does not interrupt the running
command. The host records it as pending, the generated wrapper script
forwards a marker over the metadata stream and keeps waiting for the
child, and the signal is redelivered to the host once interception ends.

An optional timeout bounds the wait: once it expires after a signal, the
child is killed and the pending signal is delivered.
"""
from __future__ import annotations

import logging
import math
import os
import re
import shlex
import signal
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .script import META_STREAM
from .types import HandleSignalsOptions

logger = logging.getLogger(__name__)

INTERCEPTED_SIGNALS = ("SIGINT", "SIGQUIT", "SIGTERM")
TIMEOUT_MARKER = "SIGTIMEOUT"
# Spare descriptor holding the caller's stdin for the background child
STDIN_COPY = 9
SIGNAL_MARKER = re.compile(r"^\0(SIGINT|SIGQUIT|SIGTERM|SIGTIMEOUT)")


class InterceptState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    TRAPPED = "trapped"
    DONE = "done"


class SignalInterceptor:
    """Holds the single pending-signal slot and the installed handlers.

    ``kill`` and ``install`` default to ``os.kill`` and ``signal.signal``
    and can be replaced in tests.
    """

    def __init__(
        self,
        kill: Callable[[int, int], None] = os.kill,
        install: Callable[[int, Any], Any] = signal.signal,
    ) -> None:
        self.state = InterceptState.IDLE
        self.pending: Optional[str] = None
        self.timeout: Optional[float] = None
        self._kill = kill
        self._install = install
        self._previous: Dict[int, Any] = {}
        self._timer: Optional[threading.Timer] = None
        self._expired = False

    @property
    def active(self) -> bool:
        return self.state in (InterceptState.ARMED, InterceptState.TRAPPED)

    def start(self, options: Optional[HandleSignalsOptions] = None) -> None:
        """Begin intercepting signals, delivering any that are still pending."""
        options = options or HandleSignalsOptions()
        if self.pending:
            self.end()
        self.timeout = options.timeout
        if not self._previous:
            for name in INTERCEPTED_SIGNALS:
                signum = getattr(signal, name)
                self._previous[signum] = self._install(signum, self._on_signal)
        self.state = InterceptState.ARMED
        logger.debug("Signal interception armed (timeout=%s)", self.timeout)

    def end(self) -> None:
        """Stop intercepting and redeliver the pending signal, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for signum, handler in self._previous.items():
            self._install(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous.clear()
        self._expired = False
        self.state = InterceptState.DONE if self.state is not InterceptState.IDLE else self.state
        pending, self.pending = self.pending, None
        if pending:
            logger.info("Delivering deferred %s", pending)
            self._kill(os.getpid(), getattr(signal, pending))

    def record(self, name: str) -> None:
        """Remember ``name`` as pending, arming the timeout on the first one."""
        if self.pending is None and self.timeout:
            self._timer = threading.Timer(self.timeout, self._expire)
            self._timer.daemon = True
            self._timer.start()
        self.pending = name
        self.state = InterceptState.TRAPPED
        logger.debug("Deferred %s until the command completes", name)

    def _on_signal(self, signum: int, frame: Any) -> None:
        if self._expired:
            self.end()
            return
        self.record(signal.Signals(signum).name)

    def _expire(self) -> None:
        # Runs on the timer thread; handlers can only be swapped on the main
        # thread, so re-signal ourselves and let _on_signal finish the job.
        self._expired = True
        self._kill(os.getpid(), getattr(signal, self.pending or "SIGTERM"))

    def parse_emitted_signals(self, output: str) -> str:
        """Consume leading signal markers from the metadata stream.

        Returns:
            The rest of the stream (the working directory, if reported)
        """
        while True:
            match = SIGNAL_MARKER.match(output)
            if not match:
                return output
            output = output[match.end():]
            if match.group(1) == TIMEOUT_MARKER:
                logger.debug("Command timed out after a deferred signal")
                self.end()
            else:
                self.pending = match.group(1)
                self.state = InterceptState.TRAPPED

    def wrap(self, script: str, shell: str) -> str:
        """Wrap a script so interrupts reach the wrapper instead of the child."""
        return wrap_disable_interrupts(script, shell, self.timeout)


def wrap_disable_interrupts(script: str, shell: str, timeout: Optional[float] = None) -> str:
    """Run ``script`` as a background child of a signal-trapping wrapper.

    Not efficient, but effective: the wrapper records each signal on the
    metadata stream, ignores repeats and resumes waiting for the child.

    A background job's stdin is /dev/null in a non-interactive shell, so the
    caller's stdin is duplicated onto a spare descriptor first. Duplicating
    works for any descriptor type, including sockets, where reopening
    /dev/stdin fails.
    """
    trigger = ""
    if timeout:
        seconds = max(1, math.ceil(timeout))
        trigger = f"(sleep {seconds}; kill -USR1 $PID 2>/dev/null) &"
    meta = META_STREAM
    traps = "\n".join(
        f"trap \"TRAPPED=1; printf '\\\\000{name}' >&{meta}; trap : {name[3:]}; triggerTimeout\" {name[3:]}"
        for name in INTERCEPTED_SIGNALS
    )
    return f""":
TRAPPED=
triggerTimeout() {{
    PID=$$
    {trigger or ':'}
}}
onTimeout() {{
    printf '\\000{TIMEOUT_MARKER}' >&{meta}
    trap : TERM
    kill -TERM $CHILD_PID 2>/dev/null
    wait $CHILD_PID
}}
{traps}
trap onTimeout USR1

{{ command exec {STDIN_COPY}<&0; }} 2>/dev/null || exec {STDIN_COPY}</dev/null
{shlex.quote(shell)} -c {shlex.quote(script)} <&{STDIN_COPY} {STDIN_COPY}<&- &
CHILD_PID=$!
exec {STDIN_COPY}<&-

while true; do
    wait $CHILD_PID
    RET=$?
    if [ "$TRAPPED" ]; then
        TRAPPED=
    else
        exit $RET
    fi
done
"""


__all__ = [
    "INTERCEPTED_SIGNALS",
    "InterceptState",
    "SignalInterceptor",
    "TIMEOUT_MARKER",
    "wrap_disable_interrupts",
]
