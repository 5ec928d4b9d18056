"""Stroke emitter -- replays an ordered command list onto a drawing surface.

The emitter walks the command list one stroke at a time.  At every stroke
boundary it checks a ``CancellationToken`` and a pause flag, so cancel and
pause are responsive without ever interrupting a segment mid-draw.

Terminal states are distinct:
    - COMPLETED: every command was offered to the surface
    - CANCELLED: the token was set before the list was exhausted
    - FAILED: the surface raised something other than ``SurfaceError``

A ``SurfaceError`` is a per-command transient failure: it is logged,
counted, and emission moves on to the next command.

Cancellation never touches the palette, assignment map or cached commands;
a cancelled job can be re-emitted from the same ``CompileResult``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Protocol, Sequence, runtime_checkable

from autodraw.commands.operations import StrokeCommand

logger = logging.getLogger(__name__)

DEFAULT_STROKE_DELAY_S = 0.008
PROGRESS_EVERY = 50


# ---------------------------------------------------------------------------
# Errors and collaborators
# ---------------------------------------------------------------------------


class SurfaceError(Exception):
    """A drawing surface failed to draw one command (emission continues)."""

    pass


class EmitterBusyError(RuntimeError):
    """``run()`` was called while a previous run is still active."""

    pass


@runtime_checkable
class DrawingSurface(Protocol):
    """Anything that can draw one normalized segment."""

    def draw_segment(self, command: StrokeCommand) -> None: ...


class CancellationToken:
    """Thread-safe, one-way cancel flag shared between caller and emitter."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns True early if cancelled."""
        return self._event.wait(timeout)


class RecordingSurface:
    """In-memory surface that keeps every command it was asked to draw."""

    def __init__(self) -> None:
        self.commands: list[StrokeCommand] = []

    def draw_segment(self, command: StrokeCommand) -> None:
        self.commands.append(command)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class EmissionState(Enum):
    """Current emitter state."""

    IDLE = auto()
    RUNNING = auto()
    PAUSED = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    FAILED = auto()


@dataclass
class EmissionProgress:
    """Emission progress snapshot."""

    state: EmissionState
    total: int = 0
    sent: int = 0
    failed: int = 0
    message: str = ""

    @property
    def fraction(self) -> float:
        return self.sent / self.total if self.total else 1.0


@dataclass(frozen=True)
class EmissionResult:
    state: EmissionState
    total: int
    sent: int
    failed: int
    elapsed_s: float
    errors: tuple[str, ...] = field(default=())

    @property
    def cancelled(self) -> bool:
        return self.state is EmissionState.CANCELLED


# ---------------------------------------------------------------------------
# Emitter
# ---------------------------------------------------------------------------


class StrokeEmitter:
    """Cooperative, cancellable command emitter.

    Parameters
    ----------
    surface : DrawingSurface
        Target that receives each command.
    delay_s : float
        Pause between commands in seconds (0 disables).
    progress_every : int
        Fire the progress callback every N commands (and at the end).
    """

    def __init__(
        self,
        surface: DrawingSurface,
        delay_s: float = DEFAULT_STROKE_DELAY_S,
        progress_every: int = PROGRESS_EVERY,
    ) -> None:
        self._surface = surface
        self._delay_s = max(0.0, float(delay_s))
        self._progress_every = max(1, int(progress_every))
        self._state = EmissionState.IDLE
        self._state_lock = threading.Lock()
        self._pause_flag = threading.Event()
        self._progress_cb: Callable[[EmissionProgress], None] | None = None
        self._progress = EmissionProgress(state=EmissionState.IDLE)

    # ------------------------------------------------------------------
    # Common
    # ------------------------------------------------------------------

    def get_state(self) -> EmissionState:
        """Return current emitter state."""
        return self._state

    @property
    def progress(self) -> EmissionProgress:
        return self._progress

    def set_progress_callback(self, fn: Callable[[EmissionProgress], None]) -> None:
        """Register a callback invoked on progress updates."""
        self._progress_cb = fn

    def _notify(self, **kwargs: object) -> None:
        for k, v in kwargs.items():
            if hasattr(self._progress, k):
                setattr(self._progress, k, v)
        self._progress.state = self._state
        if self._progress_cb is not None:
            try:
                self._progress_cb(self._progress)
            except Exception as exc:  # noqa: BLE001
                logger.error("Progress callback error: %s", exc)

    def pause(self) -> None:
        """Hold emission at the next stroke boundary."""
        self._pause_flag.set()
        logger.info("Emission pause requested")

    def resume(self) -> None:
        self._pause_flag.clear()
        logger.info("Emission resume requested")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(
        self,
        commands: Sequence[StrokeCommand],
        token: CancellationToken | None = None,
    ) -> EmissionResult:
        """Send every command to the surface unless cancelled.

        Raises
        ------
        EmitterBusyError
            If this emitter is already running.
        Exception
            Anything the surface raises other than ``SurfaceError`` is
            re-raised after the state is set to FAILED.
        """
        with self._state_lock:
            if self._state in (EmissionState.RUNNING, EmissionState.PAUSED):
                raise EmitterBusyError("Emitter is already running")
            self._state = EmissionState.RUNNING

        token = token or CancellationToken()
        total = len(commands)
        sent = 0
        failed = 0
        errors: list[str] = []
        t0 = time.perf_counter()
        self._progress = EmissionProgress(state=self._state, total=total)
        self._notify(message="Started")
        logger.info("Emitting %d commands (%.0f ms/stroke)", total, self._delay_s * 1000)

        try:
            for idx, command in enumerate(commands):
                if token.cancelled:
                    break

                if self._pause_flag.is_set():
                    self._state = EmissionState.PAUSED
                    self._notify(sent=sent, message=f"Paused at {idx}/{total}")
                    while self._pause_flag.is_set() and not token.cancelled:
                        token.wait(0.05)
                    if token.cancelled:
                        break
                    self._state = EmissionState.RUNNING

                try:
                    self._surface.draw_segment(command)
                except SurfaceError as exc:
                    failed += 1
                    errors.append(f"{idx}: {exc}")
                    logger.warning("Surface rejected command %d/%d: %s", idx + 1, total, exc)
                sent += 1

                if sent % self._progress_every == 0:
                    self._notify(sent=sent, failed=failed, message=f"Stroke {sent}/{total}")

                if self._delay_s > 0 and sent < total:
                    token.wait(self._delay_s)
        except Exception:
            self._state = EmissionState.FAILED
            self._notify(sent=sent, failed=failed, message="Failed")
            logger.exception("Emission failed after %d/%d commands", sent, total)
            raise

        elapsed = time.perf_counter() - t0
        if token.cancelled and sent < total:
            self._state = EmissionState.CANCELLED
            logger.info("Emission cancelled after %d/%d commands", sent, total)
        else:
            self._state = EmissionState.COMPLETED
            logger.info(
                "Emission complete: %d commands (%d failed) in %.2fs", sent, failed, elapsed
            )
        self._notify(sent=sent, failed=failed, message=self._state.name.capitalize())

        return EmissionResult(
            state=self._state,
            total=total,
            sent=sent,
            failed=failed,
            elapsed_s=elapsed,
            errors=tuple(errors),
        )
