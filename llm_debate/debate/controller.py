"""
Turn controller: the debate session state machine.

    idle -> running -> finished | stopped | errored

While running, each completed turn schedules the next one after a fixed
delay. At most one provider call is in flight; the guard is a plain flag
since everything runs on one event loop.
"""

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from ..providers.base import TurnError, TurnProvider
from ..shared.event_bus import EventBus, message_event, status_event, turn_failed_event
from .export import TranscriptError, check_alternation
from .schema import Message, SessionState, SessionStatus, Speaker

logger = logging.getLogger(__name__)


class SessionError(RuntimeError):
    """The requested transition is not allowed in the current state."""


class TurnController:
    """
    Owns one debate session: decides whose turn is next, calls the bound
    provider, appends the reply and decides when to stop.
    """

    def __init__(
        self,
        providers: Mapping[Speaker, TurnProvider],
        event_bus: EventBus,
        max_rounds: int = 10,
        turn_delay: float = 2.0,
        first_speaker: Speaker = Speaker.OPENAI,
    ):
        missing = [s.value for s in Speaker if s not in providers]
        if missing:
            raise ValueError(f"No provider bound for: {', '.join(missing)}")
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.providers = dict(providers)
        self.bus = event_bus
        self.max_rounds = max_rounds
        self.turn_delay = turn_delay
        self.state = SessionState(first_speaker=first_speaker)

        self._in_flight = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._turn_task: Optional[asyncio.Task] = None
        # Bumped on every reset so late replies from a discarded session are ignored
        self._generation = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def finished(self) -> bool:
        return self.state.round_count >= self.max_rounds

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe view of the session."""
        state = self.state
        return {
            "topic": state.topic,
            "history": [m.to_dict() for m in state.history],
            "current_speaker": state.current_speaker.value,
            "round_count": state.round_count,
            "max_rounds": self.max_rounds,
            "status": state.status.value,
            "running": state.running,
            "in_flight": self._in_flight,
            "finished": self.finished,
            "error": state.error,
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self, topic: str) -> None:
        """Start a new debate on ``topic``, discarding any previous one."""
        topic = (topic or "").strip()
        if not topic:
            raise ValueError("Topic must not be empty")

        if self.state.history or self.state.status is not SessionStatus.IDLE or self._in_flight:
            self._discard()
        self.state.topic = topic
        self.state.status = SessionStatus.RUNNING
        logger.info("Debate started: %r (first speaker: %s)", topic, self.state.current_speaker.value)
        await self._publish_status()
        self._spawn_turn()

    async def advance_turn(self) -> Optional[Message]:
        """
        Take one turn if the session allows it.

        Returns the appended message, or None when the guard refused the
        turn, the provider failed, or the session was reset meanwhile.
        """
        state = self.state
        if not state.running or self.finished or self._in_flight:
            return None

        generation = self._generation
        speaker = state.current_speaker
        provider = self.providers[speaker]
        self._in_flight = True
        await self._publish_status()

        message: Optional[Message] = None
        error: Optional[str] = None
        try:
            message = await provider.take_turn(list(state.history), state.topic)
        except TurnError as e:
            error = e.message
        except Exception as e:
            logger.exception("Unexpected error during %s turn", speaker.value)
            error = f"Unexpected error: {type(e).__name__}: {e}"
        finally:
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation:
            logger.info("Ignoring %s reply from a discarded session", speaker.value)
            return None
        if error is not None:
            await self._fail(speaker, error)
            return None

        state.history.append(message)
        state.current_speaker = speaker.other
        state.round_count += 1
        logger.info("Round %d/%d: %s replied (%d chars)",
                    state.round_count, self.max_rounds, speaker.value, len(message.content))
        await self.bus.publish(message_event(speaker.value, message.content, state.round_count))

        if self.finished:
            state.status = SessionStatus.FINISHED
            logger.info("Debate finished after %d rounds", state.round_count)
        await self._publish_status()
        if state.running:
            self._schedule_next()
        return message

    async def stop(self) -> None:
        """Stop auto-continuation. History is kept; an in-flight turn still lands."""
        self._cancel_timer()
        if self.state.running:
            self.state.status = SessionStatus.STOPPED
            logger.info("Debate stopped at round %d", self.state.round_count)
            await self._publish_status()

    async def resume(self) -> None:
        """Continue a stopped or failed debate from where it left off."""
        state = self.state
        if state.status not in (SessionStatus.STOPPED, SessionStatus.ERRORED):
            raise SessionError(f"Cannot resume a debate that is {state.status.value}")
        if self.finished:
            raise SessionError("Debate already reached the round limit")
        state.status = SessionStatus.RUNNING
        state.error = None
        logger.info("Debate resumed at round %d", state.round_count)
        await self._publish_status()
        if not self._in_flight:
            self._spawn_turn()

    async def reset(self) -> None:
        """Drop history, counter, speaker, error and any pending turn."""
        self._discard()
        logger.info("Debate reset")
        await self._publish_status()

    async def restore(self, topic: str, history: Sequence[Message]) -> None:
        """Load an exported transcript so it can be reviewed or resumed."""
        if self.state.running or self._in_flight:
            raise SessionError("Cannot load a transcript while a debate is running")
        check_alternation(history, self.state.first_speaker)
        if len(history) > self.max_rounds:
            raise TranscriptError(
                f"Transcript has {len(history)} turns, more than the limit of {self.max_rounds}"
            )

        self._discard()
        state = self.state
        state.topic = topic
        state.history = list(history)
        state.round_count = len(history)
        state.current_speaker = state.first_speaker if len(history) % 2 == 0 else state.first_speaker.other
        if self.finished:
            state.status = SessionStatus.FINISHED
        elif history:
            state.status = SessionStatus.STOPPED
        logger.info("Transcript restored: %r (%d turns)", topic, len(history))
        await self._publish_status()

    async def close(self) -> None:
        """Tear down: cancel the pending timer and any turn in progress."""
        self._cancel_timer()
        task = self._turn_task
        self._turn_task = None
        if task and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _spawn_turn(self) -> None:
        self._timer = None
        if self._turn_task is not None and not self._turn_task.done():
            return
        self._turn_task = asyncio.get_running_loop().create_task(self.advance_turn())

    def _schedule_next(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self.turn_delay, self._spawn_turn)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _discard(self) -> None:
        self._generation += 1
        self._cancel_timer()
        if self._turn_task is not None and not self._turn_task.done():
            self._turn_task.cancel()
        self._turn_task = None
        self._in_flight = False
        self.state.clear()

    async def _fail(self, speaker: Speaker, error: str) -> None:
        self._cancel_timer()
        self.state.status = SessionStatus.ERRORED
        self.state.error = error
        logger.error("Debate halted on %s turn: %s", speaker.value, error)
        await self.bus.publish(turn_failed_event(speaker.value, error))
        await self._publish_status()

    async def _publish_status(self) -> None:
        await self.bus.publish(status_event(self.snapshot()))
