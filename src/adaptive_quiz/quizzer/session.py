"""Session state machine and the Rich-powered console loop around it.

`SessionController` owns the question bank, the weight store and the single
`RoundState` of a session. It is driven by two commands, ``submit`` and
``advance`` (continue), and moves through these phases::

    LOADING --load()--> AWAITING_ANSWER --submit()--> ANSWERED
                              ^                          |
                              +--------advance()---------+
    LOADING --load() fails--> FAILED

`run_quiz_session` renders rounds with Rich and translates console input into
controller commands, keeping the controller free of any UI concerns.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Literal, Mapping, Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .bank import QuestionBank, QuestionSourceError
from .citations import Citation, render_citations
from .evaluator import evaluate, option_flags, slots_to_positions
from .sampler import PresentedOption, pick, present_options
from .weights import AdjustmentPolicy, WeightStore

InputProvider = Callable[[], str]
BankSource = Callable[[], QuestionBank]
StoreFactory = Callable[[QuestionBank], WeightStore]
ExitAction = Literal["quit", "failed"]

LOAD_FAILURE_MESSAGE = "Failed to load questions. Please try again later."
EMPTY_BANK_MESSAGE = "No valid questions found in the question source."


class Phase(str, Enum):
    LOADING = "loading"
    AWAITING_ANSWER = "awaiting_answer"
    ANSWERED = "answered"
    FAILED = "failed"


class SessionStateError(RuntimeError):
    """Raised when a command is issued in a phase that does not accept it."""


@dataclass(frozen=True)
class WeightStats:
    """Display values refreshed after every answer."""

    current: float
    minimum: float
    maximum: float
    total: float

    @classmethod
    def from_weights(cls, weights: Sequence[float], index: int) -> "WeightStats":
        return cls(
            current=weights[index],
            minimum=min(weights),
            maximum=max(weights),
            total=sum(weights),
        )

    @property
    def current_text(self) -> str:
        return f"current probability: {self.current:.2f}"

    @property
    def summary_text(self) -> str:
        return (
            f"min: {self.minimum:.2f}, max: {self.maximum:.2f}, "
            f"total prob sum: {self.total:.2f}"
        )


@dataclass
class RoundState:
    """The question on screen, its shuffled options and the user's picks."""

    index: int
    presented: list[PresentedOption]
    phase: Phase = Phase.AWAITING_ANSWER
    selected: set[int] = field(default_factory=set)


@dataclass(frozen=True)
class RoundOutcome:
    """Result of submitting an answer for the current round."""

    index: int
    verdict: bool
    selected: frozenset[int]
    flags: list[bool]
    previous_weight: float
    weight: float
    stats: WeightStats


class SessionController:
    """Drive one quiz session over a bank loaded by ``load``."""

    def __init__(
        self,
        *,
        store_factory: StoreFactory,
        policy: AdjustmentPolicy,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
        citations: Optional[Mapping[int, Sequence[Citation]]] = None,
    ) -> None:
        self._store_factory = store_factory
        self._policy = policy
        self._rng = rng or random.Random()
        self._logger = logger or logging.getLogger(__name__)
        self._citations = dict(citations or {})
        self._bank: Optional[QuestionBank] = None
        self._store: Optional[WeightStore] = None
        self._round: Optional[RoundState] = None
        self._phase = Phase.LOADING
        self._error: Optional[str] = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def bank(self) -> Optional[QuestionBank]:
        return self._bank

    @property
    def round(self) -> Optional[RoundState]:
        return self._round

    @property
    def policy(self) -> AdjustmentPolicy:
        return self._policy

    def citations_for(self, index: int) -> Sequence[Citation]:
        return self._citations.get(index, ())

    def load(self, source: BankSource) -> bool:
        """Load the bank and saved weights, then start the first round.

        Returns ``False`` and enters ``FAILED`` when the source cannot be
        read or yields no valid questions.
        """

        if self._phase is not Phase.LOADING:
            raise SessionStateError("Session is already loaded.")
        try:
            bank = source()
        except QuestionSourceError as exc:
            self._logger.error("Question source failed to load: %s", exc)
            return self._fail(LOAD_FAILURE_MESSAGE)
        if len(bank) == 0:
            self._logger.error("Question source produced no valid questions")
            return self._fail(EMPTY_BANK_MESSAGE)

        self._bank = bank
        self._store = self._store_factory(bank)
        applied = bank.apply_weights(
            self._store.load(),
            min_weight=self._policy.min_weight,
            max_weight=self._policy.max_weight,
        )
        self._logger.info(
            "Session loaded",
            extra={"questions": len(bank), "restored_weights": applied},
        )
        self._start_round()
        return True

    def advance(self) -> Optional[RoundState]:
        """Continue: pick the next question. A no-op on an empty bank."""

        if self._bank is None or len(self._bank) == 0:
            return None
        if self._phase is not Phase.ANSWERED:
            raise SessionStateError(
                "Continue is only available after an answer is submitted."
            )
        return self._start_round()

    def toggle(self, slot: int) -> bool:
        """Flip the selection of a display slot. Returns the new state."""

        current = self._require_awaiting()
        if slot not in {option.slot for option in current.presented}:
            raise ValueError(f"Unknown option slot: {slot}")
        if slot in current.selected:
            current.selected.discard(slot)
            return False
        current.selected.add(slot)
        return True

    def clear_selection(self) -> None:
        self._require_awaiting().selected.clear()

    def submit(self, slots: Optional[Iterable[int]] = None) -> RoundOutcome:
        """Evaluate the answer, adjust and persist the weight.

        ``slots`` are 1-based display positions; when omitted the slots
        toggled during the round are used.
        """

        current = self._require_awaiting()
        bank = self._bank
        assert bank is not None
        chosen = set(current.selected if slots is None else slots)
        positions = slots_to_positions(current.presented, chosen)
        question = bank[current.index]
        verdict = evaluate(positions, question.correct)

        previous = bank.weight(current.index)
        updated = self._policy.apply(previous, verdict)
        bank.set_weight(current.index, updated)
        self._save()

        current.selected = chosen
        current.phase = Phase.ANSWERED
        self._phase = Phase.ANSWERED
        self._logger.info(
            "Answer evaluated",
            extra={
                "question": current.index,
                "verdict": verdict,
                "weight_before": previous,
                "weight_after": updated,
            },
        )
        return RoundOutcome(
            index=current.index,
            verdict=verdict,
            selected=frozenset(positions),
            flags=option_flags(current.presented, question.correct),
            previous_weight=previous,
            weight=updated,
            stats=WeightStats.from_weights(bank.weights, current.index),
        )

    def stats(self) -> Optional[WeightStats]:
        if self._bank is None or self._round is None:
            return None
        return WeightStats.from_weights(self._bank.weights, self._round.index)

    def close(self) -> bool:
        """Teardown hook: flush the weight vector one last time."""

        if self._bank is None or self._store is None:
            return False
        saved = self._save()
        self._logger.info("Session closed", extra={"saved": saved})
        return saved

    def _start_round(self) -> RoundState:
        bank = self._bank
        assert bank is not None
        index = pick(bank.weights, self._rng)
        self._round = RoundState(
            index=index,
            presented=present_options(bank[index].options, self._rng),
        )
        self._phase = Phase.AWAITING_ANSWER
        self._logger.debug(
            "Round started",
            extra={"question": index, "weight": bank.weight(index)},
        )
        return self._round

    def _require_awaiting(self) -> RoundState:
        if self._phase is not Phase.AWAITING_ANSWER or self._round is None:
            raise SessionStateError(
                "Answers can only be changed while a question is awaiting one."
            )
        return self._round

    def _save(self) -> bool:
        assert self._bank is not None and self._store is not None
        return self._store.save(self._bank.weights)

    def _fail(self, message: str) -> bool:
        self._phase = Phase.FAILED
        self._error = message
        return False


# --------------------------------------------------------------------------
# Rich console loop


@dataclass(frozen=True)
class SessionCommand:
    """Normalized user command parsed from console input."""

    type: Literal["toggle", "submit", "continue", "clear", "quit"]
    slots: tuple[int, ...] = ()


@dataclass(frozen=True)
class QuizSessionResult:
    """Return value from ``run_quiz_session``."""

    exit_action: ExitAction
    answered: int
    correct: int
    stats: Optional[WeightStats]


_SLOTS_RE = re.compile(r"^\d+(?:[\s,]+\d+)*$")


def parse_session_command(raw: Optional[str]) -> Optional[SessionCommand]:
    """Parse raw user input into a structured command."""

    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered in {"s", "submit"}:
        return SessionCommand("submit")
    if lowered in {"c", "n", "continue", "next"}:
        return SessionCommand("continue")
    if lowered in {"x", "clear"}:
        return SessionCommand("clear")
    if lowered in {"q", "quit", "exit"}:
        return SessionCommand("quit")
    if _SLOTS_RE.match(text):
        slots = tuple(int(part) for part in re.split(r"[\s,]+", text))
        return SessionCommand("toggle", slots)
    return None


def run_quiz_session(
    controller: SessionController,
    console: Console,
    input_provider: InputProvider,
) -> QuizSessionResult:
    """Run rounds until the user quits, then save the weights one last time."""

    if controller.phase is Phase.FAILED:
        console.print(
            Panel(
                controller.error or LOAD_FAILURE_MESSAGE,
                title="Adaptive Quiz",
                border_style="red",
            )
        )
        return QuizSessionResult("failed", 0, 0, None)

    answered = 0
    correct = 0
    try:
        _render_question(console, controller)
        while True:
            try:
                raw = input_provider()
            except (EOFError, KeyboardInterrupt, StopIteration):
                console.print("\n[bold yellow]Session interrupted.[/]")
                break
            command = parse_session_command(raw)
            if command is None and not (raw or "").strip():
                if controller.phase is Phase.ANSWERED:
                    command = SessionCommand("continue")
            if command is None:
                console.print("[red]Unrecognized command. Try again.[/]")
                continue
            if command.type == "quit":
                console.print("\n[bold yellow]Ending session.[/]")
                break
            outcome = _apply_command(command, controller, console)
            if outcome is not None:
                answered += 1
                correct += int(outcome.verdict)
    finally:
        controller.close()

    return QuizSessionResult("quit", answered, correct, controller.stats())


def _apply_command(
    command: SessionCommand,
    controller: SessionController,
    console: Console,
) -> Optional[RoundOutcome]:
    phase = controller.phase
    if command.type == "continue":
        if phase is not Phase.ANSWERED:
            console.print("[red]Submit an answer before continuing.[/]")
            return None
        controller.advance()
        _render_question(console, controller)
        return None
    if phase is not Phase.AWAITING_ANSWER:
        console.print("[red]Answer already submitted. Press c to continue.[/]")
        return None
    if command.type == "toggle":
        try:
            for slot in command.slots:
                controller.toggle(slot)
        except ValueError as exc:
            console.print(Text(str(exc), style="red"))
        _render_selection(console, controller)
        return None
    if command.type == "clear":
        controller.clear_selection()
        _render_selection(console, controller)
        return None
    if command.type == "submit":
        outcome = controller.submit()
        _render_outcome(console, controller, outcome)
        return outcome
    return None


def _render_question(console: Console, controller: SessionController) -> None:
    current = controller.round
    bank = controller.bank
    if current is None or bank is None:
        return
    question = bank[current.index]
    console.print()
    console.rule(Text(f"Question {current.index + 1}", style="bold cyan"))
    console.print(Text(question.prompt, style="bold"))
    citations = controller.citations_for(current.index)
    if citations:
        console.print(render_citations(citations))

    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Slot", justify="right", style="cyan")
    table.add_column("Option")
    for option in current.presented:
        table.add_row(str(option.slot), Text(option.text))
    console.print(table)
    stats = controller.stats()
    if stats is not None:
        console.print(Text(stats.current_text, style="dim"))
    console.print(
        Text(
            "Commands: option numbers toggle (e.g. 1 3), s (submit), "
            "x (clear), q (quit)",
            style="dim",
        )
    )


def _render_selection(console: Console, controller: SessionController) -> None:
    current = controller.round
    if current is None:
        return
    picked = ", ".join(str(slot) for slot in sorted(current.selected))
    console.print(f"Selected: [bold]{picked or '(none)'}[/]")


def _render_outcome(
    console: Console,
    controller: SessionController,
    outcome: RoundOutcome,
) -> None:
    current = controller.round
    if current is None:
        return
    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Slot", justify="right")
    table.add_column("Option")
    table.add_column("Result", justify="center")
    for option, is_correct in zip(current.presented, outcome.flags):
        mark = "x" if option.slot in current.selected else " "
        style = "bold green" if is_correct else ""
        table.add_row(
            Text(f"[{mark}] {option.slot}"),
            Text(option.text, style=style),
            "✅" if is_correct else "",
        )
    console.print(table)
    if outcome.verdict:
        console.print("[bold green]Correct.[/]")
    else:
        console.print("[bold red]Incorrect.[/]")
    console.print(Text(outcome.stats.current_text, style="dim"))
    console.print(Text(outcome.stats.summary_text, style="dim"))
    console.print(Text("Press Enter or c to continue, q to quit.", style="dim"))
