from __future__ import annotations

import logging
import random

import pytest
from rich.console import Console

from adaptive_quiz.quizzer import session as session_mod
from adaptive_quiz.quizzer.bank import QuestionSourceError
from adaptive_quiz.quizzer.weights import AdjustmentPolicy, WeightStore
from fixtures import make_bank


LOGGER = logging.getLogger("adaptive_quiz.tests.session")
POLICY = AdjustmentPolicy(step=0.1, min_weight=0.1, max_weight=2.0)


def _controller(tmp_path, *, seed=0, citations=None):
    path = tmp_path / "weights.json"
    return session_mod.SessionController(
        store_factory=lambda bank: WeightStore(path, logger=LOGGER),
        policy=POLICY,
        rng=random.Random(seed),
        logger=LOGGER,
        citations=citations,
    )


def _slot_for(controller, position):
    for option in controller.round.presented:
        if option.position == position:
            return option.slot
    raise AssertionError(f"position {position} not presented")


def _single_question_bank():
    return make_bank([("Which is B?", ["A", "B", "C"], [2])])


def test_load_failure_enters_failed_phase(tmp_path):
    controller = _controller(tmp_path)

    def broken():
        raise QuestionSourceError("network down")

    assert controller.load(broken) is False
    assert controller.phase is session_mod.Phase.FAILED
    assert controller.error == session_mod.LOAD_FAILURE_MESSAGE
    assert controller.round is None
    assert controller.close() is False


def test_empty_bank_enters_failed_phase(tmp_path):
    controller = _controller(tmp_path)

    assert controller.load(lambda: make_bank([])) is False
    assert controller.phase is session_mod.Phase.FAILED
    assert controller.error == session_mod.EMPTY_BANK_MESSAGE
    assert controller.advance() is None


def test_load_starts_first_round(tmp_path):
    controller = _controller(tmp_path)

    assert controller.load(_single_question_bank) is True

    assert controller.phase is session_mod.Phase.AWAITING_ANSWER
    current = controller.round
    assert current.index == 0
    assert sorted(o.text for o in current.presented) == ["A", "B", "C"]
    assert current.selected == set()


def test_load_twice_is_rejected(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)

    with pytest.raises(session_mod.SessionStateError):
        controller.load(_single_question_bank)


def test_weight_follows_answers_and_saturates(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)

    outcome = controller.submit([_slot_for(controller, 2)])
    assert outcome.verdict is True
    assert outcome.previous_weight == 1.0
    assert outcome.weight == pytest.approx(0.9)
    assert outcome.stats.current == pytest.approx(0.9)

    controller.advance()
    outcome = controller.submit([_slot_for(controller, 1)])
    assert outcome.verdict is False
    assert outcome.weight == pytest.approx(1.0)

    for _ in range(15):
        controller.advance()
        outcome = controller.submit([])
    assert outcome.weight == 2.0
    assert controller.bank.weights == [2.0]


def test_submit_uses_toggled_slots(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)
    slot = _slot_for(controller, 2)
    other = _slot_for(controller, 3)

    assert controller.toggle(slot) is True
    assert controller.toggle(other) is True
    assert controller.toggle(other) is False
    outcome = controller.submit()

    assert outcome.verdict is True
    assert outcome.selected == frozenset({2})
    assert controller.round.selected == {slot}
    assert outcome.flags == [o.position == 2 for o in controller.round.presented]


def test_clear_selection(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)
    controller.toggle(1)

    controller.clear_selection()

    assert controller.round.selected == set()


def test_toggle_unknown_slot(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)

    with pytest.raises(ValueError):
        controller.toggle(9)


def test_invalid_transitions(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)

    with pytest.raises(session_mod.SessionStateError):
        controller.advance()

    controller.submit([])
    with pytest.raises(session_mod.SessionStateError):
        controller.submit([])
    with pytest.raises(session_mod.SessionStateError):
        controller.toggle(1)
    with pytest.raises(session_mod.SessionStateError):
        controller.clear_selection()

    controller.advance()
    assert controller.phase is session_mod.Phase.AWAITING_ANSWER


def test_weights_persist_after_each_submit(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)

    controller.submit([_slot_for(controller, 2)])

    stored = WeightStore(tmp_path / "weights.json").load()
    assert stored == pytest.approx([0.9])


def test_saved_weights_are_restored(tmp_path):
    WeightStore(tmp_path / "weights.json").save([0.4, 9.0])
    bank = make_bank([("Q1", ["a"], [1]), ("Q2", ["a"], [1]), ("Q3", ["a"], [1])])
    controller = _controller(tmp_path)

    controller.load(lambda: bank)

    assert controller.bank.weights == [0.4, 2.0, 1.0]


def test_close_saves_weights(tmp_path):
    controller = _controller(tmp_path)
    controller.load(_single_question_bank)
    controller.bank.set_weight(0, 1.7)

    assert controller.close() is True

    assert WeightStore(tmp_path / "weights.json").load() == [1.7]


def test_heavier_questions_are_picked_more_often(tmp_path):
    bank = make_bank([("Easy", ["a"], [1]), ("Hard", ["a"], [1])])
    bank.set_weight(0, 0.1)
    bank.set_weight(1, 2.0)
    controller = _controller(tmp_path, seed=42)
    controller.load(lambda: bank)

    picks = []
    for _ in range(400):
        picks.append(controller.round.index)
        controller.submit([1])
        controller.bank.set_weight(0, 0.1)
        controller.bank.set_weight(1, 2.0)
        controller.advance()

    assert picks.count(1) > picks.count(0) * 5


def test_stats_text():
    stats = session_mod.WeightStats.from_weights([0.5, 1.25, 2.0], 1)

    assert stats.current_text == "current probability: 1.25"
    assert stats.summary_text == "min: 0.50, max: 2.00, total prob sum: 3.75"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1 3", session_mod.SessionCommand("toggle", (1, 3))),
        ("2,4", session_mod.SessionCommand("toggle", (2, 4))),
        ("S", session_mod.SessionCommand("submit")),
        ("next", session_mod.SessionCommand("continue")),
        ("x", session_mod.SessionCommand("clear")),
        ("exit", session_mod.SessionCommand("quit")),
        ("", None),
        (None, None),
        ("maybe", None),
    ],
)
def test_parse_session_command(raw, expected):
    assert session_mod.parse_session_command(raw) == expected


def _console() -> Console:
    return Console(record=True, width=100, color_system=None)


def test_run_quiz_session_round_trip(tmp_path):
    bank = make_bank([("Only question?", ["yes"], [1])])
    controller = _controller(tmp_path)
    controller.load(lambda: bank)
    console = _console()
    commands = iter(["1", "s", "", "s", "c", "q"])

    result = session_mod.run_quiz_session(
        controller, console, lambda: next(commands)
    )

    assert result.exit_action == "quit"
    assert result.answered == 2
    assert result.correct == 1
    output = console.export_text()
    assert "Only question?" in output
    assert "Selected: 1" in output
    assert "[x] 1" in output
    assert "Correct." in output
    assert "Incorrect." in output
    assert "current probability: 0.90" in output
    assert "Ending session." in output
    assert WeightStore(tmp_path / "weights.json").load() == pytest.approx([1.0])


def test_run_quiz_session_guards_commands(tmp_path):
    controller = _controller(tmp_path)
    controller.load(lambda: make_bank([("Q?", ["a", "b"], [1])]))
    console = _console()
    commands = iter(["c", "hello", "7", "s", "1"])

    result = session_mod.run_quiz_session(
        controller, console, lambda: next(commands)
    )

    output = console.export_text()
    assert "Submit an answer before continuing." in output
    assert "Unrecognized command." in output
    assert "Unknown option slot: 7" in output
    assert "Answer already submitted." in output
    assert "Session interrupted." in output
    assert result.answered == 1
    assert result.correct == 0


def test_run_quiz_session_shows_citations(tmp_path):
    from adaptive_quiz.quizzer.citations import Citation

    controller = _controller(
        tmp_path, citations={0: [Citation("Chapter 2", "https://c.test")]}
    )
    controller.load(lambda: make_bank([("Q?", ["a"], [1])]))
    console = _console()

    session_mod.run_quiz_session(controller, console, lambda: "q")

    assert "Chapter 2" in console.export_text()


def test_run_quiz_session_failed_load(tmp_path):
    controller = _controller(tmp_path)
    controller.load(lambda: make_bank([]))
    console = _console()

    def no_input():
        raise AssertionError("input should not be requested")

    result = session_mod.run_quiz_session(controller, console, no_input)

    assert result.exit_action == "failed"
    assert result.stats is None
    assert session_mod.EMPTY_BANK_MESSAGE in console.export_text()


def test_run_quiz_session_shows_bracketed_text_verbatim(tmp_path):
    controller = _controller(tmp_path)
    controller.load(
        lambda: make_bank([("Which is [typed]?", ["list[int]", "a[/]b"], [1])])
    )
    console = _console()
    commands = iter(["1 2", "s", "q"])

    result = session_mod.run_quiz_session(
        controller, console, lambda: next(commands)
    )

    output = console.export_text()
    assert result.answered == 1
    assert "Which is [typed]?" in output
    assert "list[int]" in output
    assert "a[/]b" in output
    assert output.count("[x]") == 2
    assert "[ ]" not in output
