from typing import List, Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widget import Widget
from textual.widgets import Button, Checkbox, Static

from ..session import Phase, RoundOutcome, SessionController
from ..citations import render_citations


class OptionCheckbox(Checkbox):
    """Checkbox that remembers which display slot it stands for."""

    def __init__(self, label: str, slot: int) -> None:
        super().__init__(Text(label), value=False)
        self.slot = slot


class QuizApp(App):
    CSS_PATH = None
    CSS = """
.prompt { text-style: bold; margin: 1 0; }
.citations { color: $text-muted; }
OptionCheckbox.correct { background: $success 20%; text-style: bold; }
#footer { height: auto; }
#current-prob, #stats { color: $text-muted; }
"""
    BINDINGS = [
        ("s", "submit", "Submit"),
        ("c", "continue", "Continue"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, controller: SessionController):
        super().__init__()
        self._controller = controller
        self._outcome: Optional[RoundOutcome] = None

    def compose(self) -> ComposeResult:
        if self._controller.phase is Phase.FAILED:
            yield Static(self._controller.error or "", id="error")
            return
        with Container(id="stage"):
            yield from self._stage_widgets()
        with Horizontal(id="footer"):
            yield Button(
                "Submit",
                id="submit",
                variant="primary",
                disabled=not self.submit_enabled,
            )
            yield Button(
                "Continue", id="continue", disabled=not self.continue_enabled
            )
        current, summary = self.status_lines()
        yield Static(current, id="current-prob")
        yield Static(summary, id="stats")

    # Pure helpers (usable without running the App)
    @property
    def submit_enabled(self) -> bool:
        return self._controller.phase is Phase.AWAITING_ANSWER

    @property
    def continue_enabled(self) -> bool:
        return self._controller.phase is Phase.ANSWERED

    def selected_slots(self) -> List[int]:
        current = self._controller.round
        return sorted(current.selected) if current else []

    def toggle_slot(self, slot: int) -> bool:
        return self._controller.toggle(slot)

    def submit_answer(self) -> Optional[RoundOutcome]:
        if not self.submit_enabled:
            return None
        self._outcome = self._controller.submit()
        self._reveal()
        return self._outcome

    def continue_round(self) -> bool:
        if not self.continue_enabled:
            return False
        self._controller.advance()
        self._outcome = None
        self._update_stage()
        return True

    def status_lines(self) -> tuple[str, str]:
        stats = self._controller.stats()
        if stats is None:
            return ("", "")
        return (stats.current_text, stats.summary_text)

    def action_submit(self) -> None:
        self.submit_answer()

    def action_continue(self) -> None:
        self.continue_round()

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        slot = getattr(event.checkbox, "slot", None)
        if slot is None or not self.submit_enabled:
            return
        if event.value != (slot in self.selected_slots()):
            self.toggle_slot(slot)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = getattr(event.button, "id", "") or ""
        if bid == "submit":
            self.action_submit()
        elif bid == "continue":
            self.action_continue()

    def _stage_widgets(self) -> List[Widget]:
        current = self._controller.round
        bank = self._controller.bank
        if current is None or bank is None:
            return [Static("Loading questions...")]
        widgets: List[Widget] = [
            Static(Text(bank[current.index].prompt), classes="prompt")
        ]
        citations = self._controller.citations_for(current.index)
        if citations:
            widgets.append(
                Static(render_citations(citations), classes="citations")
            )
        widgets.append(
            Vertical(
                *(
                    OptionCheckbox(option.text, option.slot)
                    for option in current.presented
                ),
                classes="options",
            )
        )
        return widgets

    def _update_stage(self) -> None:
        try:
            stage = self.query_one("#stage", Container)
        except Exception:
            return
        stage.remove_children()
        stage.mount_all(self._stage_widgets())
        self._update_controls()

    def _reveal(self) -> None:
        if self._outcome is None:
            return
        try:
            boxes = list(self.query(OptionCheckbox))
        except Exception:
            return
        flags = dict(
            zip(
                (o.slot for o in self._controller.round.presented),
                self._outcome.flags,
            )
        )
        for box in boxes:
            box.disabled = True
            if flags.get(box.slot):
                box.add_class("correct")
        self._update_controls()

    def _update_controls(self) -> None:
        try:
            self.query_one("#submit", Button).disabled = not self.submit_enabled
            self.query_one("#continue", Button).disabled = (
                not self.continue_enabled
            )
            current, summary = self.status_lines()
            self.query_one("#current-prob", Static).update(current)
            self.query_one("#stats", Static).update(summary)
        except Exception:
            pass
