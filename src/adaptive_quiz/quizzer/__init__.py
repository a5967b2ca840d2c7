from ._main import build_arg_parser
from .bank import (
    Question,
    QuestionBank,
    QuestionSourceError,
    load_bank,
    parse_csv,
    parse_jsonl,
)
from .citations import Citation, load_citations
from .evaluator import evaluate, option_flags, slots_to_positions
from .sampler import PresentedOption, pick, present_options
from .session import (
    Phase,
    QuizSessionResult,
    RoundOutcome,
    RoundState,
    SessionController,
    SessionStateError,
    WeightStats,
    run_quiz_session,
)
from .view.quiz import QuizApp
from .weights import (
    PRESETS,
    AdjustmentPolicy,
    KeyedWeightStore,
    WeightStore,
    adjust,
)

__all__ = [
    "build_arg_parser",
    "Question",
    "QuestionBank",
    "QuestionSourceError",
    "load_bank",
    "parse_csv",
    "parse_jsonl",
    "Citation",
    "load_citations",
    "evaluate",
    "option_flags",
    "slots_to_positions",
    "PresentedOption",
    "pick",
    "present_options",
    "Phase",
    "QuizSessionResult",
    "RoundOutcome",
    "RoundState",
    "SessionController",
    "SessionStateError",
    "WeightStats",
    "run_quiz_session",
    "QuizApp",
    "PRESETS",
    "AdjustmentPolicy",
    "KeyedWeightStore",
    "WeightStore",
    "adjust",
]
