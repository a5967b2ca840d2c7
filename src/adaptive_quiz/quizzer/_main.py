import argparse
import logging
import random
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..core import WorkspaceError, WorkspaceLayout, configure_logger
from ..core import ensure_workspace
from .bank import QuestionBank, QuestionSourceError, load_bank
from .citations import load_citations
from .config import ConfigError, QuizConfig, load_config, write_template
from .config import CONFIG_FILENAME
from .session import Phase, SessionController, StoreFactory, run_quiz_session
from .view.quiz import QuizApp
from .weights import PRESETS, KeyedWeightStore, WeightStore

LOGGER_NAME = "adaptive_quiz.quizzer"


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    tree: Dict[str, Any] = {}
    bank = getattr(args, "bank", None)
    if bank:
        tree.setdefault("bank", {})["path"] = str(
            Path(bank).expanduser().resolve()
        )
    citations = getattr(args, "citations", None)
    if citations:
        tree.setdefault("bank", {})["citations"] = str(
            Path(citations).expanduser().resolve()
        )
    preset = getattr(args, "preset", None)
    if preset:
        tree.setdefault("weights", {})["preset"] = preset
    if getattr(args, "verbose", False):
        tree.setdefault("logging", {})["verbose"] = True
    return tree


def _prepare(
    args: argparse.Namespace,
) -> tuple[WorkspaceLayout, QuizConfig, logging.Logger]:
    layout = ensure_workspace(path=getattr(args, "workspace", None))
    cfg = load_config(
        explicit_path=getattr(args, "config", None),
        config_dir=layout.path_for("config"),
        overrides=_overrides(args),
    )
    logger, _ = configure_logger(
        LOGGER_NAME,
        log_dir=layout.path_for("logs"),
        level=cfg.logging.level,
        verbose=cfg.logging.verbose,
    )
    return layout, cfg, logger


def build_store_factory(
    cfg: QuizConfig, weights_path: Path, logger: logging.Logger
) -> StoreFactory:
    """Pick the persistence strategy configured by ``weights.identity``."""

    def factory(bank: QuestionBank) -> WeightStore:
        if cfg.weights.identity == "content":
            return KeyedWeightStore(
                weights_path, bank.content_keys(), logger=logger
            )
        return WeightStore(weights_path, logger=logger)

    return factory


def build_controller(
    cfg: QuizConfig,
    layout: WorkspaceLayout,
    logger: logging.Logger,
    *,
    seed: Optional[int] = None,
) -> SessionController:
    weights_path = cfg.weights_path(layout.path_for("weights"))
    return SessionController(
        store_factory=build_store_factory(cfg, weights_path, logger),
        policy=cfg.weights.policy,
        rng=random.Random(seed),
        logger=logger,
        citations=load_citations(cfg.bank.citations),
    )


def _bank_source(cfg: QuizConfig):
    return lambda: load_bank(cfg.bank.path, initial_weight=cfg.weights.initial)


def _cmd_start(args: argparse.Namespace, console: Console) -> int:
    layout, cfg, logger = _prepare(args)
    logger.debug(
        "quiz start invoked",
        extra={"bank": str(cfg.bank.path), "preset": cfg.weights.preset},
    )
    controller = build_controller(cfg, layout, logger, seed=args.seed)
    controller.load(_bank_source(cfg))

    if args.tui:
        app = QuizApp(controller)
        try:
            app.run()
        finally:
            controller.close()
        return 1 if controller.phase is Phase.FAILED else 0

    result = run_quiz_session(
        controller, console, lambda: console.input("[bold cyan]> [/]")
    )
    if result.exit_action == "failed":
        return 1
    console.print(
        f"Answered {result.answered} question(s), {result.correct} correct."
    )
    return 0


def _cmd_stats(args: argparse.Namespace, console: Console) -> int:
    layout, cfg, logger = _prepare(args)
    try:
        bank = load_bank(cfg.bank.path, initial_weight=cfg.weights.initial)
    except QuestionSourceError as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        return 1
    if len(bank) == 0:
        console.print("Question bank is empty.")
        return 1
    weights_path = cfg.weights_path(layout.path_for("weights"))
    store = build_store_factory(cfg, weights_path, logger)(bank)
    policy = cfg.weights.policy
    bank.apply_weights(
        store.load(),
        min_weight=policy.min_weight,
        max_weight=policy.max_weight,
    )

    weights = bank.weights
    order = sorted(range(len(bank)), key=lambda i: weights[i], reverse=True)
    limit = args.top if args.top and args.top > 0 else len(order)
    table = Table(title="Question weights", box=box.SIMPLE, expand=True)
    table.add_column("#", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Question", overflow="fold")
    for index in order[:limit]:
        table.add_row(
            str(index + 1), f"{weights[index]:.2f}", Text(bank[index].prompt)
        )
    console.print(table)
    console.print(
        f"min: {min(weights):.2f}, max: {max(weights):.2f}, "
        f"total prob sum: {sum(weights):.2f}"
    )
    console.print(f"Weights file: {escape(str(weights_path))}", style="dim")
    return 0


def _cmd_reset(args: argparse.Namespace, console: Console) -> int:
    layout, cfg, logger = _prepare(args)
    weights_path = cfg.weights_path(layout.path_for("weights"))
    if not WeightStore(weights_path, logger=logger).clear():
        console.print(f"[red]Could not remove {escape(str(weights_path))}.[/]")
        return 1
    logger.info("Weights reset", extra={"weights_path": str(weights_path)})
    console.print(f"Reset weights at {escape(str(weights_path))}")
    return 0


def _cmd_init_config(args: argparse.Namespace, console: Console) -> int:
    if args.path is not None:
        target = args.path
    else:
        layout = ensure_workspace(path=getattr(args, "workspace", None))
        target = layout.path_for("config") / CONFIG_FILENAME
    path = write_template(target, overwrite=bool(args.force))
    console.print(f"Created template {escape(str(path))}")
    return 0


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", type=Path, help="Path to quiz.toml (overrides workspace)"
    )
    parser.add_argument(
        "--workspace", type=Path, help="Override the workspace directory"
    )
    parser.add_argument("--bank", type=Path, help="Question source file")
    parser.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        help="Weight adjustment preset",
    )
    parser.add_argument("--verbose", action="store_true")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="quiz",
        description="Adaptive self-quiz over a fixed question bank",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    sub = p.add_subparsers(dest="command", required=True)

    sp_start = sub.add_parser("start", help="Start a quiz session")
    _add_common(sp_start)
    sp_start.add_argument("--citations", type=Path, help="Citation JSON file")
    sp_start.add_argument("--seed", type=int, help="Seed the random source")
    sp_start.add_argument(
        "--tui", action="store_true", help="Use the Textual interface"
    )

    sp_stats = sub.add_parser("stats", help="Show current question weights")
    _add_common(sp_stats)
    sp_stats.add_argument(
        "--top", type=int, default=0, help="Show only the N heaviest questions"
    )

    sp_reset = sub.add_parser("reset", help="Forget saved weights")
    _add_common(sp_reset)

    sp_init = sub.add_parser("init-config", help="Write a quiz.toml template")
    sp_init.add_argument("--path", type=Path, help="Destination file")
    sp_init.add_argument(
        "--workspace", type=Path, help="Override the workspace directory"
    )
    sp_init.add_argument("--force", action="store_true")
    return p


_HANDLERS = {
    "start": _cmd_start,
    "stats": _cmd_stats,
    "reset": _cmd_reset,
    "init-config": _cmd_init_config,
}


def main(
    argv: Optional[Sequence[str]] = None, *, console: Optional[Console] = None
) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    out = console or Console()
    handler = _HANDLERS[args.command]
    try:
        return handler(args, out)
    except ConfigError as exc:
        out.print(f"[red]Config error:[/] {escape(str(exc))}")
        return 2
    except WorkspaceError as exc:
        out.print(f"[red]Workspace error:[/] {escape(str(exc))}")
        return 2
