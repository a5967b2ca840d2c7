"""Configuration for quiz sessions.

Settings live in a TOML file whose tables mirror the frozen dataclasses
below. Every key has a default, so a missing config file is valid; unknown
keys are rejected so typos surface early.
"""

from __future__ import annotations

import copy
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .weights import PRESETS, AdjustmentPolicy

CONFIG_PATH_ENV = "ADAPTIVE_QUIZ_CONFIG"
CONFIG_FILENAME = "quiz.toml"

_IDENTITIES = ("position", "content")
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


def read_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def merge_layer(
    tree: Dict[str, Any],
    layer: Mapping[str, Any],
    *,
    source: str,
    prefix: str = "",
) -> None:
    """Merge one settings layer into ``tree`` in place.

    Only keys already present in ``tree`` are accepted and tables must stay
    tables. ``source`` names the layer (a file path or "command line") in
    error messages.
    """

    for key, value in layer.items():
        dotted = f"{prefix}{key}"
        if key not in tree:
            raise ConfigError(f"Unknown key '{dotted}' in {source}.")
        if isinstance(tree[key], dict):
            if not isinstance(value, Mapping):
                raise ConfigError(
                    f"'{dotted}' in {source} must be a table, "
                    f"not {type(value).__name__}."
                )
            merge_layer(tree[key], value, source=source, prefix=f"{dotted}.")
        else:
            tree[key] = value


@dataclass(frozen=True)
class BankConfig:
    path: Path
    citations: Optional[Path]


@dataclass(frozen=True)
class WeightsConfig:
    preset: str
    policy: AdjustmentPolicy
    initial: float
    identity: str
    file: Optional[Path]


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    verbose: bool


@dataclass(frozen=True)
class QuizConfig:
    bank: BankConfig
    weights: WeightsConfig
    logging: LoggingConfig

    def weights_path(self, weights_dir: Path) -> Path:
        """Return the weight file, defaulting to one per question bank."""

        if self.weights.file is not None:
            return self.weights.file
        return weights_dir / f"{self.bank.path.stem or 'bank'}.json"


def _require_string(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _require_bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a boolean.")
    return value


def _optional_positive_float(value: Any, *, field: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    if value <= 0:
        raise ConfigError(f"'{field}' must be positive.")
    return float(value)


def _resolve_path(value: str, *, base: Path) -> Path:
    path = Path(value.strip()).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def _optional_path(value: Any, *, base: Path) -> Optional[Path]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        raise ConfigError("Paths must be strings.")
    return _resolve_path(value, base=base)


def _build_bank(section: Mapping[str, Any], *, base: Path) -> BankConfig:
    raw = _require_string(section.get("path"), field="bank.path")
    return BankConfig(
        path=_resolve_path(raw, base=base),
        citations=_optional_path(section.get("citations"), base=base),
    )


def _build_weights(section: Mapping[str, Any], *, base: Path) -> WeightsConfig:
    preset = _require_string(section.get("preset"), field="weights.preset")
    if preset not in PRESETS:
        raise ConfigError(
            "weights.preset must be one of: {0}.".format(", ".join(PRESETS))
        )
    chosen = PRESETS[preset]
    step = _optional_positive_float(section.get("step"), field="weights.step")
    low = _optional_positive_float(section.get("min"), field="weights.min")
    high = _optional_positive_float(section.get("max"), field="weights.max")
    try:
        policy = AdjustmentPolicy(
            step=chosen.step if step is None else step,
            min_weight=chosen.min_weight if low is None else low,
            max_weight=chosen.max_weight if high is None else high,
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid weight bounds: {exc}") from exc

    initial = _optional_positive_float(
        section.get("initial"), field="weights.initial"
    )
    if initial is None:
        raise ConfigError("'weights.initial' must be set.")
    if not (policy.min_weight <= initial <= policy.max_weight):
        raise ConfigError(
            "weights.initial must lie between weights.min and weights.max."
        )

    identity = _require_string(section.get("identity"), field="weights.identity")
    if identity not in _IDENTITIES:
        raise ConfigError("weights.identity must be 'position' or 'content'.")
    return WeightsConfig(
        preset=preset,
        policy=policy,
        initial=initial,
        identity=identity,
        file=_optional_path(section.get("file"), base=base),
    )


def _build_logging(section: Mapping[str, Any]) -> LoggingConfig:
    level = _require_string(section.get("level"), field="logging.level").upper()
    if level not in _LEVELS:
        raise ConfigError(
            "logging.level must be one of {0}.".format(", ".join(_LEVELS))
        )
    verbose = _require_bool(section.get("verbose"), field="logging.verbose")
    return LoggingConfig(level=level, verbose=verbose)


def build_config(
    tree: Mapping[str, Any], *, base: Optional[Path] = None
) -> QuizConfig:
    """Validate a fully merged tree. Relative paths resolve against ``base``."""

    root = base or Path.cwd()
    for name in ("bank", "weights", "logging"):
        if not isinstance(tree.get(name), Mapping):
            raise ConfigError(f"{name} table must be a mapping.")
    return QuizConfig(
        bank=_build_bank(tree["bank"], base=root),
        weights=_build_weights(tree["weights"], base=root),
        logging=_build_logging(tree["logging"]),
    )


def resolve_config_path(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    config_dir: Optional[Path] = None,
) -> tuple[Optional[Path], bool]:
    """Return the config path and whether it must exist.

    ``--config`` and ``ADAPTIVE_QUIZ_CONFIG`` must point at a real file; the
    workspace default is optional.
    """

    env_map = os.environ if env is None else env
    if explicit_path is not None:
        return explicit_path.expanduser().resolve(), True
    env_override = (env_map.get(CONFIG_PATH_ENV) or "").strip()
    if env_override:
        return Path(env_override).expanduser().resolve(), True
    if config_dir is not None:
        return config_dir / CONFIG_FILENAME, False
    return None, False


def load_config(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    config_dir: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> QuizConfig:
    """Load the TOML config, applying defaults, overrides and validation.

    Relative paths resolve against the loaded file's directory, or the
    working directory when no file was read. Paths in ``overrides`` should
    already be absolute.
    """

    path, required = resolve_config_path(
        explicit_path=explicit_path, env=env, config_dir=config_dir
    )
    tree = default_tree()
    base: Optional[Path] = None
    if path is not None and (required or path.exists()):
        merge_layer(tree, read_toml(path), source=str(path))
        base = path.parent
    if overrides:
        merge_layer(tree, overrides, source="command line")
    return build_config(tree, base=base)


def default_tree() -> Dict[str, Any]:
    """Return a copy of the default configuration tree."""

    return copy.deepcopy(_DEFAULTS)


def config_template() -> str:
    return _CONFIG_TEMPLATE.strip() + "\n"


def write_template(path: Path, *, overwrite: bool = False) -> Path:
    """Write the commented template to ``path``, owner-readable only."""

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("w" if overwrite else "x", encoding="utf-8") as handle:
            handle.write(config_template())
    except FileExistsError as exc:
        raise ConfigError(
            f"Config already exists: {path} (use --force to replace it)"
        ) from exc
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
    return path


_DEFAULTS: Dict[str, Any] = {
    "bank": {
        "path": "q.csv",
        "citations": None,
    },
    "weights": {
        "preset": "gentle",
        "step": None,
        "min": None,
        "max": None,
        "initial": 1.0,
        "identity": "position",
        "file": None,
    },
    "logging": {
        "level": "INFO",
        "verbose": False,
    },
}


_CONFIG_TEMPLATE = """
# Adaptive quiz configuration
# Relative paths resolve against the directory holding this file.

[bank]
# Question source: semicolon CSV (header row, prompt, 7 option columns,
# comma-separated correct positions) or JSON Lines (.jsonl)
path = "q.csv"
# Optional JSON object mapping question index to citation labels
# citations = "citations.json"

[weights]
# gentle: step 0.1 within [0.1, 2.0]; steep: step 0.4 within [0.1, 3.0]
preset = "gentle"
# Override individual preset values
# step = 0.1
# min = 0.1
# max = 2.0
initial = 1.0
# position: weights follow bank order; content: weights follow question text
identity = "position"
# Defaults to <workspace>/weights/<bank name>.json
# file = "weights.json"

[logging]
level = "INFO"
verbose = false
"""
