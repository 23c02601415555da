from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError
from .reconciler import DuplicatePolicy
from .rules import DEFAULT_SEPARATORS


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    force: bool = False
    allow_extended_chars: bool = False
    duplicates: str = DuplicatePolicy.ERROR.value


@dataclass
class PrefixesSection:
    lambda_a: str = ""
    lambda_b: str = ""
    lex_bot_a: str = ""
    lex_bot_b: str = ""


@dataclass
class OutputSection:
    separators: List[str] = field(default_factory=lambda: list(DEFAULT_SEPARATORS))


@dataclass
class LoggingSection:
    enabled: bool = True          # file sinks; console is always on
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    prefixes: PrefixesSection
    output: OutputSection
    logging: LoggingSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id

    @property
    def duplicate_policy(self) -> DuplicatePolicy:
        return DuplicatePolicy(self.app.duplicates)


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./connectdiff.yml",
    os.path.expanduser("~/.config/connectdiff/config.yml"),
    "/etc/connectdiff/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None, "force": False, "allow_extended_chars": False, "duplicates": "error"},
    "prefixes": {"lambda_a": "", "lambda_b": "", "lex_bot_a": "", "lex_bot_b": ""},
    "output": {"separators": list(DEFAULT_SEPARATORS)},
    "logging": {"enabled": True, "base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
}

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Unparseable config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...], required: bool = False) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    if required:
        raise ConfigError(f"Config file not found: {', '.join(files)}")
    return {}


def _load_dotenv() -> None:
    """Load a .env from the working directory upwards; never override the shell."""
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


def _env_to_dict(prefix: str = "CDIFF_") -> Dict[str, Any]:
    """
    Convert CDIFF_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Minimal type coercion for booleans and lists in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def walk(obj: Any, key_path: Tuple[str, ...] = ()) -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, key_path + (k,)) for k, v in obj.items()}
        if key_path[-1:] == ("separators",):
            # env form: CDIFF_OUTPUT__SEPARATORS="%|!"
            if isinstance(obj, str):
                return list(obj)
            return [str(s) for s in obj or []]
        if isinstance(obj, list):
            return [walk(v, key_path) for v in obj]
        if key_path[-1:] in [("force",), ("allow_extended_chars",), ("enabled",)]:
            return to_bool(obj)
        if key_path[-1:] in [("lambda_a",), ("lambda_b",), ("lex_bot_a",), ("lex_bot_b",)]:
            return "" if obj is None else str(obj)
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    problems = []
    dup = str(cfg.get("app", {}).get("duplicates", "")).lower()
    if dup not in {p.value for p in DuplicatePolicy}:
        problems.append(f"app.duplicates must be one of error/first (got {dup!r})")
    seps = cfg.get("output", {}).get("separators") or []
    if not seps or any(not isinstance(s, str) or len(s) != 1 or s == "#" for s in seps):
        problems.append("output.separators must be single characters other than '#'")
    log_cfg = cfg.get("logging", {})
    for key in ("console_level", "file_level"):
        if str(log_cfg.get(key, "")).upper() not in _LEVELS:
            problems.append(f"logging.{key} must be a logging level name")
    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems))


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "CDIFF_",
    use_dotenv: bool = True,
    require_file: bool = False,
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix CDIFF_, nested via __; .env honoured)
      3) YAML file (first existing; one must exist when `require_file`)
      4) Built-in defaults

    Also performs:
      - ${ENV_VAR} interpolation
      - basic type coercion (bool/list)
      - validation of enumerated values
    """
    file_cfg = _load_first_existing(files, required=require_file)

    if use_dotenv:
        _load_dotenv()
    env_cfg = _env_to_dict(env_prefix)

    # Combine: defaults <- file <- env <- cli
    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, env_cfg)
    merged = _deep_merge(merged, cli_overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)
    merged["app"]["duplicates"] = str(merged["app"].get("duplicates", "")).lower()

    _validate(merged)

    try:
        return AppConfig(
            app=AppSection(**merged.get("app", {})),
            prefixes=PrefixesSection(**merged.get("prefixes", {})),
            output=OutputSection(**merged.get("output", {})),
            logging=LoggingSection(**merged.get("logging", {})),
        )
    except TypeError as exc:
        raise ConfigError(f"Unknown configuration key: {exc}") from exc
