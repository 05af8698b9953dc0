"""CLI entrypoint for executing registered prompts."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from promptengine.configuration import (
    DEFAULT_CONFIG_PATH,
    EngineSettings,
    build_engine_settings,
    load_config,
)
from promptengine.engine import build_engine
from promptengine.exceptions import (
    ConfigurationError,
    NotFoundError,
    PromptEngineError,
    ProviderError,
    SchemaValidationError,
)
from promptengine.logging import setup_file_logger

EXIT_NOT_FOUND = 2
EXIT_PROVIDER = 3
EXIT_SCHEMA = 4


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Execute a named prompt through a configured provider."
    )
    parser.add_argument(
        "prompt",
        nargs="?",
        type=str,
        help="Name of the prompt template to execute.",
    )
    parser.add_argument(
        "--config",
        type=str,
        required=False,
        help=(
            "Path to a YAML config. If omitted, uses "
            "configs/default_config.yaml."
        ),
    )
    parser.add_argument(
        "--var",
        action="append",
        dest="variables",
        default=[],
        metavar="KEY=VALUE",
        help="Template variable (repeatable). Dotted keys build nested maps.",
    )
    parser.add_argument(
        "--vars-json",
        type=str,
        help="Path to a JSON file with template variables.",
    )
    parser.add_argument(
        "--provider",
        type=str,
        help="Provider name to use for this call.",
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Override the model for this call.",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        help="Override the sampling temperature.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Transport timeout in seconds for this call.",
    )
    parser.add_argument(
        "--prompt-chain",
        action="append",
        dest="prompt_chains",
        help="Additional prompt chain file to register (repeatable).",
    )
    parser.add_argument(
        "--list-prompts",
        action="store_true",
        help="List registered prompt names and exit.",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write logs to this rotating log file.",
    )
    return parser


def _parse_variables(
    pairs: List[str], vars_json: Optional[str]
) -> Dict[str, Any]:
    variables: Dict[str, Any] = {}
    if vars_json:
        data = json.loads(Path(vars_json).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("--vars-json must contain a JSON object")
        variables.update(data)
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"--var expects KEY=VALUE, got '{pair}'")
        key, value = pair.split("=", 1)
        target = variables
        parts = key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
            if not isinstance(target, dict):
                raise ValueError(
                    f"--var '{key}' conflicts with an earlier value"
                )
        target[parts[-1]] = value
    return variables


def _apply_cli_overrides(
    args: argparse.Namespace, config: dict
) -> dict:
    engine_cfg = config.setdefault("engine", {})
    if args.prompt_chains:
        chains = engine_cfg.get("prompt_chains") or []
        if isinstance(chains, str):
            chains = [chains]
        # CLI paths are relative to the working directory, not the config.
        chains.extend(str(Path(p).resolve()) for p in args.prompt_chains)
        engine_cfg["prompt_chains"] = chains
    if args.log_file:
        engine_cfg.setdefault("logging", {})["file"] = str(
            Path(args.log_file).resolve()
        )
    return config


def _configure_logging(settings: EngineSettings) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=settings.logging.level_value,
            format="%(levelname)s %(name)s: %(message)s",
        )
    if settings.logging.file is not None:
        setup_file_logger(
            settings.logging.file, level=settings.logging.level_value
        )


def _to_jsonable(result: Any) -> Any:
    if is_dataclass(result) and not isinstance(result, type):
        data = asdict(result)
        data.pop("raw", None)
        return data
    return result


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    load_dotenv()

    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH
    try:
        config_data = _apply_cli_overrides(args, load_config(config_path))
        settings = build_engine_settings(
            config_data, config_root=config_path.resolve().parent
        )
        _configure_logging(settings)
        engine = build_engine(settings)
    except (FileNotFoundError, ConfigurationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    if args.list_prompts:
        for name in sorted(engine.registry.list()):
            print(name)
        return 0
    if not args.prompt:
        parser.error("prompt name required unless --list-prompts is set.")

    try:
        variables = _parse_variables(args.variables, args.vars_json)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
        return 1

    options: Dict[str, Any] = {}
    if args.provider:
        options["provider"] = args.provider
    if args.model:
        options["model"] = args.model
    if args.temperature is not None:
        options["temperature"] = args.temperature
    if args.timeout is not None:
        options["timeout"] = args.timeout

    try:
        result = asyncio.run(engine.execute(args.prompt, variables, options))
    except NotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_NOT_FOUND
    except ProviderError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_PROVIDER
    except SchemaValidationError as exc:
        print(f"Response did not match format: {exc}", file=sys.stderr)
        return EXIT_SCHEMA
    except PromptEngineError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    print(json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
