"""Utility script to configure development environment variables for the editor."""
from __future__ import annotations

import argparse
import shutil
from pathlib import Path
from typing import Dict, List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_PATH = REPO_ROOT / ".env"
BACKUP_SUFFIX = ".bak"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Create or update a .env file with the Flask and Ollama settings required for local "
            "development."
        )
    )
    parser.add_argument(
        "--flask-app",
        default="wsgi.py",
        help="Entry point used by Flask (default: wsgi.py)",
    )
    parser.add_argument(
        "--secret-key",
        required=False,
        help=(
            "Secret key for Flask sessions. If omitted, the current value in .env is preserved or "
            "fallback defaults are used."
        ),
    )
    parser.add_argument(
        "--ollama-base-url",
        help="Base URL of the Ollama server, e.g. http://localhost:11434 (optional).",
    )
    parser.add_argument(
        "--ollama-model",
        help="Model name passed to /api/generate (optional).",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level for the application (optional).",
    )
    parser.add_argument(
        "--env-path",
        type=Path,
        default=DEFAULT_ENV_PATH,
        help="Path to the .env file that should be created/updated.",
    )
    return parser.parse_args(argv)


def read_env(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    data: Dict[str, str] = {}
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        data[key.strip()] = value.strip()
    return data


def write_env(path: Path, values: Dict[str, str]) -> None:
    if path.exists():
        backup_path = path.with_suffix(path.suffix + BACKUP_SUFFIX)
        shutil.copy(path, backup_path)
        print(f"Existing {path.name} backed up to {backup_path.name}.")
    lines = [f"{key}={value}" for key, value in values.items()]
    path.write_text("\n".join(lines) + "\n")
    print(f"Updated environment variables written to {path}.")


def update_env_file(args: argparse.Namespace) -> Dict[str, str]:
    env_data = read_env(args.env_path)
    env_updates = {"FLASK_APP": args.flask_app}
    optional_updates = {
        "SECRET_KEY": args.secret_key,
        "OLLAMA_BASE_URL": args.ollama_base_url,
        "OLLAMA_MODEL": args.ollama_model,
        "LOG_LEVEL": args.log_level,
    }
    env_updates.update({key: value for key, value in optional_updates.items() if value})

    env_data.update(env_updates)
    write_env(args.env_path, env_data)
    return env_data


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    env_values = update_env_file(args)

    print("\nSetup complete! Summary:")
    for key in sorted(env_values):
        print(f"  {key}={env_values[key]}")


if __name__ == "__main__":
    main()
