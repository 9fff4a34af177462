import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / "scripts"))

import dev_setup


def test_update_creates_env_file(tmp_path):
    env_path = tmp_path / ".env"
    args = dev_setup.parse_args(
        ["--env-path", str(env_path), "--ollama-model", "mistral", "--secret-key", "s3cret"]
    )

    values = dev_setup.update_env_file(args)

    assert values == {"FLASK_APP": "wsgi.py", "SECRET_KEY": "s3cret", "OLLAMA_MODEL": "mistral"}
    assert dev_setup.read_env(env_path) == values
    assert not (tmp_path / ".env.bak").exists()


def test_update_preserves_existing_values_and_backs_up(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("# local settings\nSECRET_KEY=keep-me\nOLLAMA_BASE_URL=http://old:11434\n")
    args = dev_setup.parse_args(
        ["--env-path", str(env_path), "--ollama-base-url", "http://gpu-box:11434"]
    )

    values = dev_setup.update_env_file(args)

    assert values["SECRET_KEY"] == "keep-me"
    assert values["OLLAMA_BASE_URL"] == "http://gpu-box:11434"
    backup = tmp_path / ".env.bak"
    assert "http://old:11434" in backup.read_text()


def test_read_env_ignores_comments_and_junk(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("# comment\n\nnot a pair\n LOG_LEVEL = DEBUG \n")

    assert dev_setup.read_env(env_path) == {"LOG_LEVEL": "DEBUG"}
    assert dev_setup.read_env(tmp_path / "missing.env") == {}
