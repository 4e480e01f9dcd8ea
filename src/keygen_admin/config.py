"""
Configuration for keygen-admin.

Precedence, highest first:
  1) process environment (`KEYGEN_API_URL`, `KEYGEN_ACCOUNT_ID`, `KEYGEN_API_TOKEN`, ...)
  2) `.env` in the current directory (never overrides the environment)
  3) `~/.keygen/admin.toml` (`api_url`, `account_id`, `api_token`, `public_key`,
     `timeout`, `max_attempts`, `retry_delay`); path overridable with `KEYGEN_ADMIN_CONFIG`
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
import typing as t

from dotenv import load_dotenv

from keygen_admin.errors import ConfigError
from keygen_admin.http import RetryPolicy

DEFAULT_CONFIG_PATH = pathlib.Path.home() / ".keygen" / "admin.toml"

# env var -> toml key
REQUIRED = {
    "KEYGEN_API_URL": "api_url",
    "KEYGEN_ACCOUNT_ID": "account_id",
    "KEYGEN_API_TOKEN": "api_token",
}
RETRY_KEYS = {
    "KEYGEN_TIMEOUT": ("timeout", float),
    "KEYGEN_MAX_ATTEMPTS": ("max_attempts", int),
    "KEYGEN_RETRY_DELAY": ("retry_delay", float),
}


def config_path() -> pathlib.Path:
    override = os.getenv("KEYGEN_ADMIN_CONFIG")
    return pathlib.Path(override) if override else DEFAULT_CONFIG_PATH


def read_toml(path: pathlib.Path) -> dict[str, t.Any]:
    if not path.exists():
        return {}
    try:
        import tomllib  # py311+
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc


@dataclasses.dataclass
class Config:
    api_url: str
    account_id: str
    api_token: str
    public_key: str | None = None
    retry: RetryPolicy = dataclasses.field(default_factory=RetryPolicy)

    @property
    def account_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/v1/accounts/{self.account_id}"

    @staticmethod
    def load(env_file: str | os.PathLike | None = ".env", toml_path: pathlib.Path | None = None) -> "Config":
        if env_file and pathlib.Path(env_file).exists():
            load_dotenv(env_file, override=False)
        data = read_toml(toml_path or config_path())
        return Config.from_sources(os.environ, data)

    @staticmethod
    def from_sources(env: t.Mapping[str, str], data: t.Mapping[str, t.Any]) -> "Config":
        values: dict[str, str] = {}
        missing: list[str] = []
        for env_key, toml_key in REQUIRED.items():
            value = env.get(env_key) or data.get(toml_key)
            if value:
                values[toml_key] = str(value).strip()
            else:
                missing.append(env_key)
        if missing:
            raise ConfigError(
                f"{', '.join(missing)} not set; add to your .env file or the environment "
                f"(example: KEYGEN_API_URL=https://api.keygen.sh)"
            )

        tuning: dict[str, t.Any] = {}
        for env_key, (toml_key, cast) in RETRY_KEYS.items():
            raw = env.get(env_key) or data.get(toml_key)
            if raw is None or raw == "":
                continue
            try:
                tuning[toml_key] = cast(raw)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{env_key} must be a number, got {raw!r}") from exc

        try:
            retry = RetryPolicy(
                timeout=tuning.get("timeout", RetryPolicy.timeout),
                max_attempts=tuning.get("max_attempts", RetryPolicy.max_attempts),
                delay=tuning.get("retry_delay", RetryPolicy.delay),
            )
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        return Config(
            api_url=values["api_url"],
            account_id=values["account_id"],
            api_token=values["api_token"],
            public_key=env.get("KEYGEN_PUBLIC_KEY") or data.get("public_key") or None,
            retry=retry,
        )
