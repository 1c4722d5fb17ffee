"""Installation settings: completion provider connection and data location.

Values come from environment variables, optionally loaded from a ``.env``
file with python-dotenv:

  FORGE_API_KEY           provider key for every user (GROQ_API_KEY also works)
  FORGE_PROVIDER_URL      OpenAI-compatible base URL
  FORGE_MODEL             model identifier
  FORGE_TEMPERATURE       sampling temperature (default 0.8)
  FORGE_MAX_TOKENS        reply length cap (default 500)
  FORGE_PROVIDER_TIMEOUT  seconds before a provider call is abandoned (default 30)
  FORGE_DATA_DIR          where state.json and credentials.json live (default ./data)

When FORGE_API_KEY is empty the pipeline looks for a key the user stored
themselves, and answers with canned replies if there is none.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from roleplay_forge.errors import ValidationError
from roleplay_forge.llm import DEFAULT_MODEL, DEFAULT_PROVIDER_URL

_ENV_VARS = {
    "provider_url": "FORGE_PROVIDER_URL",
    "model": "FORGE_MODEL",
    "temperature": "FORGE_TEMPERATURE",
    "max_tokens": "FORGE_MAX_TOKENS",
    "provider_timeout": "FORGE_PROVIDER_TIMEOUT",
    "data_dir": "FORGE_DATA_DIR",
}


class Settings(BaseModel):
    api_key: str = ""
    provider_url: str = DEFAULT_PROVIDER_URL
    model: str = DEFAULT_MODEL
    temperature: float = Field(0.8, ge=0.0, le=2.0)
    max_tokens: int = Field(500, gt=0)
    provider_timeout: float = Field(30.0, gt=0)
    data_dir: Path = Path("data")


def load_settings(env_file: Path | None = None) -> Settings:
    """Read settings from the environment after loading ``env_file``.

    Variables already set in the environment win over the file.
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    raw: dict[str, str] = {
        field: os.environ[var] for field, var in _ENV_VARS.items() if os.environ.get(var)
    }
    raw["api_key"] = os.getenv("FORGE_API_KEY") or os.getenv("GROQ_API_KEY", "")
    try:
        return Settings.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid configuration: {e}") from e
