"""Repository secrets and variables applied alongside the MCP configuration."""

from pydantic import BaseModel, Field, field_validator


def _as_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class SecretsAndVariables(BaseModel):
    """Two independent name -> value maps. Values are resolved at load time."""

    secrets: dict[str, str] = Field(default_factory=dict)
    variables: dict[str, str] = Field(default_factory=dict)

    @field_validator("secrets", "variables", mode="before")
    @classmethod
    def _coerce_values(cls, value):
        # YAML turns `true` / `30000` into bool/int; the gh CLI wants strings
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): _as_text(v) for k, v in value.items()}
        return value

    @property
    def is_empty(self) -> bool:
        return not self.secrets and not self.variables
