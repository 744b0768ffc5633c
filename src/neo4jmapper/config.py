"""
Connection settings read from the process environment.

Example:
    ```python
    # NEO4J_URI=bolt://db:7687 NEO4J_USER=neo4j NEO4J_PASSWORD=secret
    settings = load_settings()
    engine = create_graph_engine_from_settings(settings)
    ```
"""

from typing import Tuple

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Neo4jSettings(BaseSettings):
    """Neo4j connection configuration (``NEO4J_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="NEO4J_",
        extra="ignore",
        populate_by_name=True,
    )

    uri: str = Field(
        default="bolt://localhost:7687",
        validation_alias=AliasChoices("NEO4J_URI", "NEO4J_HOST"),
        description="Bolt or neo4j:// URI of the server",
    )
    user: str = Field(
        default="neo4j",
        validation_alias=AliasChoices("NEO4J_USER"),
        description="User name for basic auth",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("NEO4J_PASSWORD", "NEO4J_PASS"),
        description="Password for basic auth",
    )
    database: str = Field(
        default="neo4j",
        validation_alias=AliasChoices("NEO4J_DATABASE"),
        description="Database that sessions open by default",
    )

    @property
    def auth(self) -> Tuple[str, str]:
        """Basic auth tuple as expected by the driver."""
        return (self.user, self.password.get_secret_value())


def load_settings() -> Neo4jSettings:
    """Read settings from the environment."""
    return Neo4jSettings()
