from ablycli.shared.config.cli import (
    CliConfig,
    CliConfigLoader,
    Credentials,
    parse_api_key,
    resolve_credentials,
)

__all__ = [
    "CliConfig",
    "CliConfigLoader",
    "Credentials",
    "parse_api_key",
    "resolve_credentials",
]
