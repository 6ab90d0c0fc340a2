"""
Factory for a fully wired eureka client.
"""
from pathlib import Path
from typing import Any, Mapping, Optional

from .config import EurekaClientConfig, load_config
from .lease import LeaseManager


def create_eureka_client(
    config: Optional[EurekaClientConfig] = None,
    *,
    cwd: Optional[str | Path] = None,
    filename: Optional[str] = None,
    env: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> LeaseManager:
    """
    Create a LeaseManager from a config, or from YAML files plus overrides.

    Args:
        config: Ready configuration; when given, the file arguments are ignored
        cwd: Directory holding eureka-client.yml / eureka-client-{env}.yml
        filename: Base file name without extension
        env: Environment name (default: APP_ENV env var or 'development')
        overrides: Explicit configuration values
        **kwargs: Passed to LeaseManager (resolver, middleware, http_client, ...)

    Example:
        client = create_eureka_client(overrides={
            "instance": {"app": "jqservice", "hostName": "localhost", "port": 8080,
                         "vipAddress": "jq.test.com", "dataCenterInfo": {"name": "MyOwn"}},
            "eureka": {"host": "localhost", "port": 8761},
        })
        await client.start()
    """
    if config is None:
        config = load_config(cwd=cwd, filename=filename, env=env, overrides=overrides)
    return LeaseManager(config, **kwargs)
