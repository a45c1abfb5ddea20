"""
.env file utilities used by the setup command.
"""

from pathlib import Path


def parse_env_file(env_path: Path) -> dict[str, str]:
    """
    Parse an existing .env file into a dictionary.

    Args:
        env_path: Path to the .env file

    Returns:
        Dictionary of KEY=VALUE pairs (comments and empty lines are skipped)
    """
    config: dict[str, str] = {}
    if not env_path.exists():
        return config

    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" in line:
            key, _, value = line.partition("=")
            config[key.strip()] = value.strip()

    return config


def write_env_file(env_path: Path, config: dict[str, str]) -> None:
    """
    Write configuration to a .env file with section comments.

    Object store credentials are written only when present; otherwise a
    commented template is added.
    """
    lines = [
        "# geospider configuration",
        "",
        "# Remote endpoint (https://... or s3://bucket/prefix, gs://..., az://...)",
        f"GEOSPIDER_SERVER_URL={config.get('GEOSPIDER_SERVER_URL', '')}",
        "",
        "# Collection",
        f"GEOSPIDER_COLLECTION_INTERVAL_SECONDS={config.get('GEOSPIDER_COLLECTION_INTERVAL_SECONDS', '60')}",
        f"GEOSPIDER_LOCATION_SOURCE={config.get('GEOSPIDER_LOCATION_SOURCE', 'simulated')}",
        f"GEOSPIDER_GPSD_HOST={config.get('GEOSPIDER_GPSD_HOST', '127.0.0.1')}",
        f"GEOSPIDER_GPSD_PORT={config.get('GEOSPIDER_GPSD_PORT', '2947')}",
        "",
        "# Sync",
        f"GEOSPIDER_SYNC_BATCH_SIZE={config.get('GEOSPIDER_SYNC_BATCH_SIZE', '50')}",
        f"GEOSPIDER_SYNC_INTERVAL_SECONDS={config.get('GEOSPIDER_SYNC_INTERVAL_SECONDS', '300')}",
        "",
        "# Offline storage",
        f"GEOSPIDER_MAX_OFFLINE_STORAGE_DAYS={config.get('GEOSPIDER_MAX_OFFLINE_STORAGE_DAYS', '7')}",
        f"GEOSPIDER_DATA_DIR={config.get('GEOSPIDER_DATA_DIR', 'data')}",
        "",
        "# Logging",
        f"GEOSPIDER_LOG_LEVEL={config.get('GEOSPIDER_LOG_LEVEL', 'INFO')}",
    ]

    credential_keys = [
        "GEOSPIDER_STORAGE_REGION",
        "GEOSPIDER_STORAGE_ENDPOINT",
        "GEOSPIDER_AWS_ACCESS_KEY_ID",
        "GEOSPIDER_AWS_SECRET_ACCESS_KEY",
    ]
    present = [key for key in credential_keys if config.get(key)]

    if present:
        lines.extend(["", "# Object store credentials"])
        lines.extend(f"{key}={config[key]}" for key in present)
    else:
        lines.extend(
            [
                "",
                "# Object store credentials (for s3:// server URLs)",
                "# GEOSPIDER_STORAGE_REGION=us-west-2",
                "# GEOSPIDER_STORAGE_ENDPOINT=https://minio.example.com:9000",
                "# GEOSPIDER_AWS_ACCESS_KEY_ID=your-access-key-id",
                "# GEOSPIDER_AWS_SECRET_ACCESS_KEY=your-secret-access-key",
            ]
        )

    env_path.write_text("\n".join(lines) + "\n")


def ensure_directories(*paths: str | Path) -> None:
    """Create directories if they don't exist."""
    for path in paths:
        Path(path).mkdir(parents=True, exist_ok=True)
