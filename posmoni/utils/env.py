import os


def from_file_or_env(env_name: str):
    """Return value read from `${env_name}_FILE` or `${env_name}` value directly"""

    filepath_env = f"{env_name}_FILE"
    if filepath := os.getenv(filepath_env):
        if not os.path.exists(filepath):
            raise ValueError(f'File {filepath} does not exist. Fix {filepath_env} variable or remove it.')

        with open(filepath) as f:
            return f.read().rstrip()

    return os.getenv(env_name)


def list_from_env(env_name: str) -> list[str]:
    """
    Comma separated list from `${env_name}_FILE` or `${env_name}`.
    Blank items are dropped, so an unset variable gives an empty list.
    """
    raw = from_file_or_env(env_name) or ''
    return [item.strip() for item in raw.split(',') if item.strip()]
