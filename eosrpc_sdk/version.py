"""
Version information for the EOS RPC SDK.
"""
import importlib.metadata
import pathlib

import tomli

DEFAULT_VERSION = "0.1.0"

try:
    __version__ = importlib.metadata.version("eosrpc-sdk")
except importlib.metadata.PackageNotFoundError:
    # Source checkout: read pyproject.toml next to the package
    try:
        path = pathlib.Path(__file__).parent.parent / "pyproject.toml"
        with path.open("rb") as f:
            __version__ = tomli.load(f)["project"]["version"]
    except (FileNotFoundError, KeyError, tomli.TOMLDecodeError):
        __version__ = DEFAULT_VERSION
