"""TOML-based configuration for ``udpserve`` servers.

Provides ``ServerConfig`` plus ``load_config`` / ``discover_config`` for
loading the ``[server]`` table of a ``udpserve.toml`` file::

    [server]
    buffer_size = 1500
    max_concurrency = 64
    drain_timeout = 5.0
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "CONFIG_FILENAME",
    "ServerConfig",
    "discover_config",
    "load_config",
]

CONFIG_FILENAME = "udpserve.toml"

MAX_DATAGRAM_SIZE = 65535


@dataclass(frozen=True)
class ServerConfig:
    """Tunables of the receive loop and handler dispatch.

    Parameters
    ----------
    buffer_size : int
        Receive buffer capacity in bytes. Longer datagrams are truncated to
        this size and reported as truncated.
    max_concurrency : int | None
        Ceiling on in-flight handler tasks. ``None`` for unbounded. When the
        ceiling is reached the receive loop waits for a free slot.
    drain_timeout : float | None
        Seconds ``Server.close`` waits for in-flight handlers. ``None`` does
        not wait.
    max_pending : int
        Datagrams a transport opened by the server may queue before it
        starts dropping them.
    drop_truncated : bool
        Discard truncated datagrams instead of handing them to the decoder.

    Examples
    --------
    >>> ServerConfig(buffer_size=1500, max_concurrency=32)
    ServerConfig(buffer_size=1500, max_concurrency=32, drain_timeout=None, max_pending=1024, drop_truncated=False)
    """

    buffer_size: int = 4096
    max_concurrency: int | None = None
    drain_timeout: float | None = None
    max_pending: int = 1024
    drop_truncated: bool = False

    def __post_init__(self) -> None:
        if not 1 <= self.buffer_size <= MAX_DATAGRAM_SIZE:
            msg = f"buffer_size must be between 1 and {MAX_DATAGRAM_SIZE}, got {self.buffer_size}"
            raise ValueError(msg)
        if self.max_concurrency is not None and self.max_concurrency < 1:
            msg = f"max_concurrency must be >= 1, got {self.max_concurrency}"
            raise ValueError(msg)
        if self.drain_timeout is not None and self.drain_timeout < 0:
            msg = f"drain_timeout must be >= 0, got {self.drain_timeout}"
            raise ValueError(msg)
        if self.max_pending < 1:
            msg = f"max_pending must be >= 1, got {self.max_pending}"
            raise ValueError(msg)


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``udpserve.toml``.

    Returns
    -------
    Path | None
        Path to the discovered config file, or ``None`` if not found.
    """
    origin = (start or Path.cwd()).resolve()
    return next(
        (
            directory / CONFIG_FILENAME
            for directory in (origin, *origin.parents)
            if (directory / CONFIG_FILENAME).is_file()
        ),
        None,
    )


def load_config(path: Path | None = None) -> ServerConfig:
    """Load a ``ServerConfig`` from the ``[server]`` table of a TOML file.

    If *path* is ``None``, auto-discovers ``udpserve.toml`` by walking up
    from the current working directory. Returns the default config if no
    file is found.

    Parameters
    ----------
    path : Path | None
        Explicit path to a TOML config file.

    Returns
    -------
    ServerConfig

    Raises
    ------
    FileNotFoundError
        If an explicit *path* is given but does not exist.
    ValueError
        If a value is out of range.
    TypeError
        If the ``[server]`` table has an unknown key.

    Examples
    --------
    >>> config = load_config(Path("udpserve.toml"))  # doctest: +SKIP
    >>> config.buffer_size  # doctest: +SKIP
    1500
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            return ServerConfig()
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as f:
        raw = tomllib.load(f)

    return ServerConfig(**raw.get("server", {}))
