"""
multikf/models/provisioner.py

The closed set of provisioning backends a guest machine can be realized with.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from multikf.errors import ConfigurationError


class Provisioner(str, Enum):
    """Backend token. `docker` is container-based (kind), `vagrant` is VM-based."""

    docker = "docker"
    vagrant = "vagrant"


def parse_provisioner(token: Union[str, Provisioner]) -> Provisioner:
    """Parse a provisioner token; unrecognized tokens are never defaulted.

    Raises:
        ConfigurationError: If `token` is not one of the known provisioners.
    """
    if isinstance(token, Provisioner):
        return token
    try:
        return Provisioner(token.strip().lower())
    except ValueError as exc:
        known = ", ".join(p.value for p in Provisioner)
        raise ConfigurationError(
            f"unknown provisioner {token!r}, possible values: {known}"
        ) from exc
