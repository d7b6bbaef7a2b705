"""
This module manages authentication configuration for the Particle cloud API.
It resolves the bearer access token from direct input or the environment.
Creating or refreshing OAuth tokens is left to the caller.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_ACCESS_TOKEN = "PARTICLE_ACCESS_TOKEN"


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """
    Configuration container for the Particle cloud bearer token.
    The token is assumed to be valid for as long as it is used.
    """

    access_token: str

    @staticmethod
    def from_env_or_value(access_token: str | None) -> AuthConfig:
        """
        Create an AuthConfig instance from a provided value or environment variable.

        Args:
            access_token: Optional access token provided by the user.

        Returns:
            An initialized AuthConfig instance containing the access token.

        Raises:
            ValueError: If no token is found in both the argument and environment.
        """
        token = access_token or os.getenv(ENV_ACCESS_TOKEN)

        if not token:
            raise ValueError(
                "Access token missing. Define PARTICLE_ACCESS_TOKEN in environment or pass access_token value"
            )
        return AuthConfig(access_token=token)
