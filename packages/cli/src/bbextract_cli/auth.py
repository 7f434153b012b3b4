"""Bitbucket credential resolution.

Resolution order (stops at first success):
  1. BITBUCKET_TOKEN environment variable (HTTP access token, sent as Bearer)
  2. BITBUCKET_USERNAME + BITBUCKET_PASSWORD (basic auth; an app password on Cloud)
  3. anonymous (public repositories only)
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Union

logger = logging.getLogger(__name__)

Credentials = Union[str, tuple[str, str], None]


def resolve_credentials(environ: Optional[Mapping[str, str]] = None) -> Credentials:
    """Return a bearer token, a (username, password) pair, or None.

    Never raises. A username without a password is ignored with a warning.
    """
    env = os.environ if environ is None else environ

    token = env.get("BITBUCKET_TOKEN")
    if token:
        return token

    username = env.get("BITBUCKET_USERNAME")
    password = env.get("BITBUCKET_PASSWORD")
    if username and password:
        return (username, password)
    if username:
        logger.warning("BITBUCKET_USERNAME is set without BITBUCKET_PASSWORD; continuing anonymously.")

    return None
