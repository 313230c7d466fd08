"""Basic (username/password) credential resolution."""

import logging

from coyote.auth.prompts import Prompter
from coyote.errors import CredentialsError
from coyote.models import Endpoint

logger = logging.getLogger(__name__)


async def _ask(prompter: Prompter, label: str, secret: bool) -> str:
    try:
        return await prompter.ask(label, secret=secret)
    except (EOFError, KeyboardInterrupt) as e:
        raise CredentialsError(f"failed to provide {label.lower()}") from e


async def resolve_basic_credentials(endpoint: Endpoint, prompter: Prompter) -> Endpoint:
    """
    Fill in whatever the broker URI is missing.

    Username and password are resolved independently: a value embedded in the
    URI is used as is, a missing one is asked for. The password is never echoed.

    Raises:
        CredentialsError: If the operator aborts a prompt
    """
    username = endpoint.username
    if username is None:
        username = await _ask(prompter, "Username", secret=False)
    password = endpoint.password
    if password is None:
        password = await _ask(prompter, "Password", secret=True)
    return endpoint.with_credentials(username, password)
