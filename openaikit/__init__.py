"""
openaikit - a typed client for OpenAI-style HTTP APIs.

    from openaikit import Client

    client = Client()
    reply = client.chat.completions.create(
        model="gpt-4o-mini",
        messages=[{"role": "user", "content": "Hello!"}],
    )
    print(reply.text)
"""

from .__version__ import __version__
from .config import Config, configure_logging
from .core import *  # noqa: F401,F403
from .core import AsyncClient, Client, OpenAI
