"""p2pchat package namespace.

Two-party encrypted chat over UDP. Peers find each other from inbound
traffic, then exchange messages sealed with public-key authenticated
encryption.
"""

from .__about__ import __version__
from . import config
from . import crypto
from . import framing
from . import handshake
from . import network
from . import session
from .session import Terminate, run

__all__ = ["__version__", "config", "crypto", "framing", "handshake", "network", "session", "Terminate", "run"]
