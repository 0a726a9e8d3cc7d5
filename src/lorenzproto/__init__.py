from .endpoint import Trajectory, SessionParameters, lorenz_step
from .negotiation import ParameterNegotiator
from .config import SessionConfig
from .errors import (SessionError, ProtocolViolation, LookupFailure,
                     ChannelFailure, DivergenceFailure)
from .stream import KeyStreamBuffer, KeystreamHarvester, StreamCipher
from .coordinator import SyncState, Initiator, Responder
from .link import NetworkServerLink, NetworkClientLink
from .internallink import InternalLink
