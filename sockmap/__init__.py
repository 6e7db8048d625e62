from .errors import EnumerationError, ProcessNotFound, ProcessTableError, QueryError, SockmapError, TerminationFailed
from .inventory import build_inventory
from .models import ConnectionRecord, Endpoint, SocketDescriptor, TcpState, Transport

__version__ = "0.1.0"
