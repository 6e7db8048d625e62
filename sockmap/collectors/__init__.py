from .backend import BACKENDS, resolve_backend, socket_enumerator
from .processes import collect as enumerate_processes, terminate_process, process_path
