"""Protocol layer: framing, XOR checksums, command builders, reply reading and parsing."""

from .framing import build_fixed_frame, build_variable_frame, compute_checksum, parse_frame
from .commands import Command
from .parser import Response, parse_response
from .stream import read_frame
