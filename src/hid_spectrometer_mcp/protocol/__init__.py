"""Protocol layer: command framing, response reassembly, and payload decoding."""

from .framing import Command, Direction, ResponseHeader, build_frame, parse_header
from .assembler import ResponseAssembler, assemble_response
from .parser import decode_configuration, parse_file_size
