"""
Image Header Module

Reading and writing of MRtrix image headers.
"""

from .mrtrix_header import (
    HeaderError,
    ImageHeader,
    get_mrtrix_file_path,
    load_mrtrix_header,
    parse_datatype,
    parse_layout,
    read_mrtrix_header,
    save_mrtrix_header,
    write_mrtrix_header,
)

__all__ = [
    'HeaderError',
    'ImageHeader',
    'get_mrtrix_file_path',
    'load_mrtrix_header',
    'parse_datatype',
    'parse_layout',
    'read_mrtrix_header',
    'save_mrtrix_header',
    'write_mrtrix_header',
]
