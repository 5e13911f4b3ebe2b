#!/usr/bin/env python
"""
MRtrix Image Header Module

Reads and writes the key/value text header of MRtrix images (.mih / .mif):
dimensions, voxel sizes, axis layout, data type, transform, intensity
scaling, diffusion gradient scheme, comments and free-form entries.
Only the header is handled here; voxel data are not loaded.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np


logger = logging.getLogger(__name__)


MRTRIX_MAGIC = "mrtrix image"

_DATATYPE_CODES = {
    'bit': '?',
    'int8': 'i1',
    'uint8': 'u1',
    'int16': 'i2',
    'uint16': 'u2',
    'int32': 'i4',
    'uint32': 'u4',
    'float32': 'f4',
    'float64': 'f8',
    'cfloat32': 'c8',
    'cfloat64': 'c16',
}


class HeaderError(Exception):
    """Exception raised for missing or invalid header entries"""
    pass


class ImageHeader:
    """Container for the contents of an MRtrix image header"""

    def __init__(
        self,
        name: str,
        dim: List[int],
        vox: List[float],
        strides: List[int],
        datatype: str,
        transform: Optional[np.ndarray] = None,
        intensity_offset: float = 0.0,
        intensity_scale: float = 1.0,
        dw_scheme: Optional[np.ndarray] = None,
        comments: Optional[List[str]] = None,
        units: Optional[List[str]] = None,
        labels: Optional[List[str]] = None,
        keyval: Optional[Dict[str, str]] = None
    ):
        self.name = name
        self.dim = dim
        self.vox = vox
        self.strides = strides
        self.datatype = datatype
        self.transform = transform
        self.intensity_offset = intensity_offset
        self.intensity_scale = intensity_scale
        self.dw_scheme = dw_scheme
        self.comments = comments or []
        self.units = units or []
        self.labels = labels or []
        self.keyval = keyval or {}

    @property
    def ndim(self) -> int:
        return len(self.dim)

    @property
    def dtype(self) -> np.dtype:
        return parse_datatype(self.datatype)

    def to_dict(self) -> Dict:
        """JSON-serializable representation"""
        return {
            'name': self.name,
            'dim': list(self.dim),
            'vox': list(self.vox),
            'strides': list(self.strides),
            'datatype': self.datatype,
            'transform': self.transform.tolist() if self.transform is not None else None,
            'intensity_offset': self.intensity_offset,
            'intensity_scale': self.intensity_scale,
            'dw_scheme': self.dw_scheme.tolist() if self.dw_scheme is not None else None,
            'comments': list(self.comments),
            'units': list(self.units),
            'labels': list(self.labels),
            'keyval': dict(self.keyval),
        }


def parse_datatype(specifier: str) -> np.dtype:
    """
    Convert an MRtrix data type specifier (e.g. 'Float32LE') to a numpy dtype

    Args:
        specifier: Data type specifier, case-insensitive

    Returns:
        Corresponding numpy dtype
    """
    spec = specifier.strip().lower()
    byte_order = '='
    if spec.endswith('le'):
        byte_order, spec = '<', spec[:-2]
    elif spec.endswith('be'):
        byte_order, spec = '>', spec[:-2]

    if spec not in _DATATYPE_CODES:
        raise HeaderError(f"invalid data type \"{specifier}\"")

    code = _DATATYPE_CODES[spec]
    if code in ('?', 'i1', 'u1'):
        return np.dtype(code)
    return np.dtype(byte_order + code)


def parse_layout(ndim: int, specifier: str) -> List[int]:
    """
    Parse an axis layout such as '+0,-1,+2' into signed 1-based strides

    Args:
        ndim: Number of image dimensions
        specifier: Comma-separated layout entries

    Returns:
        Strides, e.g. [1, -2, 3]
    """
    entries = [entry.strip() for entry in specifier.split(',') if entry.strip()]
    if len(entries) != ndim:
        raise HeaderError(
            f"layout \"{specifier}\" has {len(entries)} entries for {ndim} dimensions"
        )

    strides = []
    for entry in entries:
        sign = -1 if entry[0] == '-' else 1
        digits = entry[1:] if entry[0] in '+-' else entry
        try:
            order = int(digits)
        except ValueError:
            raise HeaderError(f"invalid layout specifier \"{specifier}\"") from None
        if order < 0 or order >= ndim:
            raise HeaderError(f"invalid layout specifier \"{specifier}\"")
        strides.append(sign * (order + 1))

    if len(set(abs(s) for s in strides)) != ndim:
        raise HeaderError(f"duplicate axes in layout specifier \"{specifier}\"")

    return strides


def _parse_ints(value: str) -> List[int]:
    return [int(v) for v in value.replace(',', ' ').split()]


def _parse_floats(value: str) -> List[float]:
    return [float(v) for v in value.replace(',', ' ').split()]


def read_keyvalue(lines: Iterable[str], name: str = "") -> List[Tuple[str, str]]:
    """
    Parse the key/value section of an MRtrix header

    Args:
        lines: Header lines, starting with the magic line
        name: Image name used in error messages

    Returns:
        List of (key, value) entries in file order
    """
    entries = []
    iterator = iter(lines)

    first = next(iterator, None)
    if first is None or first.strip() != MRTRIX_MAGIC:
        raise HeaderError(f"invalid first line for MRtrix image \"{name}\" (expected \"{MRTRIX_MAGIC}\")")

    for line in iterator:
        line = line.split('#', 1)[0].strip()
        if not line:
            continue
        if line == "END":
            break
        if ':' not in line:
            logger.warning(f"malformed key/value entry (\"{line}\") in MRtrix image \"{name}\" - ignored")
            continue
        key, value = line.split(':', 1)
        entries.append((key.strip(), value.strip()))

    return entries


def read_mrtrix_header(lines: Iterable[str], name: str = "") -> ImageHeader:
    """
    Build an ImageHeader from MRtrix header lines

    Args:
        lines: Header lines, starting with the magic line
        name: Image file name, used to resolve relative data file paths

    Returns:
        Parsed header
    """
    dim: List[int] = []
    vox: List[float] = []
    layout = ""
    dtype = ""
    scaling: List[float] = []
    transform: List[float] = []
    dw_scheme: List[float] = []
    comments: List[str] = []
    units: List[str] = []
    labels: List[str] = []
    keyval: Dict[str, str] = {}

    for key, value in read_keyvalue(lines, name):
        key = key.lower()
        try:
            if key == "dim":
                dim = _parse_ints(value)
            elif key == "vox":
                vox = _parse_floats(value)
            elif key == "layout":
                layout = value
            elif key == "datatype":
                dtype = value
            elif key == "scaling":
                scaling = _parse_floats(value)
            elif key == "comments":
                comments.append(value)
            elif key == "units":
                units = value.split("\\")
            elif key == "labels":
                labels = value.split("\\")
            elif key == "transform":
                transform.extend(_parse_floats(value))
            elif key == "dw_scheme":
                dw_scheme.extend(_parse_floats(value))
            elif keyval.get(key):
                keyval[key] += "\n" + value
            else:
                keyval[key] = value
        except ValueError:
            raise HeaderError(f"invalid \"{key}\" entry for MRtrix image \"{name}\"") from None

    if not dim:
        raise HeaderError(f"missing \"dim\" specification for MRtrix image \"{name}\"")
    if any(d < 1 for d in dim):
        raise HeaderError(f"invalid dimensions for MRtrix image \"{name}\"")

    if not vox:
        raise HeaderError(f"missing \"vox\" specification for MRtrix image \"{name}\"")
    if len(vox) < len(dim):
        raise HeaderError(f"too few voxel sizes for MRtrix image \"{name}\"")
    if any(v < 0.0 for v in vox[:len(dim)]):
        raise HeaderError(f"invalid voxel size for MRtrix image \"{name}\"")

    if not dtype:
        raise HeaderError(f"missing \"datatype\" specification for MRtrix image \"{name}\"")
    parse_datatype(dtype)

    if not layout:
        raise HeaderError(f"missing \"layout\" specification for MRtrix image \"{name}\"")
    strides = parse_layout(len(dim), layout)

    transform_matrix = None
    if transform:
        if len(transform) < 12:
            raise HeaderError(f"invalid \"transform\" specification for MRtrix image \"{name}\"")
        transform_matrix = np.eye(4)
        transform_matrix[:3, :] = np.reshape(transform[:12], (3, 4))

    dw_matrix = None
    if dw_scheme:
        if len(dw_scheme) % 4:
            logger.info(f"invalid \"dw_scheme\" specification for MRtrix image \"{name}\" - ignored")
        else:
            dw_matrix = np.reshape(np.array(dw_scheme, dtype=np.float64), (-1, 4))

    intensity_offset, intensity_scale = 0.0, 1.0
    if scaling:
        if len(scaling) != 2:
            raise HeaderError(f"invalid \"scaling\" specification for MRtrix image \"{name}\"")
        intensity_offset, intensity_scale = scaling

    return ImageHeader(
        name=name,
        dim=dim,
        vox=vox[:len(dim)],
        strides=strides,
        datatype=dtype,
        transform=transform_matrix,
        intensity_offset=intensity_offset,
        intensity_scale=intensity_scale,
        dw_scheme=dw_matrix,
        comments=comments,
        units=units,
        labels=labels,
        keyval=keyval
    )


def load_mrtrix_header(path: Union[str, Path]) -> ImageHeader:
    """
    Read the header of an MRtrix image file

    The header of a .mif file is followed by binary data, so lines are read
    one at a time and decoding stops at the END marker.

    Args:
        path: Path to .mih or .mif file

    Returns:
        Parsed header
    """
    path = Path(path)
    logger.info(f"Loading MRtrix header: {path}")

    lines = []
    with open(path, 'rb') as f:
        for raw in f:
            line = raw.decode('latin-1').rstrip('\r\n')
            lines.append(line)
            if line.strip() == "END":
                break

    return read_mrtrix_header(lines, str(path))


def get_mrtrix_file_path(header: ImageHeader, flag: str = "file") -> Tuple[Path, int]:
    """
    Resolve the data file referenced by a header entry, removing the entry

    Args:
        header: Parsed header
        flag: Key holding the data file path and optional byte offset

    Returns:
        Data file path and byte offset (0 if no offset was given)
    """
    if flag not in header.keyval:
        raise HeaderError(f"missing \"{flag}\" specification for MRtrix image \"{header.name}\"")
    entry = header.keyval.pop(flag).split()
    if not entry:
        raise HeaderError(f"empty \"{flag}\" specification for MRtrix image \"{header.name}\"")

    fname = entry[0]
    offset = 0
    if len(entry) > 1:
        try:
            offset = int(entry[1])
        except ValueError:
            raise HeaderError(
                f"invalid offset specified for file \"{fname}\" in MRtrix image header \"{header.name}\""
            ) from None
        if offset < 0:
            raise HeaderError(
                f"invalid offset specified for file \"{fname}\" in MRtrix image header \"{header.name}\""
            )

    if fname == ".":
        if offset == 0:
            raise HeaderError(f"invalid offset specified for embedded MRtrix image \"{header.name}\"")
        return Path(header.name), offset

    return Path(os.path.dirname(header.name)) / fname, offset


def _format_number(value: float) -> str:
    return f"{value:.10g}"


def _format_row(values: Iterable[float]) -> str:
    return ",".join(_format_number(v) for v in values)


def write_mrtrix_header(header: ImageHeader) -> str:
    """
    Render the key/value entries of a header

    Args:
        header: Header to render

    Returns:
        Header text, one entry per line, without the magic line or END marker
    """
    lines = [
        "dim: " + ",".join(str(d) for d in header.dim),
        "vox: " + _format_row(header.vox),
        "layout: " + ",".join(f"{'+' if s > 0 else '-'}{abs(s) - 1}" for s in header.strides),
        "datatype: " + header.datatype,
    ]

    for key, value in header.keyval.items():
        for line in value.split("\n"):
            if line:
                lines.append(f"{key}: {line}")

    for comment in header.comments:
        lines.append(f"comments: {comment}")

    if header.units:
        lines.append("units: " + "\\".join(header.units))
    if header.labels:
        lines.append("labels: " + "\\".join(header.labels))

    if header.transform is not None:
        for row in range(3):
            lines.append("transform: " + _format_row(header.transform[row, :4]))

    if header.intensity_offset != 0.0 or header.intensity_scale != 1.0:
        lines.append(f"scaling: {_format_row([header.intensity_offset, header.intensity_scale])}")

    if header.dw_scheme is not None:
        for row in header.dw_scheme:
            lines.append("dw_scheme: " + _format_row(row))

    return "\n".join(lines) + "\n"


def save_mrtrix_header(header: ImageHeader, path: Union[str, Path]):
    """Write a complete .mih header (magic line, entries, END marker)"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='latin-1') as f:
        f.write(MRTRIX_MAGIC + "\n")
        f.write(write_mrtrix_header(header))
        f.write("END\n")
    logger.info(f"Saved MRtrix header: {path}")
