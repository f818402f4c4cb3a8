# ==================================================
# =============  MODULE: dicom_decoder  ============
# ==================================================
from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from imgarray.core.config import DecoderConfig
from imgarray.core.errors import FormatError
from imgarray.core.typed_array import TypedArray
from imgarray.utils.logger import get_debug_logger, get_logger

# Public API
__all__ = ["DataElement", "DicomDecoder", "TRANSFER_SYNTAXES", "IMPLICIT_VR_TABLE", "attrcode"]

PREAMBLE_SIZE = 128
MAGIC = b"DICM"

# ====[ Transfer syntaxes: uid -> (little_endian, explicit_vr) ]====
TRANSFER_SYNTAXES: Dict[str, Tuple[bool, bool]] = {
    "1.2.840.10008.1.2.1": (True, True),
    "1.2.840.10008.1.2.2": (False, True),
    "1.2.840.10008.1.2": (True, False),
}

# VRs encoded with 2 reserved bytes and a 4-byte length in explicit mode
LONG_VRS = frozenset({"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "SV", "UC", "UN", "UR", "UT", "UV"})
TEXT_VRS = frozenset({"AE", "AS", "CS", "DA", "DS", "DT", "IS", "LO", "LT", "PN", "SH", "ST", "TM", "UC", "UI", "UR", "UT"})
SINGLE_TEXT_VRS = frozenset({"LT", "ST", "UR", "UT"})
BINARY_VRS = frozenset({"OB", "OD", "OF", "OL", "OV", "OW", "UN"})
NUMERIC_VRS: Dict[str, str] = {
    "US": "H",
    "SS": "h",
    "UL": "I",
    "SL": "i",
    "FL": "f",
    "FD": "d",
    "SV": "q",
    "UV": "Q",
}

UNDEFINED_LENGTH = 0xFFFFFFFF
ITEM = (0xFFFE, 0xE000)
ITEM_DELIMITER = (0xFFFE, 0xE00D)
SEQUENCE_DELIMITER = (0xFFFE, 0xE0DD)

# ====[ Implicit mode VR lookup ]====
IMPLICIT_VR_TABLE: Dict[str, str] = {
    "0002,0000": "UL", "0002,0010": "UI", "0002,0013": "SH",
    "0008,0005": "CS", "0008,0008": "CS", "0008,0016": "UI", "0008,0018": "UI",
    "0008,0020": "DA", "0008,0060": "CS", "0008,0070": "LO", "0008,0080": "LO",
    "0008,1032": "SQ", "0008,1111": "SQ",
    "0010,0010": "PN", "0010,0020": "LO", "0010,0030": "DA",
    "0018,0060": "DS", "0018,1030": "LO", "0018,1151": "IS",
    "0020,000d": "UI", "0020,000e": "UI",
    "0020,0010": "SH", "0020,0011": "IS", "0020,0012": "IS", "0020,0013": "IS",
    "0028,0002": "US", "0028,0004": "CS", "0028,0010": "US", "0028,0011": "US",
    "0028,0030": "DS", "0028,0100": "US", "0028,0101": "US", "0028,0102": "US", "0028,0103": "US",
    "0028,1050": "DS", "0028,1051": "DS", "0028,1052": "DS", "0028,1053": "DS",
    "0040,0008": "SQ", "0040,0260": "SQ", "0040,0275": "SQ",
    "7fe0,0000": "UL", "7fe0,0010": "OW",
}

# ====[ Pixel module tags ]====
ROWS = "0028,0010"
COLUMNS = "0028,0011"
SAMPLES_PER_PIXEL = "0028,0002"
BITS_ALLOCATED = "0028,0100"
PIXEL_REPRESENTATION = "0028,0103"
RESCALE_INTERCEPT = "0028,1052"
RESCALE_SLOPE = "0028,1053"
PIXEL_DATA = "7fe0,0010"
TRANSFER_SYNTAX_UID = "0002,0010"
GROUP_LENGTH = "0002,0000"


def attrcode(group: int, element: int) -> str:
    """Tag key in 'gggg,eeee' lowercase hex form."""
    return f"{group:04x},{element:04x}"


@dataclass
class DataElement:
    """
    One decoded tag.

    Attributes
    ----------
    tag : (int, int)
        (group, element).
    vr : str
        Value representation (read from the stream, or looked up in implicit mode).
    length : int
        Declared value length (0xFFFFFFFF for undefined length).
    raw : bytes
        Value payload (fragments concatenated for undefined-length binary values).
    value : Any
        Decoded value: str / number / tuple for multi-valued, list of item
        dictionaries for SQ, raw bytes for binary VRs, None when empty.
    """
    tag: Tuple[int, int]
    vr: str
    length: int
    raw: bytes
    value: Any

    @property
    def attrcode(self) -> str:
        return attrcode(*self.tag)


# ==================================================
# ==============  CLASS: DicomDecoder  =============
# ==================================================
class DicomDecoder:
    """
    Minimal DICOM Part 10 reader: preamble check, file meta group, data set
    tag stream, and rescaled pixel data.

    The file meta group is always explicit VR little endian. Its transfer
    syntax (0002,0010) selects the byte order and VR mode of the data set.
    Only the uncompressed syntaxes in `TRANSFER_SYNTAXES` are accepted.

    Parameters
    ----------
    data : bytes-like
        Whole file content.
    decoder_cfg : DecoderConfig, optional
        Unit label, default slope/intercept and output dtype.

    Raises
    ------
    FormatError
        Missing magic marker, malformed meta group, unsupported transfer
        syntax, or truncated tag stream.
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview], decoder_cfg: Optional[DecoderConfig] = None) -> None:
        self.decoder_cfg: DecoderConfig = decoder_cfg or DecoderConfig()
        self.bytes: bytes = bytes(data)
        self.offset: int = self._check_format()

        # ====[ File meta: explicit VR little endian ]====
        self.little_endian, self.explicit_vr = True, True
        self.transfer_syntax: Optional[str] = None
        self.file_meta: Dict[str, DataElement] = self._parse_file_meta()

        # ====[ Data set ]====
        self.dataset: Dict[str, DataElement] = self._parse_dataset(len(self.bytes))
        get_debug_logger().debug(
            f"[DicomDecoder] {len(self.file_meta)} meta + {len(self.dataset)} data elements, "
            f"little_endian={self.little_endian}, explicit_vr={self.explicit_vr}"
        )

    # ====[ Constructors ]====
    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview], decoder_cfg: Optional[DecoderConfig] = None) -> "DicomDecoder":
        return cls(data, decoder_cfg)

    @classmethod
    def from_file(cls, path: Union[str, Path], decoder_cfg: Optional[DecoderConfig] = None) -> "DicomDecoder":
        return cls(Path(path).read_bytes(), decoder_cfg)

    # ====[ Stream primitives ]====
    def _require(self, n: int, what: str) -> None:
        if self.offset + n > len(self.bytes):
            raise FormatError(
                f"[DicomDecoder] Truncated stream: {what} needs {n} bytes at offset {self.offset}, "
                f"{len(self.bytes) - self.offset} left."
            )

    def _unpack(self, fmt: str, little: bool, what: str) -> Tuple[Any, ...]:
        fmt = ("<" if little else ">") + fmt
        size = struct.calcsize(fmt)
        self._require(size, what)
        values = struct.unpack_from(fmt, self.bytes, self.offset)
        self.offset += size
        return values

    def _take(self, n: int, what: str) -> bytes:
        self._require(n, what)
        chunk = self.bytes[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def _check_format(self) -> int:
        if len(self.bytes) < PREAMBLE_SIZE + len(MAGIC):
            raise FormatError(f"[DicomDecoder] Stream of {len(self.bytes)} bytes is too short for a DICOM preamble.")
        if self.bytes[PREAMBLE_SIZE:PREAMBLE_SIZE + 4] != MAGIC:
            raise FormatError("[DicomDecoder] Magic marker 'DICM' not found after the 128-byte preamble.")
        return PREAMBLE_SIZE + 4

    # ====[ Element reading ]====
    def _read_tag(self, little: bool) -> Tuple[int, int]:
        return self._unpack("HH", little, "tag")  # type: ignore[return-value]

    def _read_element(self, little: bool, explicit: bool) -> DataElement:
        """Read one element (tag, VR, length, value) at the current offset."""
        tag = self._read_tag(little)
        code = attrcode(*tag)

        if explicit:
            vr = self._take(2, f"VR of {code}").decode("ascii", errors="replace")
            if vr in LONG_VRS:
                self._take(2, f"reserved bytes of {code}")
                (length,) = self._unpack("I", little, f"length of {code}")
            else:
                (length,) = self._unpack("H", little, f"length of {code}")
        else:
            (length,) = self._unpack("I", little, f"length of {code}")
            vr = IMPLICIT_VR_TABLE.get(code, "UL" if tag[1] == 0 else "UI")
            if length == UNDEFINED_LENGTH and vr not in BINARY_VRS:
                vr = "SQ"

        if vr == "SQ":
            items, raw = self._read_sequence(length, little, explicit, code)
            return DataElement(tag, vr, length, raw, items)

        if length == UNDEFINED_LENGTH:
            raw = self._read_fragments(little, code)
        else:
            raw = self._take(length, f"value of {code}")
        return DataElement(tag, vr, length, raw, self.parse_value(vr, raw, little))

    def _read_item_header(self, little: bool, code: str) -> Tuple[Tuple[int, int], int]:
        tag = self._read_tag(little)
        (length,) = self._unpack("I", little, f"item length in {code}")
        return tag, length

    def _read_sequence(self, length: int, little: bool, explicit: bool, code: str) -> Tuple[List[Dict[str, DataElement]], bytes]:
        """Parse SQ items, for defined lengths and for delimiter-terminated sequences."""
        start = self.offset
        end = None if length == UNDEFINED_LENGTH else self.offset + length
        if end is not None and end > len(self.bytes):
            raise FormatError(f"[DicomDecoder] Sequence {code} runs past the end of the stream.")

        items: List[Dict[str, DataElement]] = []
        while end is None or self.offset < end:
            tag, item_length = self._read_item_header(little, code)
            if tag == SEQUENCE_DELIMITER:
                break
            if tag != ITEM:
                raise FormatError(f"[DicomDecoder] Expected an item tag in sequence {code}, got {attrcode(*tag)}.")
            if item_length == UNDEFINED_LENGTH:
                items.append(self._parse_items_until_delimiter(little, explicit, code))
            else:
                item_end = self.offset + item_length
                self._require(item_length, f"item of {code}")
                items.append(self._parse_elements(item_end, little, explicit))
        return items, self.bytes[start:self.offset]

    def _parse_items_until_delimiter(self, little: bool, explicit: bool, code: str) -> Dict[str, DataElement]:
        elements: Dict[str, DataElement] = {}
        while True:
            self._require(4, f"item of {code}")
            tag = struct.unpack_from(("<" if little else ">") + "HH", self.bytes, self.offset)
            if tag == ITEM_DELIMITER:
                self.offset += 4
                self._unpack("I", little, f"item delimiter of {code}")
                return elements
            element = self._read_element(little, explicit)
            elements[element.attrcode] = element

    def _read_fragments(self, little: bool, code: str) -> bytes:
        """Undefined-length binary value: concatenated item fragments up to the sequence delimiter."""
        chunks: List[bytes] = []
        while True:
            tag, length = self._read_item_header(little, code)
            if tag == SEQUENCE_DELIMITER:
                return b"".join(chunks)
            if tag != ITEM:
                raise FormatError(f"[DicomDecoder] Expected a fragment item in {code}, got {attrcode(*tag)}.")
            chunks.append(self._take(length, f"fragment of {code}"))

    def _parse_elements(self, end: int, little: bool, explicit: bool) -> Dict[str, DataElement]:
        elements: Dict[str, DataElement] = {}
        while self.offset < end:
            element = self._read_element(little, explicit)
            elements[element.attrcode] = element
        if self.offset != end:
            raise FormatError(f"[DicomDecoder] Element overruns its container end ({self.offset} > {end}).")
        return elements

    # ====[ Meta group / data set ]====
    def _parse_file_meta(self) -> Dict[str, DataElement]:
        first = self._read_element(little=True, explicit=True)
        if first.attrcode != GROUP_LENGTH or not isinstance(first.value, int):
            raise FormatError(
                f"[DicomDecoder] File meta must start with (0002,0000) group length, got ({first.attrcode})."
            )
        end = self.offset + first.value
        if end > len(self.bytes):
            raise FormatError("[DicomDecoder] File meta group length runs past the end of the stream.")

        meta = {first.attrcode: first}
        meta.update(self._parse_elements(end, little=True, explicit=True))

        if TRANSFER_SYNTAX_UID in meta:
            self.transfer_syntax = str(meta[TRANSFER_SYNTAX_UID].value)
            self.little_endian, self.explicit_vr = self.transfer_syntax_mode(self.transfer_syntax)
        else:
            get_logger().warning("[DicomDecoder] No transfer syntax in file meta, assuming explicit VR little endian.")
        return meta

    @staticmethod
    def transfer_syntax_mode(uid: str) -> Tuple[bool, bool]:
        """(little_endian, explicit_vr) of a transfer syntax UID."""
        try:
            return TRANSFER_SYNTAXES[uid.strip("\x00 ")]
        except KeyError:
            raise FormatError(f"[DicomDecoder] Unsupported transfer syntax '{uid}'.") from None

    def _parse_dataset(self, end: int) -> Dict[str, DataElement]:
        elements: Dict[str, DataElement] = {}
        while self.offset < end:
            element = self._read_element(self.little_endian, self.explicit_vr)
            elements[element.attrcode] = element
        return elements

    # ====[ Value parsing ]====
    @staticmethod
    def parse_value(vr: str, raw: bytes, little: bool = True) -> Any:
        """
        Decode a value payload according to its VR.

        Text VRs are stripped of NUL/space padding and split on backslashes into
        a tuple when multi-valued; numeric VRs use the stream byte order (a single
        value is returned as a scalar); AT yields (group, element) pairs; binary
        VRs return the raw bytes. Empty payloads return None.
        """
        if not raw:
            return None
        if vr in TEXT_VRS:
            text = raw.decode("utf-8", errors="replace").strip("\x00 ")
            if vr not in SINGLE_TEXT_VRS and "\\" in text:
                return tuple(part.strip("\x00 ") for part in text.split("\\"))
            return text
        prefix = "<" if little else ">"
        if vr in NUMERIC_VRS:
            code = NUMERIC_VRS[vr]
            count = len(raw) // struct.calcsize(code)
            values = struct.unpack_from(f"{prefix}{count}{code}", raw)
            return values[0] if count == 1 else values
        if vr == "AT":
            count = len(raw) // 4
            flat = struct.unpack_from(f"{prefix}{count * 2}H", raw)
            pairs = tuple(zip(flat[0::2], flat[1::2]))
            return pairs[0] if count == 1 else pairs
        return raw

    # ====[ Accessors ]====
    def __contains__(self, code: str) -> bool:
        return code in self.dataset or code in self.file_meta

    def __getitem__(self, code: str) -> DataElement:
        if code in self.dataset:
            return self.dataset[code]
        return self.file_meta[code]

    def get(self, code: str, default: Any = None) -> Any:
        """Decoded value of `code`, or `default` when absent or empty."""
        if code not in self:
            return default
        value = self[code].value
        return default if value is None else value

    def get_number(self, code: str, default: float) -> float:
        value = self.get(code, default)
        if isinstance(value, tuple):
            value = value[0]
        try:
            return float(value)
        except (TypeError, ValueError):
            raise FormatError(f"[DicomDecoder] Value of ({code}) is not numeric: {value!r}.") from None

    # ====[ Pixel data ]====
    def _pixel_dtype(self) -> np.dtype:
        bits = int(self.get(BITS_ALLOCATED, 16))
        signed = int(self.get(PIXEL_REPRESENTATION, 1)) == 1
        kinds = {8: "i1", 16: "i2", 32: "i4"} if signed else {8: "u1", 16: "u2", 32: "u4"}
        if bits not in kinds:
            raise FormatError(f"[DicomDecoder] Unsupported bits allocated: {bits}.")
        return np.dtype(kinds[bits]).newbyteorder("<" if self.little_endian else ">")

    def get_pixel_data(self) -> Dict[str, Any]:
        """
        Rescaled pixel values of a single-frame, single-sample image.

        Returns
        -------
        dict
            ``{"height", "width", "channel": 1, "array", "unit"}`` where `array`
            is a flat float64 array of ``value * slope + intercept`` (Rescale
            Slope (0028,1053), default 1; Rescale Intercept (0028,1052), default 0).
        """
        for code, name in ((ROWS, "Rows"), (COLUMNS, "Columns"), (PIXEL_DATA, "Pixel Data")):
            if self.get(code) is None:
                raise FormatError(f"[DicomDecoder] Missing {name} ({code}).")
        samples = int(self.get(SAMPLES_PER_PIXEL, 1))
        if samples != 1:
            raise FormatError(f"[DicomDecoder] Only single-sample images are supported, got {samples} samples per pixel.")

        height, width = int(self.get(ROWS)), int(self.get(COLUMNS))
        dtype = self._pixel_dtype()
        raw = self[PIXEL_DATA].raw
        n = height * width
        if len(raw) < n * dtype.itemsize:
            raise FormatError(
                f"[DicomDecoder] Pixel data holds {len(raw)} bytes, {height}x{width} pixels need {n * dtype.itemsize}."
            )

        cfg = self.decoder_cfg
        slope = self.get_number(RESCALE_SLOPE, cfg.default_slope)
        intercept = self.get_number(RESCALE_INTERCEPT, cfg.default_intercept)
        values = np.frombuffer(raw, dtype=dtype, count=n).astype(np.float64)
        return {
            "height": height,
            "width": width,
            "channel": 1,
            "array": values * slope + intercept,
            "unit": cfg.unit,
        }

    def to_typed_array(self) -> TypedArray:
        pixels = self.get_pixel_data()
        shape = (pixels["height"], pixels["width"], pixels["channel"])
        return TypedArray.from_array(pixels["array"], shape, dtype=self.decoder_cfg.output_dtype)

    def summary(self) -> None:
        print("====[ DicomDecoder Summary ]====")
        print(f"Transfer syntax : {self.transfer_syntax}")
        print(f"Little endian   : {self.little_endian}")
        print(f"Explicit VR     : {self.explicit_vr}")
        print(f"Meta elements   : {len(self.file_meta)}")
        print(f"Data elements   : {len(self.dataset)}")
        if ROWS in self and COLUMNS in self:
            print(f"Image size      : {self.get(ROWS)} x {self.get(COLUMNS)}")
