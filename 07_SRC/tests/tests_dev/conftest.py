# ==================================================
# ================ TESTS: fixtures =================
# ==================================================
from __future__ import annotations

import logging
import struct
from typing import Callable

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from imgarray.core.config import GlobalConfig, WindowConfig, set_global_config, set_window_config
from imgarray.core.typed_array import TypedArray
from imgarray.utils.logger import get_debug_logger, get_error_logger


# ===================
# Helpers
# ===================

class _RecordList(logging.Handler):
    """Handler keeping every record it receives."""

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def _collect(logger: logging.Logger):
    handler = _RecordList()
    logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        logger.removeHandler(handler)


def _make_np(shape, seed: int = 123, vmin: float = 0, vmax: float = 10) -> np.ndarray:
    """
    Deterministic integer-valued float block (exact in float32).
    """
    rng = np.random.default_rng(seed)
    return rng.integers(vmin, vmax, size=shape).astype(np.float64)


LONG_VRS = {"OB", "OD", "OF", "OL", "OV", "OW", "SQ", "SV", "UC", "UN", "UR", "UT", "UV"}


def dicom_element(group: int, element: int, vr: str, value: bytes, little: bool = True, explicit: bool = True) -> bytes:
    """
    Encode one data element; odd payloads are padded (NUL for UI, space for text).
    """
    if len(value) % 2:
        value += b"\x00" if vr in ("UI", "OB", "OW", "UN") else b" "
    p = "<" if little else ">"
    out = struct.pack(p + "HH", group, element)
    if explicit:
        out += vr.encode("ascii")
        if vr in LONG_VRS:
            out += b"\x00\x00" + struct.pack(p + "I", len(value))
        else:
            out += struct.pack(p + "H", len(value))
    else:
        out += struct.pack(p + "I", len(value))
    return out + value


def dicom_stream(
    pixels: np.ndarray,
    transfer_syntax: str = "1.2.840.10008.1.2.1",
    slope: str = "2",
    intercept: str = "-1024",
    extra: bytes = b"",
    little: bool = True,
    explicit: bool = True,
    with_rows: bool = True,
) -> bytes:
    """
    Build a DICOM Part 10 byte stream holding a signed 16-bit single-sample image.
    """
    meta_body = dicom_element(0x0002, 0x0010, "UI", transfer_syntax.encode("ascii"))
    meta = dicom_element(0x0002, 0x0000, "UL", struct.pack("<I", len(meta_body))) + meta_body

    p = "<" if little else ">"
    h, w = pixels.shape

    def el(group: int, element: int, vr: str, value: bytes) -> bytes:
        return dicom_element(group, element, vr, value, little=little, explicit=explicit)

    data = b""
    if with_rows:
        data += el(0x0028, 0x0010, "US", struct.pack(p + "H", h))
    data += el(0x0028, 0x0011, "US", struct.pack(p + "H", w))
    data += el(0x0028, 0x0100, "US", struct.pack(p + "H", 16))
    data += el(0x0028, 0x0103, "US", struct.pack(p + "H", 1))
    data += el(0x0028, 0x1052, "DS", intercept.encode("ascii"))
    data += el(0x0028, 0x1053, "DS", slope.encode("ascii"))
    data += extra
    data += el(0x7FE0, 0x0010, "OW", pixels.astype(p + "i2").tobytes())

    return b"\x00" * 128 + b"DICM" + meta + data


# ===================
# Fixtures
# ===================

@pytest.fixture(autouse=True)
def reset_global_config():
    """
    Every test starts from the default engine and window configuration.
    """
    set_global_config(GlobalConfig())
    set_window_config(WindowConfig())
    yield
    set_global_config(GlobalConfig())
    set_window_config(WindowConfig())


@pytest.fixture
def make_np() -> Callable[..., np.ndarray]:
    return _make_np


@pytest.fixture
def grey() -> TypedArray:
    """
    6x7 single-channel float32 array with small integer values.
    """
    return TypedArray.from_numpy(_make_np((6, 7), seed=7), dtype="float32")


@pytest.fixture
def rgb() -> TypedArray:
    return TypedArray.from_numpy(_make_np((4, 5, 3), seed=11, vmax=256), dtype="float32")


@pytest.fixture
def ct_pixels() -> np.ndarray:
    return np.array([[0, 1, 2], [3, 4, 5]], dtype=np.int16)


@pytest.fixture
def dicom_builder() -> Callable[..., bytes]:
    return dicom_stream


@pytest.fixture
def dicom_el() -> Callable[..., bytes]:
    return dicom_element


@pytest.fixture
def error_records(monkeypatch):
    """
    Records written to the engine error logger during the test (console mode).
    """
    monkeypatch.delenv("IMGARRAY_LOG_DIR", raising=False)
    yield from _collect(get_error_logger())


@pytest.fixture
def debug_records(monkeypatch):
    monkeypatch.delenv("IMGARRAY_LOG_DIR", raising=False)
    yield from _collect(get_debug_logger())
