# ==================================================
# ===============  MODULE: array_base  =============
# ==================================================
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from imgarray.core.config import get_global_config
from imgarray.core.dtypes import cast_values, resolve_dtype
from imgarray.core.errors import IndexOutOfRange, ShapeMismatch, SizeMismatch
from imgarray.utils.decorators import log_errors

# Public API
__all__ = ["ArrayBase", "Shape", "Number"]

Shape = Tuple[int, int, int]
Number = Union[int, float, np.integer, np.floating]


def _check_dim(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise ValueError(f"[TypedArray] '{name}' must be a positive integer, got {value!r}.")
    return int(value)


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float, np.integer, np.floating)) and not isinstance(x, bool)


# ==================================================
# ================  CLASS: ArrayBase  ==============
# ==================================================
class ArrayBase:
    """
    Flat, channel-minor storage of a 2-D multi-channel numeric array.

    The buffer holds exactly ``height * width * channel`` elements; the element
    at (row, col, ch) lives at offset ``(row * width + col) * channel + ch``.
    The buffer is exclusively owned: every producing operation allocates.

    Parameters
    ----------
    height, width, channel : int
        Positive dimensions.
    dtype : str, optional
        Element type name (see `imgarray.core.dtypes`). Defaults to
        `GlobalConfig.default_dtype`.
    lazy : bool, default False
        If True, no buffer is allocated until the first write or `materialize()`.
    """

    def __init__(
        self,
        height: int = 256,
        width: int = 256,
        channel: int = 3,
        dtype: Optional[str] = None,
        lazy: bool = False,
    ) -> None:
        self.height: int = _check_dim("height", height)
        self.width: int = _check_dim("width", width)
        self.channel: int = _check_dim("channel", channel)
        self.dtype: str = dtype or get_global_config().default_dtype
        self._storage: np.dtype = resolve_dtype(self.dtype)
        self._data: Optional[np.ndarray] = None if lazy else np.zeros(self.size, dtype=self._storage)

    # ====[ Construction helpers ]====
    @classmethod
    def create(
        cls,
        height: int = 256,
        width: int = 256,
        channel: int = 3,
        dtype: Optional[str] = None,
        lazy: bool = False,
    ):
        return cls(height=height, width=width, channel=channel, dtype=dtype, lazy=lazy)

    @classmethod
    def from_numpy(cls, values: Any, dtype: Optional[str] = None):
        """
        Build an array from a (h, w) or (h, w, c) numpy-compatible block,
        applying the assignment rules of `dtype`.
        """
        block = np.asarray(values)
        if block.ndim == 2:
            block = block[:, :, None]
        if block.ndim != 3:
            raise ShapeMismatch(f"[TypedArray] Expected a 2-D or 3-D block, got ndim={block.ndim}.")
        h, w, c = block.shape
        out = cls(h, w, c, dtype=dtype, lazy=True)
        out._data = cast_values(block.reshape(-1), out.dtype)
        return out

    def _wrap(self, values: Any, dtype: Optional[str] = None):
        """Produce a fresh array of this kind from an (h, w, c) block (dtype defaults to self.dtype)."""
        return type(self).from_numpy(values, dtype=dtype or self.dtype)

    def materialize(self):
        """Allocate the zero-filled buffer of a lazy array (no-op otherwise)."""
        if self._data is None:
            self._data = np.zeros(self.size, dtype=self._storage)
        return self

    # ====[ Metadata ]====
    @property
    def shape(self) -> Shape:
        return (self.height, self.width, self.channel)

    @property
    def size(self) -> int:
        return self.height * self.width * self.channel

    numel = size

    @property
    def elbytes(self) -> int:
        """Byte stride of one element."""
        return self._storage.itemsize

    @property
    def bytesize(self) -> int:
        return self.size * self.elbytes

    @property
    def is_lazy(self) -> bool:
        return self._data is None

    @property
    def data(self) -> np.ndarray:
        """Flat storage buffer (materialised on access)."""
        return self.materialize()._data

    @property
    def buffer(self) -> bytes:
        """Copy of the raw flat buffer in native byte order."""
        return self.data.tobytes()

    def to_numpy(self) -> np.ndarray:
        """Return an (h, w, c) copy of the values in their storage dtype."""
        return self.data.reshape(self.shape).copy()

    def _values(self) -> np.ndarray:
        """(h, w, c) float64 view-copy used as the computation domain."""
        return self.data.reshape(self.shape).astype(np.float64)

    def same_shape(self, other: "ArrayBase") -> bool:
        return self.shape == other.shape

    def same_hw(self, other: "ArrayBase") -> bool:
        return self.height == other.height and self.width == other.width

    def same_channel(self, other: "ArrayBase") -> bool:
        return self.channel == other.channel

    # ====[ Element accessor ]====
    def is_valid(self, row: int = 0, col: int = 0, ch: int = 0) -> bool:
        for value, dim in ((row, self.height), (col, self.width), (ch, self.channel)):
            if not isinstance(value, (int, np.integer)) or isinstance(value, bool):
                return False
            if value + 1 > dim or value < 0:
                return False
        return True

    def _check_coordinate(self, row: int, col: int, ch: int) -> None:
        if not self.is_valid(row, col, ch):
            raise IndexOutOfRange(
                f"[TypedArray] Coordinate (row={row}, col={col}, ch={ch}) outside shape {self.shape}."
            )

    def coordinate_to_index(self, row: int = 0, col: int = 0, ch: int = 0) -> int:
        self._check_coordinate(row, col, ch)
        return (int(row) * self.width + int(col)) * self.channel + int(ch)

    def index_to_coordinate(self, index: int) -> Tuple[int, int, int]:
        if not isinstance(index, (int, np.integer)) or index < 0 or index + 1 > self.size:
            raise IndexOutOfRange(f"[TypedArray] Element index {index!r} outside [0, {self.size}).")
        pixel, ch = divmod(int(index), self.channel)
        row, col = divmod(pixel, self.width)
        return row, col, ch

    @log_errors("TypedArray.get", raise_exception=False)
    def get(self, row: int = 0, col: int = 0, ch: int = 0) -> Optional[Number]:
        """
        Element at (row, col, ch).

        An out-of-range coordinate is logged and yields None. A lazy array
        reads as zero and stays unallocated.
        """
        idx = self.coordinate_to_index(row, col, ch)
        if self._data is None:
            return self._storage.type(0).item()
        return self._data[idx].item()

    @log_errors("TypedArray.set", raise_exception=False)
    def set(self, row: int = 0, col: int = 0, ch: int = 0, value: Number = 0):
        """Write `value` with the dtype assignment rules; out-of-range coordinates log and return None."""
        idx = self.coordinate_to_index(row, col, ch)
        self.data[idx] = cast_values(value, self.dtype)
        return self

    def _check_channel(self, ch: Any) -> int:
        if not isinstance(ch, (int, np.integer)) or isinstance(ch, bool) or ch < 0 or ch + 1 > self.channel:
            raise IndexOutOfRange(f"[TypedArray] Channel index {ch!r} outside [0, {self.channel}).")
        return int(ch)

    @log_errors("TypedArray.fill")
    def fill(self, value: Union[Number, Sequence[Number]] = 0, channel: Union[None, int, Sequence[int]] = None):
        """
        Fill the buffer in place.

        Parameters
        ----------
        value : number or sequence of numbers
            A single value, or one value per selected channel.
        channel : None, int or sequence of int
            None fills every element; an int fills one channel; a sequence fills
            each listed channel (with `value[i]` for `channel[i]` when `value`
            is a sequence of the same length).

        Returns
        -------
        self
        """
        values_is_list = isinstance(value, (list, tuple, np.ndarray))
        channels_is_list = isinstance(channel, (list, tuple, np.ndarray))

        # validate before touching the buffer
        if values_is_list and not channels_is_list:
            raise ShapeMismatch("[TypedArray] A list of fill values requires a list of channels.")
        if channels_is_list:
            channels: List[int] = [self._check_channel(c) for c in channel]
            if values_is_list and len(value) != len(channels):
                raise ShapeMismatch(
                    f"[TypedArray] {len(value)} fill values for {len(channels)} channels."
                )
            values = list(value) if values_is_list else [value] * len(channels)
        elif channel is not None:
            channels, values = [self._check_channel(channel)], [value]
        else:
            self.data[:] = cast_values(value, self.dtype)
            return self

        for c, v in zip(channels, values):
            self.data[c::self.channel] = cast_values(v, self.dtype)
        return self

    # ====[ Copies ]====
    def copy(self):
        out = type(self)(self.height, self.width, self.channel, dtype=self.dtype, lazy=True)
        if self._data is not None:
            out._data = self._data.copy()
        return out

    def empty_like(self, lazy: bool = False):
        """Fresh array with the same shape and dtype (zero filled unless lazy)."""
        return type(self)(self.height, self.width, self.channel, dtype=self.dtype, lazy=lazy)

    @log_errors("TypedArray.astype")
    def astype(self, dtype: str = "float32"):
        resolve_dtype(dtype)
        return self._wrap(self.data.reshape(self.shape).astype(np.float64), dtype=dtype)

    # ====[ Factories ]====
    @classmethod
    def zeros(cls, height: int = 256, width: int = 256, channel: int = 3, dtype: Optional[str] = None):
        return cls(height, width, channel, dtype=dtype)

    @classmethod
    def ones(cls, height: int = 256, width: int = 256, channel: int = 3, dtype: Optional[str] = None):
        return cls(height, width, channel, dtype=dtype).fill(1)

    @classmethod
    def full(cls, height: int = 256, width: int = 256, channel: int = 3, value: Number = 0, dtype: Optional[str] = None):
        return cls(height, width, channel, dtype=dtype).fill(value)

    @classmethod
    def random(
        cls,
        height: int = 256,
        width: int = 256,
        channel: int = 3,
        vmin: float = 0,
        vmax: float = 255,
        dtype: Optional[str] = None,
        seed: Optional[int] = None,
    ):
        """Uniform values in [vmin, vmax), seeded by `seed` or `GlobalConfig.seed`."""
        out = cls(height, width, channel, dtype=dtype, lazy=True)
        rng = np.random.default_rng(seed if seed is not None else get_global_config().seed)
        out._data = cast_values(rng.uniform(vmin, vmax, size=out.size), out.dtype)
        return out

    @classmethod
    def meshgrid(cls, hrange: Sequence[int] = (0, 256), wrange: Sequence[int] = (0, 256), dtype: Optional[str] = None):
        """
        Regular grid over [hrange[0], hrange[1]) x [wrange[0], wrange[1]).

        Returns
        -------
        (rows, cols)
            Single-channel arrays holding the row and column coordinate of every pixel.
        """
        rows, cols = np.meshgrid(
            np.arange(hrange[0], hrange[1]), np.arange(wrange[0], wrange[1]), indexing="ij"
        )
        return cls.from_numpy(rows, dtype=dtype), cls.from_numpy(cols, dtype=dtype)

    @classmethod
    def from_buffer(cls, buffer: Any, shape: Sequence[int], dtype: str = "float32"):
        """
        Import a flat byte or typed buffer as a new array owning a private copy.

        Parameters
        ----------
        buffer : bytes | bytearray | memoryview | np.ndarray
            Raw bytes (native byte order) or a numpy array whose bytes are
            reinterpreted as `dtype`.
        shape : (height, width, channel)
        dtype : str
            Element type name of the new array.

        Raises
        ------
        UnsupportedDtype
            If `dtype` is unknown.
        SizeMismatch
            If the byte length differs from height * width * channel * element size.
        """
        height, width, channel = (int(s) for s in shape)
        out = cls(height, width, channel, dtype=dtype, lazy=True)
        if isinstance(buffer, np.ndarray):
            raw = np.ascontiguousarray(buffer).reshape(-1).view(np.uint8)
        else:
            raw = np.frombuffer(memoryview(buffer).cast("B"), dtype=np.uint8)

        # typed buffers are reinterpreted byte for byte, never converted
        if raw.nbytes != out.bytesize:
            raise SizeMismatch(
                f"[TypedArray] Buffer holds {raw.nbytes} bytes, shape {out.shape} as '{dtype}' needs {out.bytesize}."
            )
        out._data = raw.view(out._storage).copy()
        return out

    @classmethod
    def from_array(cls, values: Any, shape: Optional[Sequence[int]] = None, dtype: str = "float32"):
        """
        Build an array from (possibly nested) sequences of numbers.

        Without `shape`, a 2-D nesting is read as (h, w) and a 3-D nesting as (h, w, c).
        With `shape`, the values are flattened and must contain exactly h * w * c numbers.
        """
        flat = np.asarray(values, dtype=np.float64)
        if shape is None:
            return cls.from_numpy(flat, dtype=dtype)
        height, width, channel = (int(s) for s in shape)
        if flat.size != height * width * channel:
            raise SizeMismatch(
                f"[TypedArray] {flat.size} values cannot fill shape ({height}, {width}, {channel})."
            )
        return cls.from_numpy(flat.reshape(height, width, channel), dtype=dtype)

    # ====[ Export ]====
    def to_string(self, precision: int = 2) -> str:
        header = f"shape: [{self.height}, {self.width}, {self.channel}]\ndtype: {self.dtype}\ndata :\n"
        body = np.array2string(
            self.data.reshape(self.shape), precision=precision, separator=" ", threshold=1000
        )
        return header + body

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        state = "lazy" if self.is_lazy else "materialized"
        return f"{type(self).__name__}(height={self.height}, width={self.width}, channel={self.channel}, dtype='{self.dtype}', {state})"

    def to_file(self, path: Union[str, Path], kind: str = "bin") -> Path:
        """Write the raw buffer ('bin') or its comma-separated values ('txt')."""
        path = Path(path)
        if kind == "bin":
            path.write_bytes(self.buffer)
        elif kind == "txt":
            path.write_text(",".join(str(v) for v in self.data.tolist()), encoding="utf-8")
        else:
            raise ValueError(f"[TypedArray] Unsupported file kind: '{kind}'. Expected 'bin' or 'txt'.")
        return path
