# ==================================================
# ===============  MODULE: image_io  ===============
# ==================================================
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
from PIL import Image

from imgarray.core.config import DecoderConfig
from imgarray.core.errors import ChannelMismatch
from imgarray.core.typed_array import TypedArray
from imgarray.operators.dicom_decoder import DicomDecoder
from imgarray.utils.logger import get_logger

# Public API
__all__ = ["ImageIO", "ImageSurface", "safe_image_to_uint8"]

PathLike = Union[str, Path]
ReadHandler = Callable[[PathLike], Tuple[TypedArray, Any]]

_PIL_MODES = {"L": 1, "RGB": 3, "RGBA": 4}


def safe_image_to_uint8(values: np.ndarray) -> np.ndarray:
    """
    Clamp values into [0, 255] and round to uint8 (NaN -> 0), the 'cuint8' rule.
    """
    values = np.nan_to_num(np.asarray(values, dtype=np.float64), nan=0.0)
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


# ==================================================
# ================  CLASS: ImageIO  ================
# ==================================================
class ImageIO:
    """
    File boundary: reads image files into TypedArrays and writes them back.

    Handlers are dispatched on the file extension; PIL covers the raster
    formats and 'dcm' goes through `DicomDecoder`.
    """

    def __init__(self, decoder_cfg: Optional[DecoderConfig] = None) -> None:
        self.decoder_cfg: DecoderConfig = decoder_cfg or DecoderConfig()

        # Handlers registry
        self._handlers: Dict[str, ReadHandler] = {
            "jpg": self._read_pil,
            "jpeg": self._read_pil,
            "png": self._read_pil,
            "bmp": self._read_pil,
            "gif": self._read_pil,
            "tif": self._read_pil,
            "tiff": self._read_pil,
            "dcm": self._read_dicom,
        }

        # Last metadata (e.g., decoded DICOM elements)
        self._last_metadata: Optional[Any] = None

    def add_format_handler(self, extension: str, handler_fn: ReadHandler) -> None:
        """
        Register a reader for a file extension (without leading dot).

        `handler_fn(path)` must return ``(TypedArray, metadata_or_None)``.
        """
        self._handlers[extension.lower().lstrip(".")] = handler_fn

    def get_supported_formats(self) -> List[str]:
        return sorted(self._handlers.keys())

    @property
    def last_metadata(self) -> Optional[Any]:
        return self._last_metadata

    def _read_pil(self, path: PathLike) -> Tuple[TypedArray, None]:
        """
        Read a raster image with PIL. Grey, RGB and RGBA keep their channel
        count; other modes are converted to RGB. Values are stored as 'cuint8'.
        """
        with Image.open(path) as img:
            if img.mode not in _PIL_MODES:
                img = img.convert("RGB")
            values = np.array(img)
        return TypedArray.from_numpy(values, dtype="cuint8"), None

    def _read_dicom(self, path: PathLike) -> Tuple[TypedArray, DicomDecoder]:
        """Decode a DICOM file; the decoder is kept as metadata."""
        decoder = DicomDecoder.from_file(path, self.decoder_cfg)
        return decoder.to_typed_array(), decoder

    def read(self, path: PathLike, return_metadata: bool = False):
        """
        Read `path` into a TypedArray.

        Raises
        ------
        ValueError
            If no handler is registered for the extension.
        """
        path = Path(path)
        ext = path.suffix.lower().lstrip(".")
        if ext not in self._handlers:
            raise ValueError(f"[ImageIO] Unsupported format '.{ext}'. Supported: {self.get_supported_formats()}")
        arr, metadata = self._handlers[ext](path)
        self._last_metadata = metadata
        get_logger().info(f"[ImageIO] Read {path.name} as {arr.shape} '{arr.dtype}'")
        return (arr, metadata) if return_metadata else arr

    def write(self, arr: TypedArray, path: PathLike) -> Path:
        """Save a 1, 3 or 4 channel array through PIL (values clamped to 8 bits)."""
        if arr.channel not in _PIL_MODES.values():
            raise ChannelMismatch(f"[ImageIO] Only 1, 3 or 4 channels can be saved, got {arr.channel}.")
        values = safe_image_to_uint8(arr.to_numpy())
        if arr.channel == 1:
            values = values[:, :, 0]
        path = Path(path)
        Image.fromarray(values).save(path)
        return path

    def preview(self, arr: TypedArray, title: Optional[str] = None, cmap: str = "gray", ax: Optional[Any] = None) -> Any:
        """
        Display an array with matplotlib (single-channel arrays use `cmap`).
        Returns the axes drawn on.
        """
        if arr.channel not in _PIL_MODES.values():
            raise ChannelMismatch(f"[ImageIO] Only 1, 3 or 4 channels can be displayed, got {arr.channel}.")
        if ax is None:
            _, ax = plt.subplots(figsize=(6, 6))
        values = arr.to_numpy()
        if arr.channel == 1:
            ax.imshow(values[:, :, 0], cmap=cmap)
        else:
            ax.imshow(safe_image_to_uint8(values))
        if title:
            ax.set_title(title)
        ax.axis("off")
        return ax


# ==================================================
# ==============  CLASS: ImageSurface  =============
# ==================================================
class ImageSurface:
    """
    Display-side wrapper: an owned RGBA 'cuint8' TypedArray plus a PIL image
    handle that is rebuilt lazily when the pixels change.

    Parameters
    ----------
    arr : TypedArray
        1 (grey), 3 (RGB) or 4 (RGBA) channel source; values are clamped into
        8 bits and missing alpha is set to 255.
    """

    def __init__(self, arr: TypedArray) -> None:
        self.array: TypedArray = self._to_rgba(arr)
        self._image: Optional[Image.Image] = None
        self.stale: bool = True

    @staticmethod
    def _to_rgba(arr: TypedArray) -> TypedArray:
        values = arr.to_numpy().astype(np.float64)
        if arr.channel == 1:
            values = np.repeat(values, 3, axis=2)
        elif arr.channel not in (3, 4):
            raise ChannelMismatch(f"[ImageSurface] Expected 1, 3 or 4 channels, got {arr.channel}.")
        if values.shape[2] == 3:
            values = np.concatenate([values, np.full(values.shape[:2] + (1,), 255.0)], axis=2)
        return TypedArray.from_numpy(values, dtype="cuint8")

    # ====[ Constructors ]====
    @classmethod
    def from_array(cls, arr: TypedArray) -> "ImageSurface":
        return cls(arr)

    @classmethod
    def from_file(cls, path: PathLike, image_io: Optional[ImageIO] = None) -> "ImageSurface":
        arr = (image_io or ImageIO()).read(path)
        if arr.dtype != "cuint8":
            arr = arr.stretch(0, 255)
        return cls(arr)

    # ====[ Properties ]====
    @property
    def height(self) -> int:
        return self.array.height

    @property
    def width(self) -> int:
        return self.array.width

    @property
    def image(self) -> Image.Image:
        """PIL view of the pixels, rebuilt when stale."""
        if self.stale or self._image is None:
            self._image = Image.fromarray(self.array.to_numpy())
            self.stale = False
        return self._image

    # ====[ Pixel access ]====
    def get_pixel(self, x: int, y: int) -> np.ndarray:
        """RGBA values at column `x`, row `y`."""
        idx = self.array.coordinate_to_index(y, x, 0)
        return self.array.data[idx:idx + 4].copy()

    def set_pixel(self, x: int, y: int, rgba: Sequence[float] = (0, 0, 0, 255)) -> "ImageSurface":
        idx = self.array.coordinate_to_index(y, x, 0)
        values = safe_image_to_uint8(list(rgba)[:4])
        self.array.data[idx:idx + values.size] = values
        self.stale = True
        return self

    def to_array(self, drop_alpha: bool = True) -> TypedArray:
        """Copy of the pixels as 'float32', RGB by default."""
        values = self.array.to_numpy().astype(np.float64)
        if drop_alpha:
            values = values[:, :, :3]
        return TypedArray.from_numpy(values, dtype="float32")

    # ====[ Surface transforms ]====
    def resize(self, width: int, height: int) -> "ImageSurface":
        """Bilinear resize through PIL."""
        resized = self.image.resize((int(width), int(height)), Image.BILINEAR)
        return ImageSurface(TypedArray.from_numpy(np.array(resized), dtype="cuint8"))

    def rotate(self, degree: float = 45, expand: bool = True) -> "ImageSurface":
        """Rotate counter-clockwise about the centre; uncovered pixels are transparent."""
        rotated = self.image.rotate(degree, resample=Image.BILINEAR, expand=expand)
        return ImageSurface(TypedArray.from_numpy(np.array(rotated), dtype="cuint8"))

    def opacity(self, value: float = 255) -> "ImageSurface":
        self.array = self.array.opacity(value)
        self.stale = True
        return self

    # ====[ Output ]====
    def save(self, path: PathLike) -> Path:
        path = Path(path)
        self.image.save(path)
        return path

    def show(self, title: Optional[str] = None, ax: Optional[Any] = None) -> Any:
        if ax is None:
            _, ax = plt.subplots(figsize=(6, 6))
        ax.imshow(self.array.to_numpy())
        if title:
            ax.set_title(title)
        ax.axis("off")
        return ax
