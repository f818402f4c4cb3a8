# ==================================================
# ==============  MODULE: typed_array  =============
# ==================================================
from __future__ import annotations

from imgarray.core.array_base import ArrayBase
from imgarray.operators.clustering import ClusteringMixin
from imgarray.operators.color import ColorMixin
from imgarray.operators.elementwise import ElementwiseMixin
from imgarray.operators.filters import FilterMixin
from imgarray.operators.geometry import GeometryMixin
from imgarray.operators.texture import TextureMixin
from imgarray.operators.window import WindowMixin

# Public API
__all__ = ["TypedArray"]


# ==================================================
# ===============  CLASS: TypedArray  ==============
# ==================================================
class TypedArray(
    ElementwiseMixin,
    GeometryMixin,
    WindowMixin,
    FilterMixin,
    TextureMixin,
    ClusteringMixin,
    ColorMixin,
    ArrayBase,
):
    """
    Typed 2-D multi-channel array.

    Storage and element access come from `ArrayBase`; each mixin contributes
    one family of pure operations (they all return new arrays):

    - `ElementwiseMixin`: map / zip, arithmetic, thresholds, ranges, reductions
    - `GeometryMixin`: pad, slice, stacking, flips, rolls, rotation, layouts
    - `WindowMixin`: structure / neighbor expansion and channel reductions
    - `FilterMixin`: convolution, edges, rank filters, morphology
    - `TextureMixin`: LBP, LMI, cellular-automaton step
    - `ClusteringMixin`: distance fields and the single clustering pass
    - `ColorMixin`: histograms, bit planes, colour conversions

    Examples
    --------
    >>> arr = TypedArray.from_array([[5, 6]], dtype="float32")
    >>> arr.pad(left=1, right=1, top=0, bottom=0, fillvalue=9).data.tolist()
    [9.0, 5.0, 6.0, 9.0]
    """
