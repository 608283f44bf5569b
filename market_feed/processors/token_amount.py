import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional, Union

from ..config import Config

logger = logging.getLogger(__name__)

RawAmount = Union[int, str]
DisplayAmount = Union[Decimal, int, float, str]


class TokenAmountCodec:
    """
    Converts between raw fixed-point token integers and their display values.

    Raw amounts are integers scaled by 10^decimals. Display values are exact
    Decimals, and text output is always positional: 1 raw unit renders as
    0.00000001, never 1E-8.
    """

    def __init__(self, decimals: Optional[int] = None):
        self.decimals = Config.TOKEN_DECIMALS if decimals is None else int(decimals)
        if self.decimals < 0:
            raise ValueError(f'decimals must not be negative, got {self.decimals}')

    @staticmethod
    def _raw_int(raw: RawAmount) -> int:
        if isinstance(raw, bool):
            raise TypeError('raw amount must be an integer, not bool')
        if isinstance(raw, str):
            return int(raw.strip())
        if isinstance(raw, int):
            return raw
        raise TypeError(f'raw amount must be an integer, got {type(raw).__name__}')

    def to_display(self, raw: RawAmount) -> Decimal:
        value = Decimal(self._raw_int(raw))
        with localcontext() as ctx:
            # scaleb rounds to context precision; keep every digit
            ctx.prec = max(28, len(value.as_tuple().digits) + 2)
            return value.scaleb(-self.decimals)

    def to_raw(self, display: DisplayAmount) -> int:
        if isinstance(display, float):
            # str() gives the shortest repr, so 0.1 stays 0.1 rather than its binary expansion
            display = Decimal(str(display))
        elif not isinstance(display, Decimal):
            display = Decimal(display)
        if not display.is_finite():
            raise ValueError(f'cannot convert {display} to a raw amount')

        with localcontext() as ctx:
            ctx.prec = max(28, len(display.as_tuple().digits) + abs(display.adjusted()) + self.decimals + 2)
            scaled = display.scaleb(self.decimals)
            return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def format(self, raw: RawAmount, places: Optional[int] = None) -> str:
        places = self.decimals if places is None else places
        value = self.to_display(raw)
        with localcontext() as ctx:
            ctx.prec = max(28, len(value.as_tuple().digits) + places + 2)
            quantized = value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        return format(quantized, 'f')


_default_codec = TokenAmountCodec()


def to_display(raw: RawAmount) -> Decimal:
    return _default_codec.to_display(raw)


def to_raw(display: DisplayAmount) -> int:
    return _default_codec.to_raw(display)


def format_amount(raw: RawAmount, places: Optional[int] = None) -> str:
    return _default_codec.format(raw, places)
