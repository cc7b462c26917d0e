from sqlalchemy import Enum as SAEnum


def _lower(value):
    if value is None:
        return None
    if isinstance(value, str):
        return value.lower()
    return value.value


class CaseInsensitiveEnum(SAEnum):
    """Enum column that stores lowercase values and reads legacy uppercase rows.

    Booking statuses written by older clients may arrive as ``"CONFIRMED"``;
    both directions normalise to the lowercase enum value.
    """

    def __init__(self, enum_cls, **kwargs):
        self._enum_cls = enum_cls
        self._enum_kwargs = kwargs.copy()
        kwargs.setdefault("values_callable", lambda enum: [e.value for e in enum])
        super().__init__(enum_cls, **kwargs)

    def adapt(self, impltype, **kw):
        return CaseInsensitiveEnum(self._enum_cls, **{**self._enum_kwargs, **kw})

    def bind_processor(self, dialect):
        parent = super().bind_processor(dialect)

        def process(value):
            value = _lower(value)
            if value is not None and parent:
                return parent(value)
            return value

        return process

    def result_processor(self, dialect, coltype):
        parent = super().result_processor(dialect, coltype)

        def process(value):
            if isinstance(value, str):
                value = value.lower()
            if value is not None and parent:
                return parent(value)
            return value

        return process
