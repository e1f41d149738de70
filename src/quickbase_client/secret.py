class SecretConsumedError(RuntimeError):
    pass


class Secret:
    """A credential that can be read exactly once.

    ``consume()`` hands the value out and drops the reference held here, so a
    password used for the first authentication is not kept around afterwards.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value: str | None = value

    @property
    def consumed(self) -> bool:
        return self._value is None

    def consume(self) -> str:
        if self._value is None:
            raise SecretConsumedError("secret was already consumed")
        value, self._value = self._value, None
        return value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:
        return "Secret(<consumed>)" if self._value is None else "Secret(***)"
